"""
Channels API Router
Public channel + plan lookup for the subscription page
"""

from fastapi import APIRouter, Depends

from api.dependencies import Services, get_services
from infrastructure.errors import ErrorCode, NotFoundError

router = APIRouter(prefix="/api/channels", tags=["Channels"])


@router.get("/{channel_id}")
async def get_channel(channel_id: str, services: Services = Depends(get_services)):
    """Channel by internal id or Telegram chat id, with its active plans (cheapest first)"""
    channel = await services.store.find_channel(channel_id)
    if channel is None:
        raise NotFoundError("Channel", channel_id, ErrorCode.CHANNEL_NOT_FOUND)

    plans = await services.store.list_active_plans(channel.id)
    return {
        "channel": channel.to_dict(),
        "plans": [plan.to_dict() for plan in plans],
    }
