"""
MNEE Gatekeeper Telegram Bot - API Router
Webhook endpoint for Telegram updates
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from api.dependencies import Services, get_services
from tg_handlers.updates import TelegramUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bot", tags=["Telegram"])


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    services: Services = Depends(get_services),
    secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Telegram webhook endpoint.

    Always answers {"ok": true} so Telegram does not redeliver; failures
    are logged only.
    """
    expected = services.config.telegram.webhook_secret
    if expected and not hmac.compare_digest((secret_token or "").encode(), expected.encode()):
        logger.warning("Webhook call with bad secret token ignored")
        return {"ok": True}

    try:
        update = TelegramUpdate.model_validate(await request.json())
        await services.commands.handle_update(update)
    except Exception as e:
        logger.error(f"Webhook error: {e}")

    return {"ok": True}
