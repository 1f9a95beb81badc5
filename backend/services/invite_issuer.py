"""
Invite Issuer - channel access through the messaging platform
"""

import logging

from services.models import Channel, User

logger = logging.getLogger("InviteIssuer")


class InviteIssuer:
    """Mints single-use invites and revokes membership"""

    def __init__(self, gateway):
        self.gateway = gateway

    async def issue_invite(self, channel: Channel, subscription_id: str) -> str:
        # Link name carries the subscription id prefix so admins can trace joins
        name = f"Sub {subscription_id[:8]}"
        link = await self.gateway.create_invite_link(channel.channel_id, name)
        logger.info(f"🎟️ Invite issued for {channel.channel_id} ({name})")
        return link

    async def revoke_access(self, channel: Channel, user: User) -> None:
        await self.gateway.remove_member(channel.channel_id, user.telegram_id)
