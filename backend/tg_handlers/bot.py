"""
MNEE Gatekeeper Telegram Bot - Gateway Module
The only code that talks to the Telegram Bot API
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ChatMemberStatus, ParseMode
from aiogram.exceptions import TelegramAPIError

from infrastructure.config import TelegramConfig
from infrastructure.errors import ExternalServiceError

logger = logging.getLogger("TelegramGateway")

ADMIN_STATUSES = {ChatMemberStatus.CREATOR, ChatMemberStatus.ADMINISTRATOR}


class TelegramGateway:
    """
    Messaging capability over an aiogram Bot.

    Every call is bounded by the configured timeout; API errors, network
    errors and timeouts surface as ExternalServiceError("telegram").
    """

    def __init__(self, bot: Optional[Bot], config: TelegramConfig):
        self.bot = bot
        self.config = config
        self.timeout = config.timeout_seconds

    @classmethod
    def from_config(cls, config: TelegramConfig) -> "TelegramGateway":
        if not config.bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set - messaging disabled")
            return cls(None, config)

        # HTML so user-supplied names can be escaped reliably
        bot = Bot(
            token=config.bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML)
        )
        logger.info("🤖 Telegram gateway initialized")
        return cls(bot, config)

    async def _call(self, method: str, **kwargs) -> Any:
        if self.bot is None:
            raise ExternalServiceError("telegram", "Telegram bot is not configured")
        try:
            return await asyncio.wait_for(getattr(self.bot, method)(**kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Telegram {method} timed out")
            raise ExternalServiceError("telegram", f"Telegram {method} timed out") from e
        except TelegramAPIError as e:
            logger.warning(f"Telegram {method} failed: {e}")
            raise ExternalServiceError("telegram", f"Telegram {method} failed: {e}") from e

    async def send_message(self, chat_id, text: str, reply_markup=None):
        return await self._call("send_message", chat_id=chat_id, text=text, reply_markup=reply_markup)

    async def create_invite_link(self, chat_id, name: str) -> str:
        """Single-use link valid for invite_ttl_hours"""
        expire_date = datetime.now(timezone.utc) + timedelta(hours=self.config.invite_ttl_hours)
        link = await self._call(
            "create_chat_invite_link",
            chat_id=chat_id,
            name=name,
            expire_date=expire_date,
            member_limit=self.config.invite_member_limit,
        )
        return link.invite_link

    async def remove_member(self, chat_id, user_id) -> None:
        """Ban then unban: the member is removed but may rejoin with a new invite"""
        await self._call("ban_chat_member", chat_id=chat_id, user_id=int(user_id))
        await self._call("unban_chat_member", chat_id=chat_id, user_id=int(user_id), only_if_banned=True)
        logger.info(f"Removed user {user_id} from {chat_id}")

    async def is_channel_admin(self, chat_id, user_id) -> bool:
        try:
            member = await self._call("get_chat_member", chat_id=chat_id, user_id=int(user_id))
        except (ExternalServiceError, ValueError):
            return False
        return member.status in ADMIN_STATUSES

    async def get_chat_title(self, chat_id) -> Optional[str]:
        """Title of the chat, or None when the bot cannot see it"""
        try:
            chat = await self._call("get_chat", chat_id=chat_id)
        except ExternalServiceError:
            return None
        return chat.title or "Unnamed Channel"

    async def answer_callback(self, callback_id: str) -> None:
        await self._call("answer_callback_query", callback_query_id=callback_id)

    async def close(self):
        if self.bot is not None:
            await self.bot.session.close()
