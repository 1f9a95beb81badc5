"""
Telegram Gateway Tests
aiogram calls, error mapping and timeouts

Run: python -m pytest tests/test_telegram_gateway.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from infrastructure.errors import ExternalServiceError
from tg_handlers.bot import TelegramGateway
from tg_handlers.scheduler import SweepScheduler


def api_error(cls=TelegramBadRequest, message="Bad Request: chat not found"):
    return cls(method=MagicMock(), message=message)


@pytest.fixture
def bot():
    b = MagicMock()
    b.send_message = AsyncMock()
    b.create_chat_invite_link = AsyncMock(return_value=SimpleNamespace(invite_link="https://t.me/+abc"))
    b.ban_chat_member = AsyncMock(return_value=True)
    b.unban_chat_member = AsyncMock(return_value=True)
    b.get_chat_member = AsyncMock(return_value=SimpleNamespace(status=ChatMemberStatus.ADMINISTRATOR))
    b.get_chat = AsyncMock(return_value=SimpleNamespace(title="Alpha Calls"))
    b.answer_callback_query = AsyncMock()
    b.session.close = AsyncMock()
    return b


@pytest.fixture
def tg(bot, telegram_config):
    return TelegramGateway(bot, telegram_config)


# =============================================================================
# TEST: Invites and removal
# =============================================================================

class TestMembership:

    @pytest.mark.asyncio
    async def test_invite_is_single_use_and_expiring(self, tg, bot):
        before = datetime.now(timezone.utc)

        link = await tg.create_invite_link("-100123", "Sub 1234abcd")

        assert link == "https://t.me/+abc"
        kwargs = bot.create_chat_invite_link.await_args.kwargs
        assert kwargs["member_limit"] == 1
        assert kwargs["name"] == "Sub 1234abcd"
        assert before + timedelta(hours=24) <= kwargs["expire_date"] <= datetime.now(timezone.utc) + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_remove_is_ban_then_unban(self, tg, bot):
        await tg.remove_member("-100123", "777")

        bot.ban_chat_member.assert_awaited_once_with(chat_id="-100123", user_id=777)
        bot.unban_chat_member.assert_awaited_once_with(chat_id="-100123", user_id=777, only_if_banned=True)

    @pytest.mark.asyncio
    async def test_remove_failure_is_external_error(self, tg, bot):
        bot.ban_chat_member.side_effect = api_error(TelegramForbiddenError, "Forbidden: not enough rights")

        with pytest.raises(ExternalServiceError) as exc:
            await tg.remove_member("-100123", "777")

        assert exc.value.details["service"] == "telegram"
        bot.unban_chat_member.assert_not_called()


# =============================================================================
# TEST: Lookups
# =============================================================================

class TestLookups:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected", [
        (ChatMemberStatus.CREATOR, True),
        (ChatMemberStatus.ADMINISTRATOR, True),
        (ChatMemberStatus.MEMBER, False),
    ])
    async def test_is_channel_admin(self, tg, bot, status, expected):
        bot.get_chat_member.return_value = SimpleNamespace(status=status)

        assert await tg.is_channel_admin("-100123", "42") is expected

    @pytest.mark.asyncio
    async def test_admin_check_failure_is_false(self, tg, bot):
        bot.get_chat_member.side_effect = api_error()

        assert await tg.is_channel_admin("-100123", "42") is False

    @pytest.mark.asyncio
    async def test_chat_title(self, tg, bot):
        assert await tg.get_chat_title("-100123") == "Alpha Calls"

        bot.get_chat.side_effect = api_error()
        assert await tg.get_chat_title("-100123") is None


# =============================================================================
# TEST: Failure modes
# =============================================================================

class TestFailureModes:

    @pytest.mark.asyncio
    async def test_timeout(self, tg, bot):
        async def hang(**kwargs):
            await asyncio.sleep(10)

        bot.send_message = hang
        tg.timeout = 0.01

        with pytest.raises(ExternalServiceError) as exc:
            await tg.send_message(1, "hi")

        assert "timed out" in exc.value.message

    @pytest.mark.asyncio
    async def test_unconfigured_bot(self, telegram_config):
        tg = TelegramGateway.from_config(telegram_config)

        assert tg.bot is None
        with pytest.raises(ExternalServiceError):
            await tg.send_message(1, "hi")
        await tg.close()

    @pytest.mark.asyncio
    async def test_close(self, tg, bot):
        await tg.close()

        bot.session.close.assert_awaited_once()


# =============================================================================
# TEST: Scheduler
# =============================================================================

class TestSweepScheduler:

    def test_single_interval_job(self):
        scheduler = SweepScheduler(MagicMock(), interval_minutes=15)

        job = scheduler.scheduler.get_job("expiry_sweep")
        assert job is not None
        assert job.max_instances == 1
        assert job.trigger.interval == timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_failed_run_is_contained(self):
        sweep = MagicMock()
        sweep.run = AsyncMock(side_effect=RuntimeError("db down"))
        scheduler = SweepScheduler(sweep, interval_minutes=15)

        await scheduler.run_sweep()

        sweep.run.assert_awaited_once()
