"""
Expiry Sweep Tests
Selection, removal retries, missing data, idempotent re-runs

Run: python -m pytest tests/test_expiry_sweep.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from infrastructure.errors import DatabaseError, ExternalServiceError
from services.expiry_sweep import ExpirySweep
from services.invite_issuer import InviteIssuer
from services.models import SubscriptionStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sweep(store, gateway, sweep_config, telegram_config):
    return ExpirySweep(
        store, InviteIssuer(gateway), gateway, sweep_config, telegram_config, clock=lambda: NOW
    )


@pytest.fixture
def channel(store):
    return store.add_channel()


@pytest.fixture
def user(store):
    return store.add_user("777")


# =============================================================================
# TEST: Selection
# =============================================================================

class TestSelection:

    @pytest.mark.asyncio
    async def test_nothing_expired(self, sweep, store, channel, user, gateway):
        store.add_subscription(user, channel, expiry_date=NOW + timedelta(days=1))
        store.add_subscription(user, channel, expiry_date=None)

        result = await sweep.run()

        assert result.to_dict() == {"processed": 0, "removed": 0, "failed": 0, "errors": []}
        gateway.remove_member.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_expired_rows_are_skipped(self, sweep, store, channel, user, gateway):
        store.add_subscription(
            user, channel, expiry_date=NOW - timedelta(days=3), status=SubscriptionStatus.EXPIRED
        )

        result = await sweep.run()

        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_lifetime_subscription_never_expires(self, sweep, store, channel, user):
        sub = store.add_subscription(user, channel, expiry_date=None)

        await sweep.run()

        assert store.subscriptions[sub.id].status == SubscriptionStatus.ACTIVE


# =============================================================================
# TEST: Removal
# =============================================================================

class TestRemoval:

    @pytest.mark.asyncio
    async def test_expired_member_removed_and_notified(self, sweep, store, channel, user, gateway):
        sub = store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))

        result = await sweep.run()

        assert (result.processed, result.removed, result.failed) == (1, 1, 0)
        gateway.remove_member.assert_awaited_once_with(channel.channel_id, "777")
        assert store.subscriptions[sub.id].status == SubscriptionStatus.EXPIRED

        chat_id, text = gateway.send_message.call_args.args
        assert chat_id == "777"
        assert "Subscription Expired" in text
        assert f"https://t.me/GatekeeperBot?start={channel.id}" in text

    @pytest.mark.asyncio
    async def test_transient_removal_failure_is_retried(self, sweep, store, channel, user, gateway):
        store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))
        gateway.remove_member.side_effect = [ExternalServiceError("telegram"), None]

        result = await sweep.run()

        assert result.removed == 1
        assert result.failed == 0
        assert gateway.remove_member.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_removal_failure_still_marks_expired(self, sweep, store, channel, user, gateway):
        sub = store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))
        gateway.remove_member.side_effect = ExternalServiceError("telegram", "Forbidden")

        result = await sweep.run()

        assert (result.processed, result.removed, result.failed) == (1, 0, 1)
        assert result.errors[0].startswith("Failed to remove user 777")
        assert gateway.remove_member.await_count == 2
        assert store.subscriptions[sub.id].status == SubscriptionStatus.EXPIRED
        gateway.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_count(self, sweep, store, channel, user, gateway):
        store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))
        gateway.send_message.side_effect = ExternalServiceError("telegram")

        result = await sweep.run()

        assert result.removed == 1
        assert result.failed == 0


# =============================================================================
# TEST: Failure isolation
# =============================================================================

class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_missing_channel_left_active(self, sweep, store, user, gateway):
        sub = store.add_subscription(user, None, expiry_date=NOW - timedelta(hours=1))

        result = await sweep.run()

        assert (result.processed, result.removed, result.failed) == (1, 0, 1)
        assert result.errors == [f"Missing user or channel data for subscription {sub.id}"]
        assert store.subscriptions[sub.id].status == SubscriptionStatus.ACTIVE
        gateway.remove_member.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_user_left_active(self, sweep, store, channel):
        sub = store.add_subscription(None, channel, expiry_date=NOW - timedelta(hours=1))

        result = await sweep.run()

        assert result.failed == 1
        assert store.subscriptions[sub.id].status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_one_bad_item_does_not_stop_the_batch(self, sweep, store, channel, user, gateway):
        other = store.add_user("888")
        bad = store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=2))
        good = store.add_subscription(other, channel, expiry_date=NOW - timedelta(hours=1))

        async def remove(chat_id, user_id):
            if user_id == "777":
                raise RuntimeError("boom")

        gateway.remove_member.side_effect = remove

        result = await sweep.run()

        assert (result.processed, result.removed, result.failed) == (2, 1, 1)
        assert result.errors == [f"Error processing subscription {bad.id}: boom"]
        assert store.subscriptions[good.id].status == SubscriptionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_failed_mark_is_not_counted_as_removed(self, sweep, store, channel, user, gateway):
        sub = store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))

        async def db_down(subscription_id):
            raise DatabaseError("PATCH subscriptions failed with status 503")

        store.mark_subscription_expired = db_down

        result = await sweep.run()

        assert (result.processed, result.removed, result.failed) == (1, 0, 1)
        assert result.errors == [
            f"Error processing subscription {sub.id}: PATCH subscriptions failed with status 503"
        ]
        gateway.remove_member.assert_awaited_once()
        gateway.send_message.assert_not_called()


# =============================================================================
# TEST: Re-runs
# =============================================================================

class TestRerun:

    @pytest.mark.asyncio
    async def test_second_run_is_a_noop(self, sweep, store, channel, user, gateway):
        store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))

        first = await sweep.run()
        second = await sweep.run()

        assert first.processed == 1
        assert second.processed == 0
        assert gateway.remove_member.await_count == 1

    @pytest.mark.asyncio
    async def test_subscription_expired_concurrently(self, sweep, store, channel, user):
        sub = store.add_subscription(user, channel, expiry_date=NOW - timedelta(hours=1))
        original = store.mark_subscription_expired

        async def race(subscription_id):
            store.subscriptions[subscription_id].status = SubscriptionStatus.EXPIRED
            return await original(subscription_id)

        store.mark_subscription_expired = race

        result = await sweep.run()

        assert result.removed == 1
        assert store.subscriptions[sub.id].status == SubscriptionStatus.EXPIRED
