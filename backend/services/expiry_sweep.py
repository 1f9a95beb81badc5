"""
Expiry Sweep - revoke access for subscriptions past their expiry date

Safe to re-run and to run concurrently with payments: only active rows
with a past, non-null expiry are selected, and the expired transition is
guarded on status=active.

Removal policy: member removal is retried (SWEEP_REMOVAL_ATTEMPTS). If it
still fails the subscription is marked expired anyway and the failure is
reported in the summary.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List

from infrastructure.config import SweepConfig, TelegramConfig
from infrastructure.errors import ExternalServiceError, retry
from services.invite_issuer import InviteIssuer
from services.models import SubscriptionWithDetails, utc_now
from services.subscription_store import SubscriptionStore
from tg_handlers import messages

logger = logging.getLogger("ExpirySweep")


@dataclass
class SweepResult:
    processed: int = 0
    removed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "removed": self.removed,
            "failed": self.failed,
            "errors": self.errors,
        }


class ExpirySweep:
    """Batch job: find expired subscriptions, remove members, mark expired"""

    def __init__(
        self,
        store: SubscriptionStore,
        invite_issuer: InviteIssuer,
        gateway,
        sweep_config: SweepConfig,
        telegram_config: TelegramConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.invite_issuer = invite_issuer
        self.gateway = gateway
        self.bot_username = telegram_config.bot_username
        self.clock = clock

        self._revoke = retry(
            max_attempts=sweep_config.removal_attempts,
            delay=sweep_config.retry_delay_seconds,
            exceptions=(ExternalServiceError,),
        )(self._revoke_once)

    async def run(self) -> SweepResult:
        result = SweepResult()
        expired = await self.store.list_expired_subscriptions(self.clock())

        if not expired:
            logger.debug("No expired subscriptions")
            return result

        logger.info(f"⏰ Sweeping {len(expired)} expired subscriptions")

        for item in expired:
            result.processed += 1
            try:
                await self._process(item, result)
            except Exception as e:
                result.failed += 1
                result.errors.append(f"Error processing subscription {item.subscription.id}: {e}")
                logger.error(f"Sweep failed for {item.subscription.id}: {e}")

        logger.info(
            f"⏰ Sweep done: {result.processed} processed, "
            f"{result.removed} removed, {result.failed} failed"
        )
        return result

    async def _process(self, item: SubscriptionWithDetails, result: SweepResult):
        subscription, user, channel = item.subscription, item.user, item.channel

        if user is None or channel is None:
            # Left active so a later run can retry once the data is fixed
            result.failed += 1
            result.errors.append(f"Missing user or channel data for subscription {subscription.id}")
            return

        removed = False
        try:
            await self._revoke(channel, user)
            removed = True
        except ExternalServiceError as e:
            result.failed += 1
            result.errors.append(
                f"Failed to remove user {user.telegram_id} from channel {channel.channel_id}: {e.message}"
            )

        if not await self.store.mark_subscription_expired(subscription.id):
            logger.info(f"Subscription {subscription.id} was already expired")

        # counted only once the mark step has gone through
        if removed:
            result.removed += 1
            await self._notify(user.telegram_id, messages.subscription_expired(channel, self.bot_username))

    async def _revoke_once(self, channel, user):
        await self.invite_issuer.revoke_access(channel, user)

    async def _notify(self, telegram_id: str, text: str):
        try:
            await self.gateway.send_message(telegram_id, text)
        except ExternalServiceError as e:
            logger.warning(f"Could not notify user {telegram_id}: {e.message}")
