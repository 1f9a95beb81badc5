"""
Payment Verification Flow
Turns a claimed transaction hash into a live channel invite

Steps (each one a hard gate):
1. Required fields present
2. Plan + owning channel exist
3. On-chain transfer to the channel wallet for at least the plan price
4. Hash not credited before
5. User upsert, wallet bound to the verified sender
6. Expiry = now + duration_days (None for lifetime plans)
7. Subscription + transaction written as one unit
8. Single-use invite
9. Best-effort Telegram notification
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from infrastructure.errors import (
    ConflictError,
    ErrorCode,
    ExternalServiceError,
    MissingFieldsError,
    NotFoundError,
)
from security.validation import normalize_tx_hash
from services.chain_verifier import ChainVerifier
from services.invite_issuer import InviteIssuer
from services.models import format_timestamp, utc_now
from services.subscription_store import SubscriptionStore
from tg_handlers import messages

logger = logging.getLogger("PaymentFlow")


@dataclass
class PaymentResult:
    invite_link: str
    subscription_id: str
    expiry_date: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "inviteLink": self.invite_link,
            "subscriptionId": self.subscription_id,
            "expiryDate": format_timestamp(self.expiry_date),
        }


class PaymentVerificationFlow:
    """
    Orchestrates verifier, store and invite issuer for one payment claim.

    Usage:
        flow = PaymentVerificationFlow(store, verifier, issuer, gateway)
        result = await flow.verify_payment(tx_hash, telegram_id, plan_id, channel_id)
    """

    def __init__(
        self,
        store: SubscriptionStore,
        verifier: ChainVerifier,
        invite_issuer: InviteIssuer,
        gateway,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.verifier = verifier
        self.invite_issuer = invite_issuer
        self.gateway = gateway
        self.clock = clock

    async def verify_payment(
        self,
        tx_hash: Optional[str],
        telegram_id: Optional[str],
        plan_id: Optional[str],
        channel_id: Optional[str],
    ) -> PaymentResult:
        missing = [
            name for name, value in (
                ("txHash", tx_hash),
                ("telegramId", telegram_id),
                ("planId", plan_id),
                ("channelId", channel_id),
            )
            if not value
        ]
        if missing:
            raise MissingFieldsError(missing)

        tx_hash = normalize_tx_hash(tx_hash)
        telegram_id = str(telegram_id)

        found = await self.store.get_plan_with_channel(plan_id)
        if found is None:
            raise NotFoundError("Plan", plan_id, ErrorCode.PLAN_NOT_FOUND)
        plan, channel = found.plan, found.channel
        if channel is None:
            raise NotFoundError("Channel", channel_id, ErrorCode.CHANNEL_NOT_FOUND)

        transfer = await self.verifier.verify_transfer(tx_hash, channel.wallet_address, plan.price_mnee)

        # Fast path only; the unique tx_hash constraint decides races
        if await self.store.get_transaction_by_hash(tx_hash):
            logger.info(f"Replay of {tx_hash[:12]}... rejected")
            raise ConflictError("Transaction already processed", ErrorCode.ALREADY_PROCESSED, {"tx_hash": tx_hash})

        user = await self.store.get_or_create_user(telegram_id, transfer.sender_address)

        expiry_date = None
        if not plan.is_lifetime:
            expiry_date = self.clock() + timedelta(days=plan.duration_days)

        subscription, _ = await self.store.create_subscription_with_transaction(
            user_id=user.id,
            channel_id=channel.id,
            plan_id=plan.id,
            expiry_date=expiry_date,
            tx_hash=tx_hash,
            from_address=transfer.sender_address,
            to_address=channel.wallet_address,
            amount=transfer.amount_tokens,
        )
        logger.info(
            f"💳 Subscription {subscription.id} for user {telegram_id} "
            f"on {channel.channel_id} (plan {plan.name}, tx {tx_hash[:12]}...)"
        )

        try:
            invite_link = await self.invite_issuer.issue_invite(channel, subscription.id)
        except ExternalServiceError:
            # Subscription stays valid; admins can re-issue by hand
            logger.error(f"Invite issuance failed for subscription {subscription.id}")
            raise

        await self._notify(telegram_id, messages.payment_confirmed(channel, expiry_date, invite_link))

        return PaymentResult(
            invite_link=invite_link,
            subscription_id=subscription.id,
            expiry_date=expiry_date,
        )

    async def _notify(self, telegram_id: str, text: str):
        try:
            await self.gateway.send_message(telegram_id, text)
        except ExternalServiceError as e:
            # User may have blocked the bot; the link is returned in the response anyway
            logger.warning(f"Could not notify user {telegram_id}: {e.message}")
