"""
Subscription Store - persistence for channels, plans, users,
subscriptions and transactions.

One method per query. Supabase (PostgREST) is the production backend;
the uniqueness constraints on channels.channel_id, users.telegram_id and
transactions.tx_hash are the final arbiter for concurrent writers.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from infrastructure.errors import ConflictError, DatabaseError, ErrorCode, ValidationError
from infrastructure.supabase_rest import SupabaseREST
from services.models import (
    Channel,
    PlanWithChannel,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionWithDetails,
    Transaction,
    TransactionStatus,
    User,
)

logger = logging.getLogger("SubscriptionStore")


def check_plan_terms(price: Decimal, duration_days: Optional[int]):
    """Plan invariants: price > 0, duration (if any) a positive integer"""
    if price is None or price <= 0:
        raise ValidationError("Invalid price. Must be a positive number.")
    if duration_days is not None and (not isinstance(duration_days, int) or duration_days <= 0):
        raise ValidationError("Invalid duration. Days must be a positive whole number.")


def pg_timestamp(value: datetime) -> str:
    # "Z" instead of "+00:00": a literal "+" in a query string decodes as a space
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class SubscriptionStore(ABC):
    """Narrow repository interface used by every component"""

    # ── Channels ──

    @abstractmethod
    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        """Channel by internal id"""

    @abstractmethod
    async def get_channel_by_external_id(self, external_id: str) -> Optional[Channel]:
        """Channel by Telegram chat id"""

    async def find_channel(self, identifier: str) -> Optional[Channel]:
        """Channel by internal id, falling back to the Telegram chat id"""
        channel = await self.get_channel(identifier)
        if channel:
            return channel
        return await self.get_channel_by_external_id(identifier)

    async def find_channel_for_admin(self, identifier: str, admin_telegram_id: str) -> Optional[Channel]:
        """Same lookup as find_channel, restricted to channels the admin owns"""
        for channel in await self.list_channels_for_admin(admin_telegram_id):
            if channel.id == identifier or channel.channel_id == identifier:
                return channel
        return None

    @abstractmethod
    async def list_channels_for_admin(self, admin_telegram_id: str) -> List[Channel]:
        ...

    @abstractmethod
    async def create_channel(
        self,
        external_id: str,
        channel_name: str,
        admin_telegram_id: str,
        wallet_address: str,
    ) -> Channel:
        """Raises ConflictError(CHANNEL_EXISTS) when the chat is already registered"""

    # ── Plans ──

    @abstractmethod
    async def get_plan_with_channel(self, plan_id: str) -> Optional[PlanWithChannel]:
        ...

    @abstractmethod
    async def list_active_plans(self, channel_id: str) -> List[SubscriptionPlan]:
        """Active plans of a channel, cheapest first"""

    @abstractmethod
    async def create_plan(
        self,
        channel_id: str,
        name: str,
        price: Decimal,
        duration_days: Optional[int],
    ) -> SubscriptionPlan:
        ...

    # ── Users ──

    @abstractmethod
    async def get_or_create_user(self, telegram_id: str, wallet_address: Optional[str] = None) -> User:
        """Upsert keyed by telegram id; rebinds the wallet when it differs"""

    # ── Subscriptions & transactions ──

    @abstractmethod
    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def create_subscription_with_transaction(
        self,
        user_id: str,
        channel_id: str,
        plan_id: str,
        expiry_date: Optional[datetime],
        tx_hash: str,
        from_address: str,
        to_address: str,
        amount: Decimal,
    ) -> Tuple[Subscription, Transaction]:
        """Both rows or neither. Raises ConflictError(ALREADY_PROCESSED) on a duplicate hash."""

    @abstractmethod
    async def list_expired_subscriptions(self, now: datetime) -> List[SubscriptionWithDetails]:
        """Active subscriptions with a non-null expiry before `now`"""

    @abstractmethod
    async def mark_subscription_expired(self, subscription_id: str) -> bool:
        """active -> expired. Returns False if it was no longer active."""


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


class SupabaseSubscriptionStore(SubscriptionStore):
    """SubscriptionStore over the Supabase REST API"""

    def __init__(self, client: SupabaseREST):
        self.db = client

    # ── Channels ──

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        # uuid columns reject other literals with a 400, so don't ask
        if not _is_uuid(channel_id):
            return None
        result = await self.db.table("channels").select("*").eq("id", channel_id).single().execute()
        return Channel.from_row(result.data) if result.data else None

    async def get_channel_by_external_id(self, external_id: str) -> Optional[Channel]:
        result = await self.db.table("channels").select("*").eq("channel_id", external_id).single().execute()
        return Channel.from_row(result.data) if result.data else None

    async def list_channels_for_admin(self, admin_telegram_id: str) -> List[Channel]:
        result = await self.db.table("channels") \
            .select("*") \
            .eq("admin_telegram_id", admin_telegram_id) \
            .order("created_at") \
            .execute()
        return [Channel.from_row(row) for row in result.data]

    async def create_channel(
        self,
        external_id: str,
        channel_name: str,
        admin_telegram_id: str,
        wallet_address: str,
    ) -> Channel:
        try:
            result = await self.db.table("channels").insert({
                "channel_id": external_id,
                "channel_name": channel_name,
                "admin_telegram_id": admin_telegram_id,
                "wallet_address": wallet_address.lower(),
            }).execute()
        except ConflictError as e:
            raise ConflictError(
                "This channel is already registered.",
                ErrorCode.CHANNEL_EXISTS,
                {"channel_id": external_id}
            ) from e

        row = _first(result.data)
        if not row:
            raise DatabaseError("Channel insert returned no row")
        logger.info(f"Channel registered: {external_id} by admin {admin_telegram_id}")
        return Channel.from_row(row)

    # ── Plans ──

    async def get_plan_with_channel(self, plan_id: str) -> Optional[PlanWithChannel]:
        if not _is_uuid(plan_id):
            return None
        result = await self.db.table("subscription_plans") \
            .select("*, channel:channels(*)") \
            .eq("id", plan_id) \
            .single() \
            .execute()
        if not result.data:
            return None
        channel_row = result.data.get("channel")
        return PlanWithChannel(
            plan=SubscriptionPlan.from_row(result.data),
            channel=Channel.from_row(channel_row) if channel_row else None,
        )

    async def list_active_plans(self, channel_id: str) -> List[SubscriptionPlan]:
        if not _is_uuid(channel_id):
            return []
        result = await self.db.table("subscription_plans") \
            .select("*") \
            .eq("channel_id", channel_id) \
            .eq("is_active", "true") \
            .order("price_mnee") \
            .execute()
        return [SubscriptionPlan.from_row(row) for row in result.data]

    async def create_plan(
        self,
        channel_id: str,
        name: str,
        price: Decimal,
        duration_days: Optional[int],
    ) -> SubscriptionPlan:
        check_plan_terms(price, duration_days)
        result = await self.db.table("subscription_plans").insert({
            "channel_id": channel_id,
            "name": name,
            "price_mnee": str(price),
            "duration_days": duration_days,
            "is_active": True,
        }).execute()

        row = _first(result.data)
        if not row:
            raise DatabaseError("Plan insert returned no row")
        return SubscriptionPlan.from_row(row)

    # ── Users ──

    async def _get_user(self, telegram_id: str) -> Optional[User]:
        result = await self.db.table("users").select("*").eq("telegram_id", telegram_id).single().execute()
        return User.from_row(result.data) if result.data else None

    async def get_or_create_user(self, telegram_id: str, wallet_address: Optional[str] = None) -> User:
        wallet = wallet_address.lower() if wallet_address else None
        user = await self._get_user(telegram_id)

        if user is None:
            try:
                result = await self.db.table("users").insert({
                    "telegram_id": telegram_id,
                    "wallet_address": wallet,
                }).execute()
                row = _first(result.data)
                if not row:
                    raise DatabaseError("User insert returned no row")
                return User.from_row(row)
            except ConflictError:
                # Another request created the user first
                user = await self._get_user(telegram_id)
                if user is None:
                    raise

        if wallet and user.wallet_address != wallet:
            result = await self.db.table("users") \
                .update({"wallet_address": wallet}) \
                .eq("id", user.id) \
                .execute()
            row = _first(result.data)
            if row:
                return User.from_row(row)
            user.wallet_address = wallet
        return user

    # ── Subscriptions & transactions ──

    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[Transaction]:
        result = await self.db.table("transactions").select("*").eq("tx_hash", tx_hash).single().execute()
        return Transaction.from_row(result.data) if result.data else None

    async def create_subscription_with_transaction(
        self,
        user_id: str,
        channel_id: str,
        plan_id: str,
        expiry_date: Optional[datetime],
        tx_hash: str,
        from_address: str,
        to_address: str,
        amount: Decimal,
    ) -> Tuple[Subscription, Transaction]:
        result = await self.db.table("subscriptions").insert({
            "user_id": user_id,
            "channel_id": channel_id,
            "plan_id": plan_id,
            "status": SubscriptionStatus.ACTIVE.value,
            "expiry_date": pg_timestamp(expiry_date) if expiry_date else None,
        }).execute()
        sub_row = _first(result.data)
        if not sub_row:
            raise DatabaseError("Subscription insert returned no row")
        subscription = Subscription.from_row(sub_row)

        try:
            result = await self.db.table("transactions").insert({
                "subscription_id": subscription.id,
                "tx_hash": tx_hash,
                "from_address": from_address.lower(),
                "to_address": to_address.lower(),
                "amount": str(amount),
                "status": TransactionStatus.CONFIRMED.value,
            }).execute()
            tx_row = _first(result.data)
            if not tx_row:
                raise DatabaseError("Transaction insert returned no row")
        except Exception as e:
            await self._rollback_subscription(subscription.id, tx_hash)
            if isinstance(e, ConflictError):
                raise ConflictError(
                    "Transaction already processed",
                    ErrorCode.ALREADY_PROCESSED,
                    {"tx_hash": tx_hash}
                ) from e
            raise

        return subscription, Transaction.from_row(tx_row)

    async def _rollback_subscription(self, subscription_id: str, tx_hash: str):
        """Compensate a half-written pair so no active subscription lacks its payment"""
        logger.warning(f"Rolling back subscription {subscription_id} (tx {tx_hash[:10]}...)")
        try:
            await self.db.table("subscriptions").delete().eq("id", subscription_id).execute()
        except Exception as e:
            logger.error(f"Rollback of subscription {subscription_id} failed: {e}")
            raise DatabaseError(
                "Subscription rollback failed",
                original_error=e,
                details={"subscription_id": subscription_id, "tx_hash": tx_hash}
            ) from e

    async def list_expired_subscriptions(self, now: datetime) -> List[SubscriptionWithDetails]:
        result = await self.db.table("subscriptions") \
            .select("*, user:users(*), channel:channels(*)") \
            .eq("status", SubscriptionStatus.ACTIVE.value) \
            .not_is("expiry_date", "null") \
            .lt("expiry_date", pg_timestamp(now)) \
            .execute()
        return [SubscriptionWithDetails.from_row(row) for row in result.data]

    async def mark_subscription_expired(self, subscription_id: str) -> bool:
        result = await self.db.table("subscriptions") \
            .update({"status": SubscriptionStatus.EXPIRED.value}) \
            .eq("id", subscription_id) \
            .eq("status", SubscriptionStatus.ACTIVE.value) \
            .execute()
        return bool(result.data)


def _first(data):
    if isinstance(data, list):
        return data[0] if data else None
    return data
