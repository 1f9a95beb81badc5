"""
Domain records for channel subscriptions.

Rows coming back from PostgREST are parsed here once; the rest of the
code only ever sees these dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"  # reserved, nothing produces it yet


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a PostgREST timestamptz into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def to_decimal(value: Any) -> Decimal:
    # str() first so floats from JSON keep their printed precision
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class Channel:
    """A registered private channel"""
    id: str
    channel_id: str  # external Telegram chat id, e.g. "-1001234567890"
    channel_name: str
    admin_telegram_id: str
    wallet_address: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Channel":
        return cls(
            id=str(row["id"]),
            channel_id=str(row["channel_id"]),
            channel_name=row.get("channel_name") or "Unnamed Channel",
            admin_telegram_id=str(row["admin_telegram_id"]),
            wallet_address=(row.get("wallet_address") or "").lower(),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "admin_telegram_id": self.admin_telegram_id,
            "wallet_address": self.wallet_address,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class SubscriptionPlan:
    """A purchasable access tier; duration_days None means lifetime"""
    id: str
    channel_id: str
    name: str
    price_mnee: Decimal
    duration_days: Optional[int] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def is_lifetime(self) -> bool:
        return self.duration_days is None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubscriptionPlan":
        days = row.get("duration_days")
        return cls(
            id=str(row["id"]),
            channel_id=str(row["channel_id"]),
            name=row.get("name") or "",
            price_mnee=to_decimal(row["price_mnee"]),
            duration_days=int(days) if days is not None else None,
            is_active=bool(row.get("is_active", True)),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "name": self.name,
            "price_mnee": float(self.price_mnee),
            "duration_days": self.duration_days,
            "is_active": self.is_active,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class User:
    """A subscriber known by Telegram user id"""
    id: str
    telegram_id: str
    wallet_address: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        wallet = row.get("wallet_address")
        return cls(
            id=str(row["id"]),
            telegram_id=str(row["telegram_id"]),
            wallet_address=wallet.lower() if wallet else None,
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Subscription:
    id: str
    user_id: str
    channel_id: str
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    expiry_date: Optional[datetime] = None  # None = never expires
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subscription":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            channel_id=str(row["channel_id"]),
            plan_id=str(row["plan_id"]),
            status=SubscriptionStatus(row.get("status", "active")),
            expiry_date=parse_timestamp(row.get("expiry_date")),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Transaction:
    """The on-chain payment that funded exactly one subscription"""
    id: str
    subscription_id: str
    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    status: TransactionStatus = TransactionStatus.CONFIRMED
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=str(row["id"]),
            subscription_id=str(row["subscription_id"]),
            tx_hash=row["tx_hash"],
            from_address=row.get("from_address") or "",
            to_address=row.get("to_address") or "",
            amount=to_decimal(row.get("amount", 0)),
            status=TransactionStatus(row.get("status", "confirmed")),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class PlanWithChannel:
    plan: SubscriptionPlan
    channel: Optional[Channel]


@dataclass
class SubscriptionWithDetails:
    """Expired-subscription query row with its user and channel joined"""
    subscription: Subscription
    user: Optional[User] = None
    channel: Optional[Channel] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubscriptionWithDetails":
        user_row = row.get("user")
        channel_row = row.get("channel")
        return cls(
            subscription=Subscription.from_row(row),
            user=User.from_row(user_row) if user_row else None,
            channel=Channel.from_row(channel_row) if channel_row else None,
        )
