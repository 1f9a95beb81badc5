"""
Pytest Configuration for MNEE Gatekeeper Backend Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
"""

import pytest
import sys
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from hexbytes import HexBytes

from infrastructure.config import (
    AppConfig,
    ChainConfig,
    GatekeeperConfig,
    SweepConfig,
    TelegramConfig,
)
from infrastructure.errors import ConflictError, ErrorCode
from services.models import (
    Channel,
    PlanWithChannel,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionWithDetails,
    Transaction,
    User,
)
from services.subscription_store import SubscriptionStore, check_plan_terms


# =============================================================================
# CONSTANTS
# =============================================================================

TOKEN_ADDRESS = "0x8ccedbae4916b79da7f3f612efb2eb93a2bfd6cf"
CHANNEL_WALLET = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
PAYER_WALLET = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
OTHER_WALLET = "0xcccccccccccccccccccccccccccccccccccccccc"

TRANSFER_TOPIC = HexBytes("0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")
APPROVAL_TOPIC = HexBytes("0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925")

TOKEN_UNIT = 10 ** 18


def tx_hash(n: int = 1) -> str:
    return "0x" + f"{n:064x}"


def _address_topic(address: str) -> HexBytes:
    return HexBytes("0x" + "0" * 24 + address[2:].lower())


def transfer_log(
    sender: str,
    recipient: str,
    value: int,
    token: str = TOKEN_ADDRESS,
    log_index: int = 0,
    topic: HexBytes = TRANSFER_TOPIC,
) -> dict:
    """A raw receipt log entry as returned by eth_getTransactionReceipt"""
    return {
        "address": token,
        "topics": [topic, _address_topic(sender), _address_topic(recipient)],
        "data": HexBytes(value.to_bytes(32, "big")),
        "blockHash": HexBytes("0x" + "11" * 32),
        "blockNumber": 100,
        "transactionHash": HexBytes(tx_hash(1)),
        "transactionIndex": 0,
        "logIndex": log_index,
        "removed": False,
    }


def make_receipt(logs: List[dict], status: int = 1) -> dict:
    return {"status": status, "logs": logs, "transactionHash": HexBytes(tx_hash(1))}


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemorySubscriptionStore(SubscriptionStore):
    """
    SubscriptionStore double with the same uniqueness rules as the
    Postgres schema (channel_id, telegram_id, tx_hash).
    """

    def __init__(self):
        self.channels: Dict[str, Channel] = {}
        self.plans: Dict[str, SubscriptionPlan] = {}
        self.users: Dict[str, User] = {}
        self.subscriptions: Dict[str, Subscription] = {}
        self.transactions: Dict[str, Transaction] = {}

    # ── Seeding helpers ──

    def add_channel(self, channel_id="-1001234567890", name="Alpha Calls",
                    admin="42", wallet=CHANNEL_WALLET) -> Channel:
        channel = Channel(
            id=str(uuid.uuid4()),
            channel_id=channel_id,
            channel_name=name,
            admin_telegram_id=admin,
            wallet_address=wallet.lower(),
        )
        self.channels[channel.id] = channel
        return channel

    def add_plan(self, channel: Channel, name="Monthly", price="10",
                 duration_days: Optional[int] = 30, is_active=True) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            id=str(uuid.uuid4()),
            channel_id=channel.id,
            name=name,
            price_mnee=Decimal(price),
            duration_days=duration_days,
            is_active=is_active,
        )
        self.plans[plan.id] = plan
        return plan

    def add_user(self, telegram_id="777", wallet=None) -> User:
        user = User(id=str(uuid.uuid4()), telegram_id=telegram_id, wallet_address=wallet)
        self.users[telegram_id] = user
        return user

    def add_subscription(self, user: Optional[User], channel: Optional[Channel], plan_id="plan",
                         expiry_date=None, status=SubscriptionStatus.ACTIVE) -> Subscription:
        sub = Subscription(
            id=str(uuid.uuid4()),
            user_id=user.id if user else "missing-user",
            channel_id=channel.id if channel else "missing-channel",
            plan_id=plan_id,
            status=status,
            expiry_date=expiry_date,
        )
        self.subscriptions[sub.id] = sub
        return sub

    # ── Channels ──

    async def get_channel(self, channel_id):
        return self.channels.get(channel_id)

    async def get_channel_by_external_id(self, external_id):
        return next((c for c in self.channels.values() if c.channel_id == external_id), None)

    async def list_channels_for_admin(self, admin_telegram_id):
        return [c for c in self.channels.values() if c.admin_telegram_id == admin_telegram_id]

    async def create_channel(self, external_id, channel_name, admin_telegram_id, wallet_address):
        if await self.get_channel_by_external_id(external_id):
            raise ConflictError("This channel is already registered.", ErrorCode.CHANNEL_EXISTS)
        return self.add_channel(external_id, channel_name, admin_telegram_id, wallet_address)

    # ── Plans ──

    async def get_plan_with_channel(self, plan_id):
        plan = self.plans.get(plan_id)
        if plan is None:
            return None
        return PlanWithChannel(plan=plan, channel=self.channels.get(plan.channel_id))

    async def list_active_plans(self, channel_id):
        plans = [p for p in self.plans.values() if p.channel_id == channel_id and p.is_active]
        return sorted(plans, key=lambda p: p.price_mnee)

    async def create_plan(self, channel_id, name, price, duration_days):
        check_plan_terms(price, duration_days)
        channel = self.channels[channel_id]
        return self.add_plan(channel, name, str(price), duration_days)

    # ── Users ──

    async def get_or_create_user(self, telegram_id, wallet_address=None):
        user = self.users.get(telegram_id)
        if user is None:
            user = User(id=str(uuid.uuid4()), telegram_id=telegram_id)
            self.users[telegram_id] = user
        if wallet_address:
            user.wallet_address = wallet_address.lower()
        return user

    # ── Subscriptions & transactions ──

    async def get_transaction_by_hash(self, tx_hash):
        return self.transactions.get(tx_hash)

    async def create_subscription_with_transaction(self, user_id, channel_id, plan_id, expiry_date,
                                                   tx_hash, from_address, to_address, amount):
        if tx_hash in self.transactions:
            raise ConflictError("Transaction already processed", ErrorCode.ALREADY_PROCESSED)
        sub = Subscription(
            id=str(uuid.uuid4()),
            user_id=user_id,
            channel_id=channel_id,
            plan_id=plan_id,
            expiry_date=expiry_date,
            created_at=datetime.now(timezone.utc),
        )
        tx = Transaction(
            id=str(uuid.uuid4()),
            subscription_id=sub.id,
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
        )
        self.subscriptions[sub.id] = sub
        self.transactions[tx_hash] = tx
        return sub, tx

    async def list_expired_subscriptions(self, now):
        users_by_id = {u.id: u for u in self.users.values()}
        return [
            SubscriptionWithDetails(
                subscription=s,
                user=users_by_id.get(s.user_id),
                channel=self.channels.get(s.channel_id),
            )
            for s in self.subscriptions.values()
            if s.status == SubscriptionStatus.ACTIVE and s.expiry_date is not None and s.expiry_date < now
        ]

    async def mark_subscription_expired(self, subscription_id):
        sub = self.subscriptions.get(subscription_id)
        if sub is None or sub.status != SubscriptionStatus.ACTIVE:
            return False
        sub.status = SubscriptionStatus.EXPIRED
        return True


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def store():
    return InMemorySubscriptionStore()


@pytest.fixture
def chain_config():
    return ChainConfig(
        rpc_url="http://rpc.invalid",
        token_address=TOKEN_ADDRESS,
        timeout_seconds=1.0,
    )


@pytest.fixture
def telegram_config():
    return TelegramConfig(bot_token="", bot_username="GatekeeperBot", timeout_seconds=1.0)


@pytest.fixture
def app_config():
    return AppConfig(app_url="https://app.example", cron_secret="cron-secret")


@pytest.fixture
def sweep_config():
    return SweepConfig(removal_attempts=2, retry_delay_seconds=0)


@pytest.fixture
def gatekeeper_config(chain_config, telegram_config, app_config, sweep_config):
    return GatekeeperConfig(
        chain=chain_config,
        telegram=telegram_config,
        app=app_config,
        sweep=sweep_config,
    )


@pytest.fixture
def gateway():
    """Messaging capability double; every call succeeds"""
    gw = MagicMock()
    gw.send_message = AsyncMock(return_value=None)
    gw.create_invite_link = AsyncMock(return_value="https://t.me/+invite123")
    gw.remove_member = AsyncMock(return_value=None)
    gw.is_channel_admin = AsyncMock(return_value=True)
    gw.get_chat_title = AsyncMock(return_value="Alpha Calls")
    gw.answer_callback = AsyncMock(return_value=None)
    gw.close = AsyncMock(return_value=None)
    return gw


@pytest.fixture
def mock_w3():
    """AsyncWeb3 double; tests set eth.get_transaction_receipt"""
    w3 = MagicMock()
    w3.eth.get_transaction_receipt = AsyncMock()
    return w3


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real APIs)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
