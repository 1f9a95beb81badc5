"""
Gatekeeper Services
Subscription persistence, on-chain verification, payment flow and expiry sweep
"""

from .models import (
    Channel,
    SubscriptionPlan,
    User,
    Subscription,
    Transaction,
    SubscriptionStatus,
    TransactionStatus,
)
from .subscription_store import SubscriptionStore, SupabaseSubscriptionStore
from .chain_verifier import ChainVerifier, VerifiedTransfer
from .invite_issuer import InviteIssuer
from .payment_service import PaymentVerificationFlow, PaymentResult
from .expiry_sweep import ExpirySweep, SweepResult

__all__ = [
    # Records
    "Channel",
    "SubscriptionPlan",
    "User",
    "Subscription",
    "Transaction",
    "SubscriptionStatus",
    "TransactionStatus",

    # Store
    "SubscriptionStore",
    "SupabaseSubscriptionStore",

    # Chain
    "ChainVerifier",
    "VerifiedTransfer",

    # Flows
    "InviteIssuer",
    "PaymentVerificationFlow",
    "PaymentResult",
    "ExpirySweep",
    "SweepResult",
]
