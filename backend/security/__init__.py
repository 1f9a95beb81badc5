"""
MNEE Gatekeeper Security Module
Input validation for inbound requests and bot commands
"""

from .validation import (
    PaymentVerifyRequest,
    is_wallet_address,
    is_tx_hash,
    normalize_tx_hash,
)

__all__ = [
    "PaymentVerifyRequest",
    "is_wallet_address",
    "is_tx_hash",
    "normalize_tx_hash",
]
