"""
Validation helpers and request models for MNEE Gatekeeper

All user inputs must be validated before processing.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Union
import re

WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


# ============================================
# CUSTOM VALIDATORS
# ============================================

def is_wallet_address(address: Optional[str]) -> bool:
    return bool(address) and bool(WALLET_ADDRESS_RE.fullmatch(address))


def is_tx_hash(tx_hash: Optional[str]) -> bool:
    return bool(tx_hash) and bool(TX_HASH_RE.fullmatch(tx_hash))


def normalize_tx_hash(tx_hash: str) -> str:
    """Hashes are hex, so case variants name the same transaction"""
    return tx_hash.strip().lower()


# ============================================
# REQUEST MODELS
# ============================================

class PaymentVerifyRequest(BaseModel):
    """Browser client submission after an on-chain payment.

    Every field is optional at the schema level so that absent values
    reach the flow and are reported as MISSING_FIELDS.
    """
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: Optional[str] = Field(default=None, alias="txHash", max_length=100)
    telegram_id: Optional[Union[str, int]] = Field(default=None, alias="telegramId")
    plan_id: Optional[str] = Field(default=None, alias="planId", max_length=100)
    channel_id: Optional[str] = Field(default=None, alias="channelId", max_length=100)

    @field_validator("tx_hash", "plan_id", "channel_id")
    @classmethod
    def strip_strings(cls, v):
        if v is None:
            return v
        return v.strip()

    @field_validator("telegram_id")
    @classmethod
    def telegram_id_as_string(cls, v):
        if v is None:
            return v
        return str(v).strip()
