"""
Chain Verifier - on-chain verification of MNEE token transfers

Given a transaction hash and an expected (recipient, minimum amount),
fetches the receipt, finds the first Transfer log from the token contract
paid to the recipient and checks the amount. Read-only.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Optional

from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from infrastructure.config import ChainConfig
from infrastructure.errors import ChainVerificationError, ErrorCode, ExternalServiceError
from infrastructure.rpc import get_offline_web3
from security.validation import is_tx_hash

logger = logging.getLogger("ChainVerifier")

# Minimal ERC-20 ABI: only the Transfer event is decoded
TRANSFER_EVENT_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]


def to_base_units(amount: Decimal, decimals: int = 18) -> int:
    """Human token amount -> smallest unit, truncated toward zero"""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(value: int, decimals: int = 18) -> Decimal:
    return Decimal(value) / (Decimal(10) ** decimals)


@dataclass
class VerifiedTransfer:
    """Result of a successful verification"""
    tx_hash: str
    sender_address: str
    recipient_address: str
    transferred_amount: int  # smallest unit
    decimals: int = 18

    @property
    def amount_tokens(self) -> Decimal:
        return from_base_units(self.transferred_amount, self.decimals)


class ChainVerifier:
    """
    Verifies token transfers against a single token contract.

    Usage:
        verifier = ChainVerifier(w3, chain_config)
        transfer = await verifier.verify_transfer(tx_hash, wallet, Decimal("10"))
    """

    def __init__(self, w3: AsyncWeb3, chain: ChainConfig):
        self.w3 = w3
        self.chain = chain
        self.token_address = (chain.token_address or "").lower()
        self.decimals = chain.token_decimals
        self.timeout = chain.timeout_seconds

        # Decoding needs only the codec, never the network
        offline = get_offline_web3()
        self._transfer_event = offline.eth.contract(abi=TRANSFER_EVENT_ABI).events.Transfer()

    async def verify_transfer(
        self,
        tx_hash: str,
        expected_recipient: str,
        minimum_amount: Decimal,
    ) -> VerifiedTransfer:
        """
        Returns the first matching transfer or raises ChainVerificationError
        with TX_NOT_FOUND, TX_FAILED, NO_MATCHING_TRANSFER or INSUFFICIENT_AMOUNT.
        """
        if not is_tx_hash(tx_hash):
            raise ChainVerificationError(ErrorCode.TX_NOT_FOUND, tx_hash, {"reason": "malformed hash"})

        receipt = await self._fetch_receipt(tx_hash)

        if receipt is None:
            raise ChainVerificationError(ErrorCode.TX_NOT_FOUND, tx_hash)

        if receipt.get("status") != 1:
            logger.info(f"Tx {tx_hash[:12]}... reverted (status={receipt.get('status')})")
            raise ChainVerificationError(ErrorCode.TX_FAILED, tx_hash)

        recipient = expected_recipient.lower()
        match = self._find_transfer(receipt.get("logs") or [], recipient)

        if match is None:
            logger.info(f"Tx {tx_hash[:12]}... has no transfer to {recipient[:10]}...")
            raise ChainVerificationError(ErrorCode.NO_MATCHING_TRANSFER, tx_hash)

        sender, amount = match
        required = to_base_units(minimum_amount, self.decimals)

        if amount < required:
            logger.info(f"Tx {tx_hash[:12]}... amount {amount} < required {required}")
            raise ChainVerificationError(
                ErrorCode.INSUFFICIENT_AMOUNT,
                tx_hash,
                {"required": str(required), "received": str(amount)}
            )

        logger.info(f"✅ Verified {tx_hash[:12]}...: {from_base_units(amount, self.decimals)} from {sender[:10]}...")
        return VerifiedTransfer(
            tx_hash=tx_hash,
            sender_address=sender,
            recipient_address=recipient,
            transferred_amount=amount,
            decimals=self.decimals,
        )

    async def _fetch_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.wait_for(
                self.w3.eth.get_transaction_receipt(tx_hash),
                timeout=self.timeout,
            )
        except TransactionNotFound:
            return None
        except asyncio.TimeoutError as e:
            logger.error(f"RPC timeout fetching receipt {tx_hash[:12]}...")
            raise ExternalServiceError("rpc", "Blockchain RPC timed out") from e
        except (OSError, ValueError, Web3Exception) as e:
            # transport failures and JSON-RPC error responses
            logger.error(f"RPC error fetching receipt {tx_hash[:12]}...: {e}")
            raise ExternalServiceError("rpc", "Blockchain RPC request failed") from e

    def _find_transfer(self, logs, recipient: str):
        """First token Transfer log paid to `recipient` -> (sender, amount)"""
        for log in logs:
            address = str(log.get("address", "")).lower()
            if address != self.token_address:
                continue

            decoded = self._decode_transfer(log)
            if decoded is None:
                continue

            args = decoded["args"]
            if str(args["to"]).lower() == recipient:
                return str(args["from"]).lower(), int(args["value"])
        return None

    def _decode_transfer(self, log):
        try:
            return self._transfer_event.process_log(log)
        except Exception as e:
            # Approval and other events from the same contract land here
            logger.debug(f"Skipping undecodable log: {e}")
            return None
