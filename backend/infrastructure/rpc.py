# infrastructure/rpc.py
"""
Centralized RPC configuration for MNEE Gatekeeper.
One chain, one token: Ethereum mainnet or Sepolia depending on CHAIN_ID.
"""
from typing import Optional

from web3 import AsyncWeb3, Web3

from infrastructure.config import ChainConfig

MAINNET_CHAIN_ID = 1
SEPOLIA_CHAIN_ID = 11155111

CHAIN_NAMES = {
    MAINNET_CHAIN_ID: "Ethereum",
    SEPOLIA_CHAIN_ID: "Sepolia",
}


def get_async_web3(chain: ChainConfig, rpc_url: Optional[str] = None) -> AsyncWeb3:
    """Get an AsyncWeb3 instance for the configured chain.

    Callers bound each request with asyncio.wait_for(chain.timeout_seconds).
    """
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or chain.rpc_url))


def get_offline_web3() -> Web3:
    """Provider-less Web3 used only for ABI encoding/decoding."""
    return Web3()


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"chain {chain_id}")
