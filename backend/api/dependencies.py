"""
Service container shared by the routers

Built once in the application lifespan; routers receive it through
Depends(get_services) and tests override that dependency.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from infrastructure.config import GatekeeperConfig
from infrastructure.rpc import get_async_web3
from infrastructure.supabase_rest import SupabaseREST
from services.chain_verifier import ChainVerifier
from services.expiry_sweep import ExpirySweep
from services.invite_issuer import InviteIssuer
from services.payment_service import PaymentVerificationFlow
from services.subscription_store import SubscriptionStore, SupabaseSubscriptionStore
from tg_handlers.admin import AdminCommandInterpreter
from tg_handlers.bot import TelegramGateway

logger = logging.getLogger("Services")


@dataclass
class Services:
    config: GatekeeperConfig
    store: SubscriptionStore
    gateway: TelegramGateway
    payment_flow: PaymentVerificationFlow
    expiry_sweep: ExpirySweep
    commands: AdminCommandInterpreter
    db: Optional[SupabaseREST] = None


def build_services(config: GatekeeperConfig) -> Services:
    """Wire every collaborator from configuration"""
    db = SupabaseREST(
        config.supabase.url,
        config.supabase.service_key,
        timeout=config.supabase.timeout_seconds,
    )
    store = SupabaseSubscriptionStore(db)
    gateway = TelegramGateway.from_config(config.telegram)
    issuer = InviteIssuer(gateway)
    verifier = ChainVerifier(get_async_web3(config.chain), config.chain)

    if not config.chain.token_address:
        logger.warning("MNEE_CONTRACT_ADDRESS not set - no payment can be verified")

    return Services(
        config=config,
        store=store,
        gateway=gateway,
        payment_flow=PaymentVerificationFlow(store, verifier, issuer, gateway),
        expiry_sweep=ExpirySweep(store, issuer, gateway, config.sweep, config.telegram),
        commands=AdminCommandInterpreter(store, gateway, config.telegram, config.app),
        db=db,
    )


async def close_services(services: Services):
    await services.gateway.close()
    if services.db is not None:
        await services.db.close()


def get_services(request: Request) -> Services:
    return request.app.state.services
