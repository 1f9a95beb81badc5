"""
Payment API Router
Browser client submits a tx hash after paying; returns the channel invite
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import Services, get_services
from security.validation import PaymentVerifyRequest
from sentry_config import capture_payment_breadcrumb

logger = logging.getLogger("PaymentAPI")

router = APIRouter(prefix="/api/payment", tags=["Payment"])


@router.post("/verify")
async def verify_payment(
    request: PaymentVerifyRequest,
    services: Services = Depends(get_services),
):
    """
    Verify an MNEE transfer and grant channel access.

    Errors are raised as GatekeeperError and rendered by the global
    exception handlers: 400 missing fields / verification failure /
    already processed, 404 plan or channel, 502 RPC or Telegram.
    """
    capture_payment_breadcrumb("verify_payment", request.tx_hash, {"plan_id": request.plan_id})
    result = await services.payment_flow.verify_payment(
        tx_hash=request.tx_hash,
        telegram_id=request.telegram_id,
        plan_id=request.plan_id,
        channel_id=request.channel_id,
    )
    logger.info(f"Payment accepted: subscription {result.subscription_id}")
    return result.to_dict()
