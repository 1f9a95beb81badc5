"""
Cron API Router
Externally scheduled expiry sweep (Vercel cron / GitHub Actions / PM2)
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from api.dependencies import Services, get_services
from infrastructure.errors import UnauthorizedError

logger = logging.getLogger("CronAPI")

router = APIRouter(prefix="/api/cron", tags=["Cron"])


def require_cron_secret(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """Bearer CRON_SECRET. No secret configured = open endpoint."""
    secret = services.config.app.cron_secret
    if not secret:
        return
    if not hmac.compare_digest((authorization or "").encode(), f"Bearer {secret}".encode()):
        raise UnauthorizedError()


@router.api_route("/check-expiry", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def check_expiry(services: Services = Depends(get_services)):
    """Revoke access for every subscription past its expiry date"""
    result = await services.expiry_sweep.run()

    if not result.processed:
        return {"message": "No expired subscriptions", **result.to_dict()}

    logger.info(f"[Cron] Expiry sweep: {result.removed} removed, {result.failed} failed")
    return {"message": "Expiry check completed", **result.to_dict()}
