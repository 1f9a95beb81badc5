"""
Sentry Error Monitoring Configuration
Error tracking for the MNEE Gatekeeper backend
"""
import os
import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from infrastructure.config import GatekeeperConfig

logger = logging.getLogger("Sentry")

SENSITIVE_KEYS = ['bot_token', 'service_key', 'service_role', 'secret', 'password', 'api_key', 'authorization']


def filter_sensitive_data(event, hint):
    """Remove credentials from Sentry events."""
    request = event.get('request') or {}

    data = request.get('data')
    if isinstance(data, dict):
        for key in list(data):
            if any(s in key.lower() for s in SENSITIVE_KEYS):
                data[key] = '[FILTERED]'

    headers = request.get('headers')
    if isinstance(headers, dict):
        for key in list(headers):
            if key.lower() in ('authorization', 'x-telegram-bot-api-secret-token', 'apikey'):
                headers[key] = '[FILTERED]'

    # Bot tokens end up in aiogram error messages via the request URL
    if 'exception' in event and 'values' in event['exception']:
        for exc in event['exception']['values']:
            value = exc.get('value') or ''
            if '/bot' in value or any(s in value.lower() for s in SENSITIVE_KEYS):
                exc['value'] = '[FILTERED - sensitive data]'

    return event


def init_sentry(config: GatekeeperConfig) -> bool:
    """Initialize Sentry when SENTRY_DSN is set."""
    dsn = config.monitoring.sentry_dsn

    if not dsn:
        logger.info("[Sentry] No SENTRY_DSN found - error tracking disabled")
        return False

    release = os.getenv("COMMIT_SHA", "local")

    sentry_sdk.init(
        dsn=dsn,
        environment=config.environment.value,

        traces_sample_rate=0.2,

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],

        before_send=filter_sensitive_data,
        send_default_pii=False,
        release=f"mnee-gatekeeper@{release}",
    )

    logger.info(f"[Sentry] ✓ Initialized for {config.environment.value} (release: {release[:8]})")
    return True


def capture_payment_breadcrumb(action: str, tx_hash: str = None, details: dict = None):
    """Add breadcrumb for a payment verification step."""
    sentry_sdk.add_breadcrumb(
        category="payment",
        message=action,
        level="info",
        data={"tx_hash": tx_hash[:12] + "..." if tx_hash else None, **(details or {})}
    )
