"""
MNEE Gatekeeper API Server
Entry point for the FastAPI application
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import channels_router, cron_router, payment_router, telegram_router
from api.dependencies import Services, build_services, close_services
from infrastructure.config import GatekeeperConfig, get_config
from infrastructure.errors import error_tracker, register_exception_handlers
from infrastructure.rpc import chain_name
from sentry_config import init_sentry
from tg_handlers.scheduler import SweepScheduler

logger = logging.getLogger("Gatekeeper")


def create_app(config: Optional[GatekeeperConfig] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    `services` skips wiring from configuration (tests pass doubles here).
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(config)

        scheduler = None
        if config.sweep.interval_minutes > 0:
            scheduler = SweepScheduler(app.state.services.expiry_sweep, config.sweep.interval_minutes)
            scheduler.start()

        logger.info(f"🔐 Gatekeeper started ({config.environment.value}, {chain_name(config.chain.chain_id)})")
        try:
            yield
        finally:
            if scheduler:
                scheduler.stop()
            if owned:
                await close_services(app.state.services)
            logger.info("Gatekeeper stopped")

    app = FastAPI(
        title="MNEE Gatekeeper",
        description="MNEE stablecoin subscriptions for private Telegram channels",
        version="1.0.0",
        debug=config.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    app.include_router(payment_router.router)
    app.include_router(telegram_router.router)
    app.include_router(cron_router.router)
    app.include_router(channels_router.router)

    @app.get("/api/health", tags=["System"])
    async def health():
        """Liveness plus error statistics"""
        return {
            "status": "ok",
            "service": "mnee-gatekeeper",
            "environment": config.environment.value,
            "chain": chain_name(config.chain.chain_id),
            "errors": error_tracker.get_stats(),
        }

    return app


def main():
    config = get_config()
    logging.basicConfig(
        level=config.monitoring.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_sentry(config)
    uvicorn.run(create_app(config), host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))


if __name__ == "__main__":
    main()
