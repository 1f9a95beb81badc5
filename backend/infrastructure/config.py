"""
Configuration Management for MNEE Gatekeeper
Environment-based configuration for the payment, bot and sweep components

Features:
- Environment-based config (dev/staging/prod)
- Component dataclasses (Supabase, Telegram, chain, sweep, monitoring)
- Sanitised export (no secrets)
- Dynamic reload
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("Config")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class SupabaseConfig:
    """PostgREST endpoint of the Supabase project"""
    url: str = ""
    service_key: str = ""
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_key)


@dataclass
class TelegramConfig:
    """Bot credentials and invite policy"""
    bot_token: str = ""
    bot_username: str = ""
    webhook_secret: Optional[str] = None
    invite_ttl_hours: int = 24
    invite_member_limit: int = 1
    timeout_seconds: float = 10.0


@dataclass
class ChainConfig:
    """Blockchain configuration (single token, single chain)"""
    rpc_url: str = "https://ethereum-sepolia-rpc.publicnode.com"
    chain_id: int = 11155111  # Sepolia
    token_address: str = ""
    token_symbol: str = "MNEE"
    token_decimals: int = 18
    timeout_seconds: float = 15.0


@dataclass
class AppConfig:
    """Public URLs and inbound guards"""
    app_url: str = "https://localhost:3000"
    cron_secret: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class SweepConfig:
    """Expiry sweep settings"""
    interval_minutes: int = 0  # 0 = in-process scheduler disabled
    removal_attempts: int = 2
    retry_delay_seconds: float = 1.0


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None


@dataclass
class GatekeeperConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    # Component configs
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    app: AppConfig = field(default_factory=AppConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "GatekeeperConfig":
        """Create configuration from environment variables"""
        env = os.environ.get("GATEKEEPER_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            debug=os.environ.get("DEBUG", "true").lower() == "true",
        )

        config.supabase = SupabaseConfig(
            url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
            service_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY", ""),
            timeout_seconds=float(os.environ.get("SUPABASE_TIMEOUT", "10")),
        )

        config.telegram = TelegramConfig(
            bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
            bot_username=os.environ.get("BOT_USERNAME", ""),
            webhook_secret=os.environ.get("TELEGRAM_WEBHOOK_SECRET") or None,
            timeout_seconds=float(os.environ.get("TELEGRAM_TIMEOUT", "10")),
        )

        config.chain = ChainConfig(
            rpc_url=os.environ.get("ETHEREUM_RPC_URL", ChainConfig.rpc_url),
            chain_id=int(os.environ.get("CHAIN_ID", "11155111")),
            token_address=os.environ.get("MNEE_CONTRACT_ADDRESS", ""),
            timeout_seconds=float(os.environ.get("RPC_TIMEOUT", "15")),
        )

        origins = os.environ.get("CORS_ORIGINS", "*")
        config.app = AppConfig(
            app_url=os.environ.get("APP_URL", AppConfig.app_url).rstrip("/"),
            cron_secret=os.environ.get("CRON_SECRET") or None,
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

        config.sweep = SweepConfig(
            interval_minutes=int(os.environ.get("SWEEP_INTERVAL_MINUTES", "0")),
            removal_attempts=max(1, int(os.environ.get("SWEEP_REMOVAL_ATTEMPTS", "2"))),
            retry_delay_seconds=float(os.environ.get("SWEEP_RETRY_DELAY", "1")),
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            sentry_dsn=os.environ.get("SENTRY_DSN") or None,
        )

        # Production hardening
        if config.environment == Environment.PRODUCTION:
            config.debug = False
            if config.monitoring.log_level == "DEBUG":
                config.monitoring.log_level = "INFO"

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (hiding secrets)"""
        hidden = ("key", "token", "secret", "password", "dsn")

        def sanitize(obj):
            if isinstance(obj, dict):
                return {k: sanitize(v) for k, v in obj.items() if not any(h in k.lower() for h in hidden)}
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            else:
                return obj

        return sanitize(self)


# ============================================
# GLOBAL INSTANCE
# ============================================

config = GatekeeperConfig.from_env()

logger.info(f"Configuration loaded for environment: {config.environment.value}")


def get_config() -> GatekeeperConfig:
    """Get the global configuration"""
    return config


def reload_config() -> GatekeeperConfig:
    """Reload configuration from environment"""
    global config
    config = GatekeeperConfig.from_env()
    logger.info("Configuration reloaded")
    return config
