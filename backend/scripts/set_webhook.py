"""
Register the Telegram webhook for the gatekeeper bot

Usage: python scripts/set_webhook.py https://your-domain.example
"""

import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from infrastructure.config import get_config
from tg_handlers.bot import TelegramGateway

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main(base_url: str):
    config = get_config()
    gateway = TelegramGateway.from_config(config.telegram)
    if gateway.bot is None:
        logger.error("❌ TELEGRAM_BOT_TOKEN not set!")
        return

    url = f"{base_url.rstrip('/')}/api/bot/webhook"
    try:
        await gateway.bot.set_webhook(
            url=url,
            secret_token=config.telegram.webhook_secret,
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,
        )
        logger.info(f"✅ Webhook set to {url}")
    finally:
        await gateway.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
