"""
MNEE Gatekeeper Telegram Bot - Background Scheduler
Runs the expiry sweep in-process when SWEEP_INTERVAL_MINUTES > 0
"""

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.expiry_sweep import ExpirySweep

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Periodic trigger for the expiry sweep.
    The cron endpoint stays the primary trigger; both may run at once.
    """

    def __init__(self, sweep: ExpirySweep, interval_minutes: int):
        self.sweep = sweep
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler()
        self._setup_jobs()

    def _setup_jobs(self):
        self.scheduler.add_job(
            self.run_sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id="expiry_sweep",
            name="Revoke expired subscriptions",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )

    async def run_sweep(self):
        try:
            result = await self.sweep.run()
            if result.processed:
                logger.info(f"📅 Scheduled sweep: {result.to_dict()}")
        except Exception as e:
            logger.error(f"❌ Scheduled sweep failed: {e}")

    def start(self):
        self.scheduler.start()
        logger.info(f"📅 Sweep scheduler started (every {self.interval_minutes} min)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("📅 Sweep scheduler stopped")
