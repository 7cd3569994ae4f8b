"""
Scheduler for the lead pipeline background jobs
- Lead intake bridge (calls -> leads), every BRIDGE_INTERVAL_SECONDS
- Incoming lead listener, every LISTENER_INTERVAL_SECONDS
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from leadhub.config import (
    BRIDGE_ENABLED,
    BRIDGE_INTERVAL_SECONDS,
    LISTENER_ENABLED,
    LISTENER_INTERVAL_SECONDS,
)

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Scheduled job manager"""

    def __init__(self, timezone: str = "UTC"):
        self.scheduler = AsyncIOScheduler(timezone=timezone)

    def start(
        self,
        pipeline,
        bridge_enabled: bool = BRIDGE_ENABLED,
        listener_enabled: bool = LISTENER_ENABLED,
    ):
        """Register the enabled jobs and start the scheduler"""
        if bridge_enabled:
            pipeline.bridge.start(self.scheduler, BRIDGE_INTERVAL_SECONDS)
        else:
            logger.info("Lead intake bridge disabled (BRIDGE_ENABLED=false)")

        if listener_enabled:
            pipeline.listener.start(self.scheduler, LISTENER_INTERVAL_SECONDS)

        self.scheduler.start()
        logger.info(f"Scheduler started ({len(self.scheduler.get_jobs())} jobs)")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
