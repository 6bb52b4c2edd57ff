import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from epg_bridge.services.epg_cache import EpgCache


logger = logging.getLogger(__name__)

class EPGScheduler:
    """Scheduler that keeps the EPG cache warm between requests"""

    def __init__(self, epg_cache: EpgCache, cron_expression: str, misfire_grace_sec: int = 3600):
        self.epg_cache = epg_cache
        self.cron_expression = cron_expression
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None

    async def _refresh_job(self) -> None:
        """Background job that refreshes the EPG dataset"""
        logger.info("Scheduled EPG refresh triggered")
        try:
            dataset = await self.epg_cache.refresh()
            logger.info(
                "Scheduled refresh finished: %s channels, %s programmes",
                len(dataset.channels),
                dataset.programme_count,
            )
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    @property
    def enabled(self) -> bool:
        return bool(self.cron_expression)

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self) -> None:
        """Start the scheduler with the EPG refresh job"""
        if not self.enabled:
            logger.info("EPG refresh schedule disabled - cache refreshes on demand only")
            return

        if self.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron_expression)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron_expression, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._refresh_job,
            trigger=trigger,
            id='epg_refresh',
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job('epg_refresh')
        return job.next_run_time if job else None
