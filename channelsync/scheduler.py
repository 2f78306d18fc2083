"""
Scheduler for automated platform syncs

Uses APScheduler to run the full sync on a cron. Each run is persisted to
sync_logs by the orchestrator.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from typing import Optional

from channelsync.config import get_settings
from channelsync.services.sync_service import SyncOrchestrator
from channelsync.utils.cache import ClientCache
from channelsync.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()

# Shared with the API so a scheduled sync invalidates what the dashboard sees
_cache: Optional[ClientCache] = None


async def scheduled_sync_all():
    """Run sync_all for every connected platform"""
    try:
        log.info("Starting scheduled sync...")
        report = await SyncOrchestrator(cache=_cache).sync_all(trigger="scheduled")
        if report.success:
            log.info(
                f"Scheduled sync completed: {report.records_fetched} fetched, "
                f"{report.records_written} written in {report.duration_seconds:.1f}s"
            )
        else:
            log.warning(f"Scheduled sync finished without a successful platform: {report.error}")
    except Exception as e:
        log.error(f"Scheduled sync error: {str(e)}")


def setup_scheduler(cache: Optional[ClientCache] = None):
    """Register the sync job from the configured cron expression"""
    global _cache
    _cache = cache

    scheduler.add_job(
        scheduled_sync_all,
        CronTrigger.from_crontab(settings.sync_all_schedule),
        id="sync_all",
        name="Sync all platforms",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    log.info(f"Scheduled sync_all with cron '{settings.sync_all_schedule}'")


def start_scheduler(cache: Optional[ClientCache] = None):
    """Start the scheduler"""
    setup_scheduler(cache)
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")
