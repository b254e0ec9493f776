"""Background scheduler for periodic reconciliation from the mirror."""

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fieldserve.config import get_settings
from fieldserve.database import async_session_maker
from fieldserve.services.mirror import MirrorStore
from fieldserve.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)
settings = get_settings()

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def reconcile_job(mirror: MirrorStore) -> None:
    """Background job pulling users and workers from the mirror."""
    logger.info("Starting scheduled reconciliation")
    try:
        async with async_session_maker() as db:
            results = await ReconciliationService(db, mirror).run()
            logger.info(
                f"Reconciliation complete: {results.users.synced} users, "
                f"{results.workers.synced} workers"
            )
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)


def setup_scheduler(mirror: MirrorStore) -> AsyncIOScheduler:
    """Set up and start the background task scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        reconcile_job,
        trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
        args=[mirror],
        next_run_time=datetime.now(UTC) + timedelta(seconds=10),
        id="reconcile_mirror",
        name="Reconcile users and workers from the mirror",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started")

    return scheduler


def shutdown_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global scheduler

    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
        scheduler = None
