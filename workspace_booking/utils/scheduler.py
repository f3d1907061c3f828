"""
Periodic jobs.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from starlette.concurrency import run_in_threadpool

from workspace_booking.config import settings
from workspace_booking.db import SessionLocal
from workspace_booking.services.no_show import run_no_show_sweep

logger = logging.getLogger(__name__)


async def no_show_sweep_job():
    """Mark overdue confirmed bookings as no-show."""
    try:
        result = await run_in_threadpool(run_no_show_sweep, SessionLocal)
        if result.failed_tenants:
            logger.warning(f"No-show sweep failed for tenants: {result.failed_tenants}")
    except Exception as e:
        logger.error(f"No-show sweep crashed: {e}", exc_info=True)


def start_scheduler() -> AsyncIOScheduler:
    """Start the scheduler; must be called from a running event loop."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        no_show_sweep_job,
        trigger=IntervalTrigger(minutes=settings.no_show_sweep_interval_minutes),
        id="no_show_sweep",
        name="Mark no-show bookings",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        f"Scheduler started, no-show sweep every {settings.no_show_sweep_interval_minutes} minutes"
    )

    return scheduler
