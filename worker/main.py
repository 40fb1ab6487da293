"""
Maintenance worker with scheduled jobs.
Keeps part conflicts, pending payments and invoice due dates up to date.
"""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from worker.config import settings
from worker.jobs.maintenance_jobs import (
    expire_pending_transactions,
    flag_overdue_invoices,
    scan_part_conflicts,
)

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        scan_part_conflicts,
        trigger=CronTrigger.from_crontab(settings.CONFLICT_SCAN_CRON),
        id="part_conflict_scan",
        name="Detect part conflicts",
        replace_existing=True,
    )
    scheduler.add_job(
        expire_pending_transactions,
        trigger=CronTrigger.from_crontab(settings.EXPIRED_TRANSACTIONS_CRON),
        id="expired_transactions",
        name="Expire stale pending transactions",
        replace_existing=True,
    )
    scheduler.add_job(
        flag_overdue_invoices,
        trigger=CronTrigger.from_crontab(settings.OVERDUE_INVOICES_CRON),
        id="overdue_invoices",
        name="Flag overdue invoices",
        replace_existing=True,
    )
    return scheduler


async def main():
    """Initialize and run the worker scheduler."""
    logger.info("Starting maintenance worker...")

    scheduler = build_scheduler()

    # Start scheduler
    scheduler.start()
    logger.info(f"Scheduler started. Jobs: {[job.id for job in scheduler.get_jobs()]}")

    # Keep the worker running
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down worker...")
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
