"""
Scheduled sync jobs.

Runs inside the FastAPI process: one interval job for new orders and one for
the modified-order scan. Disabled unless SYNC_SCHEDULE_ENABLED is true.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketsync.core.config import get_settings
from marketsync.core.enums import SyncMode
from marketsync.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def run_scheduled_sync(mode: str):
    """Job body: run the orchestrator for every active account."""
    logger.info(f"=== SCHEDULED {mode.upper()} SYNC STARTING ===")
    report = await SyncOrchestrator().sync_all(mode=SyncMode(mode))
    logger.info(f"Scheduled {mode} sync finished ({report.status}): {report.totals()}")
    return report


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SYNC_SCHEDULE_ENABLED:
        scheduler.add_job(
            run_scheduled_sync,
            IntervalTrigger(minutes=settings.NEW_ORDERS_INTERVAL_MINUTES),
            args=[SyncMode.NEW.value],
            id="sync_new_orders",
            name="Sync New Orders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            run_scheduled_sync,
            IntervalTrigger(minutes=settings.MODIFIED_ORDERS_INTERVAL_MINUTES),
            args=[SyncMode.MODIFIED.value],
            id="sync_modified_orders",
            name="Sync Modified Orders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            f"Scheduled sync jobs added: new orders every {settings.NEW_ORDERS_INTERVAL_MINUTES}m, "
            f"modified orders every {settings.MODIFIED_ORDERS_INTERVAL_MINUTES}m"
        )
    else:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped successfully")
    scheduler = None


def get_scheduler_status():
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }
