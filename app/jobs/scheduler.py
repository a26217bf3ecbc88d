"""
APScheduler configuration for background fulfillment jobs.

Jobs:
- LMS retry ledger: replays failed shipment creations and status pushes
  on an interval, independent of any request.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone='UTC'
)


async def process_lms_retry_queue():
    """Replay due LMS retry ledger entries in a fresh session."""
    from app.database import get_db_session
    from app.services.lms_sync_service import LMSSyncService

    try:
        async with get_db_session() as db:
            result = await LMSSyncService(db).process_retry_queue()
        if result.get('processed'):
            logger.info(
                f"LMS retry job: {result['succeeded']}/{result['processed']} succeeded, "
                f"{result['exhausted']} exhausted"
            )
    except Exception as e:
        logger.error(f"LMS retry job failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not settings.LMS_RETRY_WORKER_ENABLED:
        logger.info("LMS retry worker disabled, scheduler not started")
        return

    if not scheduler.running:
        scheduler.add_job(
            process_lms_retry_queue,
            'interval',
            seconds=settings.LMS_RETRY_INTERVAL_SECONDS,
            id='process_lms_retry_queue',
            name='Process LMS Retry Ledger',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
