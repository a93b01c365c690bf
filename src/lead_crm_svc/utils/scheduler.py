import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

_logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None

FOLLOW_UP_REMINDER_JOB_ID = "follow_up_reminders"


def init_scheduler() -> AsyncIOScheduler:
    """Start the module-level scheduler; repeated calls return the same instance."""
    global _scheduler
    if _scheduler is not None:
        return _scheduler

    try:
        _scheduler = AsyncIOScheduler()
        _scheduler.start()
        return _scheduler
    except Exception as e:
        _logger.error(e, exc_info=True)
        raise


def schedule_interval_job(job, minutes: int, job_id: str) -> None:
    """Register (or replace) a recurring job on the running scheduler."""
    scheduler = init_scheduler()
    scheduler.add_job(
        job,
        "interval",
        minutes=minutes,
        id=job_id,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    _logger.info("Scheduled job %s every %s minutes", job_id, minutes)


async def shutdown_scheduler(wait: bool = True) -> None:
    """Stop the scheduler if running. Idempotent."""
    global _scheduler
    if _scheduler is None:
        return

    s = _scheduler
    try:
        # shutdown blocks; keep the event loop free
        await asyncio.to_thread(s.shutdown, wait)
    except Exception as e:
        _logger.error(e, exc_info=True)
        raise
    finally:
        _scheduler = None
