"""
Optional in-process scheduling with APScheduler.

Enabled with ENABLE_SCHEDULER. Without it, trigger the reminder job from
external cron through POST /api/jobs/check-notifications.
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from luno.config import get_settings
from luno.logger import get_logger
from luno.tasks.jobs import (
    job_check_notifications,
    job_cleanup_rate_limits,
    job_cleanup_sessions,
    job_expire_invitations,
)

logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler() -> AsyncIOScheduler:
    """
    Create and configure the scheduler.

    Returns:
        Scheduler instance (not started)
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    settings = get_settings()

    # Bill, subscription and trial reminders (hourly by default)
    scheduler.add_job(
        job_check_notifications,
        CronTrigger.from_crontab(settings.NOTIFICATIONS_CRON, timezone="UTC"),
        id="check_notifications",
        name="Bill and subscription reminders",
        replace_existing=True,
    )

    # Invitation expiry (daily at 3am)
    scheduler.add_job(
        job_expire_invitations,
        CronTrigger.from_crontab("0 3 * * *", timezone="UTC"),
        id="expire_invitations",
        name="Household invitation expiry",
        replace_existing=True,
    )

    # Tool Router session cleanup (hourly)
    scheduler.add_job(
        job_cleanup_sessions,
        CronTrigger.from_crontab("30 * * * *", timezone="UTC"),
        id="cleanup_sessions",
        name="Tool Router session cleanup",
        replace_existing=True,
    )

    scheduler.add_job(
        job_cleanup_rate_limits,
        IntervalTrigger(minutes=5),
        id="cleanup_rate_limits",
        name="Rate limit store cleanup",
        replace_existing=True,
    )

    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    """
    Start the background scheduler.

    Must be called from a running event loop (the app lifespan).

    Returns:
        Running scheduler instance
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("scheduler_already_running")
        return _scheduler

    _scheduler = create_scheduler()
    _scheduler.start()
    logger.info("scheduler_started", jobs=[job.name for job in _scheduler.get_jobs()])
    return _scheduler


def stop_scheduler(scheduler: Optional[AsyncIOScheduler] = None) -> None:
    """
    Stop the background scheduler.

    Args:
        scheduler: Scheduler to stop (uses global if None)
    """
    global _scheduler

    target = scheduler or _scheduler

    if target:
        target.shutdown(wait=False)
        logger.info("scheduler_stopped")
        _scheduler = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the current scheduler instance."""
    return _scheduler
