"""
Background jobs and scheduler wiring.
"""
from datetime import date, timedelta

import pytest

from luno.db.models import SubscriptionBill
from luno.security.rate_limit import rate_limiter
from luno.tasks import jobs
from luno.tasks.schedule import create_scheduler


def test_scheduler_registers_jobs(configure):
    configure(NOTIFICATIONS_CRON="15 */2 * * *")
    scheduler = create_scheduler()

    job_ids = {job.id for job in scheduler.get_jobs()}
    assert job_ids == {"check_notifications", "expire_invitations", "cleanup_sessions", "cleanup_rate_limits"}


@pytest.mark.asyncio
async def test_job_check_notifications(session, user, sent_emails):
    session.add(SubscriptionBill(
        user_id=user["id"],
        name="Phone",
        type="bill",
        amount=30.0,
        due_date=date.today() + timedelta(days=1),
    ))
    session.commit()

    result = await jobs.job_check_notifications()
    assert result["status"] == "success"
    assert result["items_checked"] == 1


@pytest.mark.asyncio
async def test_job_reports_failure(monkeypatch):
    async def broken(session, now=None):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(jobs, "check_notifications", broken)

    result = await jobs.job_check_notifications()
    assert result == {"status": "error", "error": "database is locked"}


@pytest.mark.asyncio
async def test_cleanup_jobs_on_empty_database():
    assert await jobs.job_expire_invitations() == {"status": "success", "expired": 0}
    assert await jobs.job_cleanup_sessions() == {"status": "success", "deactivated": 0}


@pytest.mark.asyncio
async def test_job_cleanup_rate_limits():
    rate_limiter.check("stale", window_seconds=-1)
    result = await jobs.job_cleanup_rate_limits()
    assert result == {"status": "success", "removed": 1}
