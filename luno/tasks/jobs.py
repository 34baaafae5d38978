"""
Background job definitions.

Jobs can be triggered via:
1. Webhook endpoint (POST /api/jobs/check-notifications)
2. External cron (curl to the webhook)
3. The CLI (python cli.py check-notifications)
4. Optional: APScheduler for in-process scheduling

Every job returns a result dict with a "status" key and never raises.
"""
from typing import Any

from luno.db.database import get_session_context
from luno.logger import get_logger
from luno.security.rate_limit import rate_limiter
from luno.services.households import expire_invitations
from luno.services.notifications import check_notifications
from luno.services.tool_router import cleanup_expired_sessions

logger = get_logger(__name__)


# === Reminder Job ===

async def job_check_notifications() -> dict[str, Any]:
    """
    Scan upcoming bills, subscriptions and trials and send reminders.

    Returns:
        Job result dict
    """
    try:
        with get_session_context() as session:
            result = await check_notifications(session)
        return {"status": "success", **result}
    except Exception as e:
        logger.exception("job_check_notifications_failed")
        return {
            "status": "error",
            "error": str(e),
        }


# === Invitation Expiry Job ===

async def job_expire_invitations() -> dict[str, Any]:
    """Mark pending household invitations past their expiry as expired."""
    try:
        with get_session_context() as session:
            expired = expire_invitations(session)
        logger.info("invitations_expired", count=expired)
        return {"status": "success", "expired": expired}
    except Exception as e:
        logger.exception("job_expire_invitations_failed")
        return {
            "status": "error",
            "error": str(e),
        }


# === Cleanup Jobs ===

async def job_cleanup_sessions() -> dict[str, Any]:
    """Deactivate Tool Router sessions past their expiry."""
    try:
        with get_session_context() as session:
            deactivated = cleanup_expired_sessions(session)
        return {"status": "success", "deactivated": deactivated}
    except Exception as e:
        logger.exception("job_cleanup_sessions_failed")
        return {
            "status": "error",
            "error": str(e),
        }


async def job_cleanup_rate_limits() -> dict[str, Any]:
    """Drop expired rate limit windows from memory."""
    return {"status": "success", "removed": rate_limiter.cleanup()}
