"""
Tasks module - background job definitions.

Jobs can be triggered via:
- Webhook endpoint (POST /api/jobs/check-notifications)
- External cron
- The CLI
- Optional in-process scheduler (APScheduler)
"""

from luno.tasks import jobs, schedule

__all__ = ["jobs", "schedule"]
