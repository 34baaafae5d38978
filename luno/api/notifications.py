"""
In-app notifications, reminder preferences and the reminder job trigger.
"""
from fastapi import APIRouter, Depends, Query

from luno.deps import CurrentUser, DBSession, verify_webhook_secret
from luno.errors import AuthenticationError
from luno.schemas import (
    NotificationListOut,
    NotificationOut,
    NotificationPreferencesIn,
    NotificationPreferencesOut,
)
from luno.services import notifications
from luno.tasks.jobs import job_check_notifications

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/notifications", response_model=NotificationListOut)
async def list_notifications(
    user: CurrentUser,
    db: DBSession,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
):
    items = notifications.list_notifications(db, user.id, unread_only=unread_only, limit=limit)
    return NotificationListOut(
        items=[NotificationOut.model_validate(n) for n in items],
        unread_count=notifications.unread_count(db, user.id),
    )


@router.get("/notifications/preferences", response_model=NotificationPreferencesOut)
async def get_preferences(user: CurrentUser, db: DBSession):
    return notifications.get_preferences(db, user.id)


@router.put("/notifications/preferences", response_model=NotificationPreferencesOut)
async def update_preferences(request: NotificationPreferencesIn, user: CurrentUser, db: DBSession):
    return notifications.update_preferences(db, user.id, request.model_dump(exclude_unset=True))


@router.post("/notifications/read-all")
async def mark_all_read(user: CurrentUser, db: DBSession):
    return {"success": True, "updated": notifications.mark_all_read(db, user.id)}


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: int, user: CurrentUser, db: DBSession):
    return NotificationOut.model_validate(notifications.mark_read(db, user.id, notification_id))


@router.delete("/notifications/{notification_id}", status_code=204)
async def delete_notification(notification_id: int, user: CurrentUser, db: DBSession):
    notifications.delete_notification(db, user.id, notification_id)


@router.post("/jobs/check-notifications")
async def trigger_check_notifications(verified: bool = Depends(verify_webhook_secret)):
    """
    Run the reminder scan now.

    Call this from cron when the in-process scheduler is disabled:
    ```bash
    curl -X POST https://your-api.com/api/jobs/check-notifications \
      -H "X-Webhook-Secret: your-secret"
    ```
    """
    if not verified:
        raise AuthenticationError("Invalid webhook secret")
    return await job_check_notifications()
