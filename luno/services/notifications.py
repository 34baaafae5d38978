"""
Bill, subscription and trial reminders.

`check_notifications` is the scheduled scan: it looks at active items due
in the next week, applies each user's reminder-day preferences and creates
in-app notifications and emails.
"""
import json
import math
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from luno.db.models import (
    Notification,
    NotificationPreference,
    SubscriptionBill,
    User,
    as_utc,
    utc_now,
)
from luno.errors import NotFoundError
from luno.logger import get_logger
from luno.services import email as email_service
from luno.services.currency import plain_number

logger = get_logger(__name__)

DEFAULT_REMINDER_DAYS = [7, 3, 1]
LOOKAHEAD_DAYS = 7

NOTIFICATION_TYPES = {
    "bill": "bill_due",
    "subscription": "subscription_renewal",
    "free_trial": "trial_expiring",
}

REMINDER_FIELDS = {
    "bill": "bill_reminder_days",
    "subscription": "subscription_reminder_days",
    "free_trial": "trial_reminder_days",
}


# === Preferences ===

def _load_days(raw: Optional[str]) -> list[int]:
    if not raw:
        return list(DEFAULT_REMINDER_DAYS)
    try:
        days = json.loads(raw)
    except json.JSONDecodeError:
        return list(DEFAULT_REMINDER_DAYS)
    return [int(d) for d in days] if isinstance(days, list) else list(DEFAULT_REMINDER_DAYS)


def preferences_to_dict(pref: Optional[NotificationPreference]) -> dict[str, Any]:
    """Preferences as plain values; defaults when the user has no row."""
    if pref is None:
        return {
            "bill_reminder_days": list(DEFAULT_REMINDER_DAYS),
            "subscription_reminder_days": list(DEFAULT_REMINDER_DAYS),
            "trial_reminder_days": list(DEFAULT_REMINDER_DAYS),
            "email_enabled": True,
            "in_app_enabled": True,
        }
    return {
        "bill_reminder_days": _load_days(pref.bill_reminder_days),
        "subscription_reminder_days": _load_days(pref.subscription_reminder_days),
        "trial_reminder_days": _load_days(pref.trial_reminder_days),
        "email_enabled": pref.email_enabled is not False,
        "in_app_enabled": pref.in_app_enabled is not False,
    }


def get_preferences(session: Session, user_id: int) -> dict[str, Any]:
    return preferences_to_dict(session.get(NotificationPreference, user_id))


def update_preferences(session: Session, user_id: int, changes: dict[str, Any]) -> dict[str, Any]:
    pref = session.get(NotificationPreference, user_id) or NotificationPreference(user_id=user_id)
    for field, value in changes.items():
        if value is None:
            continue
        if field in REMINDER_FIELDS.values():
            value = json.dumps(value)
        setattr(pref, field, value)
    pref.updated_at = utc_now()
    session.add(pref)
    session.commit()
    session.refresh(pref)
    return preferences_to_dict(pref)


# === Inbox ===

def list_notifications(session: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    statement = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        statement = statement.where(Notification.is_read == False)  # noqa: E712
    return session.exec(statement.order_by(Notification.created_at.desc()).limit(limit)).all()


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    ).one()


def _get_owned(session: Session, user_id: int, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(session: Session, user_id: int, notification_id: int) -> Notification:
    notification = _get_owned(session, user_id, notification_id)
    notification.is_read = True
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def mark_all_read(session: Session, user_id: int) -> int:
    unread = list_notifications(session, user_id, unread_only=True, limit=10_000)
    for notification in unread:
        notification.is_read = True
        session.add(notification)
    session.commit()
    return len(unread)


def delete_notification(session: Session, user_id: int, notification_id: int) -> None:
    session.delete(_get_owned(session, user_id, notification_id))
    session.commit()


# === Reminder scan ===

def _days_label(n: int) -> str:
    return f"{n} day{'' if n == 1 else 's'}"


def days_until_due(due_date, now: datetime) -> int:
    """Whole days until midnight UTC of the due date, rounded up."""
    due = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
    return math.ceil((due - now).total_seconds() / 86400)


def build_message(item: SubscriptionBill, days: int) -> tuple[str, str]:
    amount_suffix = f" Amount: {item.currency or 'USD'} {plain_number(item.amount)}" if item.amount else ""
    if item.type == "bill":
        return f"Bill Due: {item.name}", f"{item.name} is due in {_days_label(days)}.{amount_suffix}"
    if item.type == "subscription":
        return (
            f"Subscription Renewal: {item.name}",
            f"{item.name} will renew in {_days_label(days)}.{amount_suffix}",
        )
    return (
        f"Free Trial Ending: {item.name}",
        f"Your free trial for {item.name} expires in {_days_label(days)}.",
    )


def build_email(item: SubscriptionBill, days: int) -> tuple[str, str]:
    currency = item.currency or "USD"
    if item.type == "bill":
        return email_service.bill_due_email(item.name, item.due_date, days, item.amount, currency)
    if item.type == "subscription":
        return email_service.subscription_renewal_email(item.name, item.due_date, days, item.amount, currency)
    return email_service.trial_expiration_email(item.name, item.due_date, days)


async def check_notifications(session: Session, now: Optional[datetime] = None) -> dict[str, Any]:
    """
    Scan upcoming items and send due reminders.

    Args:
        session: Database session
        now: Reference time (defaults to current UTC time)

    Returns:
        {message, processed, emails_sent, items_checked}
    """
    now = as_utc(now) if now else utc_now()
    today = now.date()

    items = session.exec(
        select(SubscriptionBill).where(
            SubscriptionBill.is_active == True,  # noqa: E712
            SubscriptionBill.due_date >= today,
            SubscriptionBill.due_date <= today + timedelta(days=LOOKAHEAD_DAYS),
        )
    ).all()

    if not items:
        return {"message": "No upcoming items to notify", "processed": 0, "emails_sent": 0, "items_checked": 0}

    user_ids = {item.user_id for item in items}
    preferences = {
        pref.user_id: preferences_to_dict(pref)
        for pref in session.exec(
            select(NotificationPreference).where(NotificationPreference.user_id.in_(user_ids))
        ).all()
    }
    emails = {
        user.id: user.email
        for user in session.exec(select(User).where(User.id.in_(user_ids))).all()
    }

    processed = 0
    emails_sent = 0

    for item in items:
        days = days_until_due(item.due_date, now)
        prefs = preferences.get(item.user_id) or preferences_to_dict(None)
        reminder_days = prefs.get(REMINDER_FIELDS.get(item.type, ""), DEFAULT_REMINDER_DAYS)

        if days not in reminder_days:
            continue

        if item.last_notified_at is not None:
            since = now - as_utc(item.last_notified_at)
            if since < timedelta(days=1):
                continue

        title, message = build_message(item, days)

        if prefs["in_app_enabled"]:
            session.add(Notification(
                user_id=item.user_id,
                type=NOTIFICATION_TYPES.get(item.type, "bill_due"),
                title=title,
                message=message,
                related_entity_type="subscriptions_bills",
                related_entity_id=item.id,
            ))
            processed += 1

        to = emails.get(item.user_id)
        if prefs["email_enabled"] and to:
            subject, html = build_email(item, days)
            result = await email_service.send_email(to, subject, html)
            if result["success"]:
                emails_sent += 1
            else:
                logger.warning("reminder_email_failed", item_id=item.id, error=result.get("error"))

        item.last_notified_at = now
        session.add(item)
        session.commit()

    logger.info("notifications_checked", processed=processed, emails_sent=emails_sent, items_checked=len(items))
    return {
        "message": "Notifications processed successfully",
        "processed": processed,
        "emails_sent": emails_sent,
        "items_checked": len(items),
    }
