"""
Reminder scan, inbox endpoints and notification preferences.
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlmodel import select

from luno.db.models import Notification, NotificationPreference, SubscriptionBill
from luno.services import notifications

NOW = datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)


def _bill(session, user_id, days_ahead, type_="bill", **overrides):
    item = SubscriptionBill(
        user_id=user_id,
        name=overrides.pop("name", "Electricity"),
        type=type_,
        amount=overrides.pop("amount", 64.0),
        due_date=NOW.date() + timedelta(days=days_ahead),
        **overrides,
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def test_days_until_due_rounds_up():
    assert notifications.days_until_due(date(2024, 6, 13), NOW) == 3
    assert notifications.days_until_due(date(2024, 6, 11), NOW) == 1
    assert notifications.days_until_due(date(2024, 6, 13), datetime(2024, 6, 10, tzinfo=timezone.utc)) == 3


def test_build_message():
    item = SubscriptionBill(user_id=1, name="Netflix", type="subscription", amount=15.0, currency="USD", due_date=date(2024, 6, 13))
    assert notifications.build_message(item, 3) == (
        "Subscription Renewal: Netflix",
        "Netflix will renew in 3 days. Amount: USD 15",
    )

    trial = SubscriptionBill(user_id=1, name="Figma", type="free_trial", due_date=date(2024, 6, 11))
    assert notifications.build_message(trial, 1)[1] == "Your free trial for Figma expires in 1 day."


@pytest.mark.asyncio
async def test_check_notifications_sends_reminders(session, user, sent_emails):
    due = _bill(session, user["id"], 3)
    _bill(session, user["id"], 2, name="Water")
    _bill(session, user["id"], 20, name="Insurance")

    result = await notifications.check_notifications(session, now=NOW)
    assert result["items_checked"] == 2
    assert result["processed"] == 1
    assert result["emails_sent"] == 1

    created = session.exec(select(Notification).where(Notification.user_id == user["id"])).all()
    assert len(created) == 1
    assert created[0].type == "bill_due"
    assert created[0].title == "Bill Due: Electricity"
    assert created[0].related_entity_id == due.id

    assert sent_emails[0]["subject"] == "Reminder: Electricity is due in 3 days"
    assert "$64.00" in sent_emails[0]["html"]


@pytest.mark.asyncio
async def test_check_notifications_skips_recently_notified(session, user):
    _bill(session, user["id"], 3, last_notified_at=NOW - timedelta(hours=2))

    result = await notifications.check_notifications(session, now=NOW)
    assert result["processed"] == 0


@pytest.mark.asyncio
async def test_check_notifications_respects_preferences(session, user, sent_emails):
    pref = session.get(NotificationPreference, user["id"])
    pref.bill_reminder_days = "[2]"
    pref.email_enabled = False
    session.add(pref)
    session.commit()

    _bill(session, user["id"], 3)
    _bill(session, user["id"], 2, name="Water")

    result = await notifications.check_notifications(session, now=NOW)
    assert result["processed"] == 1
    assert result["emails_sent"] == 0
    assert sent_emails == []


@pytest.mark.asyncio
async def test_check_notifications_nothing_due(session, user):
    result = await notifications.check_notifications(session, now=NOW)
    assert result == {"message": "No upcoming items to notify", "processed": 0, "emails_sent": 0, "items_checked": 0}


def test_inbox_endpoints(client, session, user):
    for title in ("First", "Second"):
        session.add(Notification(user_id=user["id"], type="bill_due", title=title, message="m"))
    session.commit()

    data = client.get("/api/notifications", headers=user["headers"]).json()
    assert data["unread_count"] == 2
    first_id = data["items"][0]["id"]

    response = client.post(f"/api/notifications/{first_id}/read", headers=user["headers"])
    assert response.json()["is_read"] is True

    data = client.get("/api/notifications?unread_only=true", headers=user["headers"]).json()
    assert len(data["items"]) == 1
    assert data["unread_count"] == 1

    assert client.post("/api/notifications/read-all", headers=user["headers"]).json() == {"success": True, "updated": 1}

    assert client.delete(f"/api/notifications/{first_id}", headers=user["headers"]).status_code == 204
    assert client.delete(f"/api/notifications/{first_id}", headers=user["headers"]).status_code == 404


def test_preferences_endpoints(client, auth_headers):
    data = client.get("/api/notifications/preferences", headers=auth_headers).json()
    assert data["bill_reminder_days"] == [7, 3, 1]
    assert data["email_enabled"] is True

    response = client.put(
        "/api/notifications/preferences",
        headers=auth_headers,
        json={"bill_reminder_days": [1, 5, 5, 14], "in_app_enabled": False},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["bill_reminder_days"] == [14, 5, 1]
    assert data["in_app_enabled"] is False
    assert data["trial_reminder_days"] == [7, 3, 1]

    response = client.put("/api/notifications/preferences", headers=auth_headers, json={"bill_reminder_days": [400]})
    assert response.status_code == 422


def test_job_trigger_checks_secret(client, configure):
    configure(NOTIFICATIONS_WEBHOOK_SECRET="cron-secret")

    response = client.post("/api/jobs/check-notifications")
    assert response.status_code == 401

    response = client.post("/api/jobs/check-notifications", headers={"X-Webhook-Secret": "cron-secret"})
    assert response.status_code == 200
    assert response.json()["status"] == "success"


def test_bill_due_date_change_resets_reminder(client, session, user):
    bill = _bill(session, user["id"], 3, last_notified_at=NOW)

    new_due = (NOW.date() + timedelta(days=30)).isoformat()
    response = client.patch(f"/api/bills/{bill.id}", headers=user["headers"], json={"due_date": new_due})
    assert response.json()["last_notified_at"] is None
