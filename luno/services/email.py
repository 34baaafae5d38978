"""
Transactional email through the Resend REST API.

Sending never raises: callers get a result dict and decide whether a
failed email matters.
"""
from datetime import date
from html import escape
from typing import Any, Optional

import httpx

from luno.config import get_settings
from luno.logger import get_logger
from luno.services.currency import format_currency

logger = get_logger(__name__)


async def send_email(to: str, subject: str, html: str) -> dict[str, Any]:
    """
    Send one email.

    Returns:
        {"success": True, "id": ...} or {"success": False, "error": ...}
    """
    settings = get_settings()
    if not settings.email_configured:
        logger.warning("email_not_configured")
        return {"success": False, "error": "Email service not configured"}

    try:
        async with httpx.AsyncClient(base_url=settings.RESEND_API_BASE_URL, timeout=15.0) as client:
            response = await client.post(
                "/emails",
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={
                    "from": settings.RESEND_FROM_EMAIL,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
            )
    except httpx.HTTPError as e:
        logger.error("email_send_failed", error=str(e))
        return {"success": False, "error": str(e)}

    if response.is_error:
        logger.error("email_send_rejected", status_code=response.status_code)
        return {"success": False, "error": response.text}

    data = response.json()
    logger.info("email_sent", email_id=data.get("id"))
    return {"success": True, "id": data.get("id")}


# === Templates ===

def _days(n: int) -> str:
    return f"{n} day{'' if n == 1 else 's'}"


def _layout(heading: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
  </head>
  <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #1a1a1a;">{heading}</h1>
      {body}
      <p style="margin-top: 30px; color: #666; font-size: 14px;">
        This is an automated notification from Luno Finance Manager.
      </p>
    </div>
  </body>
</html>
"""


def _amount_line(amount: Optional[float], currency: str) -> str:
    if not amount:
        return ""
    return f"<p><strong>Amount:</strong> {format_currency(amount, currency)}</p>"


def bill_due_email(
    name: str,
    due_date: date,
    days_until_due: int,
    amount: Optional[float] = None,
    currency: str = "USD",
) -> tuple[str, str]:
    subject = f"Reminder: {name} is due in {_days(days_until_due)}"
    body = (
        f"<p>This is a reminder that <strong>{escape(name)}</strong> is due in "
        f"<strong>{_days(days_until_due)}</strong> ({due_date.isoformat()}).</p>"
        f"{_amount_line(amount, currency)}"
        "<p>Please make sure to pay this bill on time to avoid any late fees.</p>"
    )
    return subject, _layout("Bill Due Reminder", body)


def subscription_renewal_email(
    name: str,
    renewal_date: date,
    days_until_due: int,
    amount: Optional[float] = None,
    currency: str = "USD",
) -> tuple[str, str]:
    subject = f"Subscription Renewal: {name} renews in {_days(days_until_due)}"
    body = (
        f"<p>Your subscription for <strong>{escape(name)}</strong> will renew in "
        f"<strong>{_days(days_until_due)}</strong> ({renewal_date.isoformat()}).</p>"
        f"{_amount_line(amount, currency)}"
        "<p>Make sure you have sufficient funds in your account.</p>"
    )
    return subject, _layout("Subscription Renewal Reminder", body)


def trial_expiration_email(name: str, expiration_date: date, days_until_due: int) -> tuple[str, str]:
    subject = f"Free Trial Ending: {name} expires in {_days(days_until_due)}"
    body = (
        f"<p>Your free trial for <strong>{escape(name)}</strong> expires in "
        f"<strong>{_days(days_until_due)}</strong> ({expiration_date.isoformat()}).</p>"
        "<p>Consider subscribing before the trial ends to continue using the service.</p>"
    )
    return subject, _layout("Free Trial Ending Soon", body)


def household_invitation_email(
    inviter_name: str,
    household_name: str,
    invite_url: str,
    expires_in_days: int = 7,
) -> tuple[str, str]:
    subject = f"{inviter_name} invited you to join {household_name} on Luno"
    body = (
        f"<p><strong>{escape(inviter_name)}</strong> has invited you to join the household "
        f"<strong>{escape(household_name)}</strong> on Luno Finance Manager.</p>"
        "<p>Members of a household can share budgets and track family finances together.</p>"
        f'<p style="margin: 30px 0;"><a href="{escape(invite_url)}" '
        'style="background-color: #1a1a1a; color: #fff; padding: 12px 24px; '
        'text-decoration: none; border-radius: 6px;">Accept Invitation</a></p>'
        f"<p>This invitation expires in {_days(expires_in_days)}.</p>"
    )
    return subject, _layout("You're Invited", body)
