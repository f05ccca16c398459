"""
tasks/email_tasks.py
Celery tasks for transactional email via Resend.

Usage from a route:
    from tasks.email_tasks import send_welcome_email
    send_welcome_email.delay(to_email=user.email, username=user.username)
"""

import logging
from html import escape

from config.settings import settings
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


# ── Delivery ──────────────────────────────────────────────────

def _send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send transactional email via Resend. Returns True on success."""
    if not settings.RESEND_API_KEY:
        logger.info(f"RESEND_API_KEY not set, skipping email to {to_email}: {subject}")
        return True
    try:
        import resend
        resend.api_key = settings.RESEND_API_KEY
        resend.Emails.send({
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": to_email,
            "subject": subject,
            "html": html_body,
        })
        return True
    except Exception as e:
        logger.warning(f"Email send failed: {e}")
        return False


# ── Templates ─────────────────────────────────────────────────

def render_welcome(username: str) -> tuple[str, str]:
    subject = f"Welcome to {settings.APP_NAME}"
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1>Welcome, {escape(username)}!</h1>
  <p>An admin account has been created for you on {escape(settings.APP_NAME)}.</p>
  <p>You can now sign in to the admin panel to manage saints, locations and schedules.</p>
  <p><a href="{settings.FRONTEND_URL}/admin/login">Open the admin panel</a></p>
</div>
"""
    return subject, html


def render_schedule_notification(schedule: dict) -> tuple[str, str]:
    """schedule is a ScheduleResponse dumped by alias (camelCase keys)."""
    saint = (schedule.get("saint") or {}).get("name", "A saint")
    location = schedule.get("location") or {}
    place = location.get("name", "a location")
    city = location.get("city", "")

    subject = f"{saint} in {place} - Schedule Update"
    rows = [
        ("Location", f"{place}, {city}" if city else place),
        ("From", schedule.get("startDate", "")),
        ("To", schedule.get("endDate", "")),
        ("Purpose", schedule.get("purpose") or "-"),
        ("Contact", schedule.get("contactPerson") or "-"),
    ]
    table = "".join(
        f"<tr><td><strong>{label}</strong></td><td>{escape(str(value))}</td></tr>"
        for label, value in rows
    )
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>{escape(saint)}</h2>
  <table>{table}</table>
  <p><a href="{settings.FRONTEND_URL}/saints/{schedule.get('saintId', '')}">View profile</a></p>
</div>
"""
    return subject, html


# ── Tasks ─────────────────────────────────────────────────────

@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_email(self, to_email: str, subject: str, html_body: str):
    """Send a transactional email via Resend with retry on failure."""
    success = _send_email(to_email, subject, html_body)
    if not success:
        raise self.retry(countdown=60 * (2 ** self.request.retries))


@celery_app.task
def send_welcome_email(to_email: str, username: str):
    subject, html = render_welcome(username)
    send_email.delay(to_email, subject, html)


@celery_app.task
def send_schedule_notification(recipients: list[str], schedule: dict):
    """Fan out one email per recipient so a bad address only retries itself."""
    subject, html = render_schedule_notification(schedule)
    for to_email in recipients:
        send_email.delay(to_email, subject, html)
