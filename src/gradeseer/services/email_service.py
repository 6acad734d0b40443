from dataclasses import dataclass
from datetime import datetime
import html
import logging
from typing import Any, Dict, Mapping, Optional

import requests
from requests import RequestException

from gradeseer.config.settings import settings


logger = logging.getLogger(__name__)

SERVICE_RESEND = "resend"
SERVICE_DEVELOPMENT = "development"
SERVICE_SIMULATION = "simulation"
SERVICE_NONE = "none"


class EmailServiceError(Exception):
    pass


@dataclass(frozen=True)
class EmailResult:
    success: bool
    service: str
    message: str


def _format_due_date(due_date: Optional[str]) -> str:
    if not due_date:
        return "Not specified"
    text = due_date.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).strftime("%b %d, %Y")
    except ValueError:
        return due_date


def render_notification_email(
    title: str,
    message: str,
    subject_name: Optional[str] = None,
    due_date: Optional[str] = None,
    notification_type: Optional[str] = None,
) -> str:
    subject_row = (
        f'<p style="color: #666; margin-bottom: 10px; font-size: 14px;"><strong>Subject:</strong> {html.escape(subject_name)}</p>'
        if subject_name
        else ""
    )
    type_row = (
        f'<p style="color: #666; margin-bottom: 0; font-size: 14px;"><strong>Type:</strong> {html.escape(notification_type.capitalize())}</p>'
        if notification_type
        else ""
    )
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; border: 1px solid #e0e0e0; border-radius: 8px;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; text-align: center; color: white; border-radius: 8px 8px 0 0;">
    <h1 style="margin: 0; font-size: 24px;">GradeSeer</h1>
    <p style="margin: 10px 0 0 0; opacity: 0.9;">Academic Performance Tracker</p>
  </div>
  <div style="padding: 30px; background: #f8f9fa;">
    <h2 style="color: #333; margin-bottom: 20px;">{html.escape(title)}</h2>
    <div style="background: white; padding: 25px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1);">
      <p style="color: #666; line-height: 1.6; margin-bottom: 15px; font-size: 16px;">{html.escape(message)}</p>
      {subject_row}
      <p style="color: #666; margin-bottom: 10px; font-size: 14px;"><strong>Due Date:</strong> {html.escape(_format_due_date(due_date))}</p>
      {type_row}
    </div>
  </div>
  <div style="background: #f1f3f4; padding: 20px; text-align: center; color: #666; font-size: 12px; border-radius: 0 0 8px 8px;">
    <p style="margin: 0;">This is an automated notification from GradeSeer.</p>
    <p style="margin: 8px 0 0 0;">You can manage your notifications in the app settings.</p>
  </div>
</div>
"""


class EmailService:
    RESEND_URL = "https://api.resend.com/emails"

    def __init__(self, api_key: str, sender: str, development: bool = False, timeout: float = 15) -> None:
        self.api_key = api_key
        self.sender = sender
        self.development = development
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "EmailService":
        return cls(settings.resend_api_key, settings.email_from, development=settings.is_development)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            res = requests.post(self.RESEND_URL, headers=headers, json=payload, timeout=self.timeout)
        except RequestException as exc:
            raise EmailServiceError("EMAIL_SERVICE_UNAVAILABLE") from exc
        try:
            data = res.json()
        except ValueError:
            data = {}

        if res.status_code >= 400:
            raise EmailServiceError(str(data.get("message") or data.get("name") or f"EMAIL_ERROR_{res.status_code}"))
        return data

    def send(self, to: str, subject: str, body_html: str) -> EmailResult:
        if not to or "@" not in to:
            logger.warning("Refusing to send e-mail to invalid address %r", to)
            return EmailResult(False, SERVICE_NONE, "Invalid email address")

        if self.development:
            logger.info("[dev] E-mail to %s simulated: %s", to, subject)
            return EmailResult(True, SERVICE_DEVELOPMENT, "Email simulation successful")

        if not self.api_key:
            logger.info("No e-mail service configured, simulating send to %s", to)
            return EmailResult(True, SERVICE_SIMULATION, "Email simulated (no service configured)")

        try:
            self._post({"from": self.sender, "to": [to], "subject": subject, "html": body_html})
        except EmailServiceError as exc:
            logger.warning("Resend delivery to %s failed: %s", to, exc)
            return EmailResult(True, SERVICE_SIMULATION, "Email service unavailable - notification created in app")

        logger.info("E-mail sent via Resend to %s", to)
        return EmailResult(True, SERVICE_RESEND, "Email sent successfully")

    def send_notification(self, notification: Mapping[str, Any]) -> EmailResult:
        title = str(notification.get("title") or "")
        body_html = render_notification_email(
            title=title,
            message=str(notification.get("message") or ""),
            subject_name=notification.get("subject_name"),
            due_date=notification.get("due_date"),
            notification_type=notification.get("type"),
        )
        return self.send(str(notification.get("user_email") or ""), f"GradeSeer: {title}", body_html)


def deliver_notification_email(service: EmailService, notification: Mapping[str, Any]) -> Optional[EmailResult]:
    """Background job run after a notification is stored.

    Failures are logged here and never reach the request that created the
    notification.
    """
    try:
        return service.send_notification(notification)
    except Exception:
        logger.exception("Notification e-mail for %s failed", notification.get("id"))
        return None
