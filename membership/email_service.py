"""
Email Notification Service for Embyvault

Sends plain-text notification emails over SMTP using the operator-editable
notification settings. Every attempt is recorded as an EmailNotification row
with status SENT, FAILED or SKIPPED so the admin can see why a message did
not go out.
"""

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional

from sqlalchemy.orm import Session

from membership.dates import now_utc
from membership.models import EmailNotification, EmailStatus
from membership.settings_store import NotificationSettingsData, get_notification_settings
from utils.logger import logger

SMTP_TIMEOUT_SECONDS = 20


class EmailType:
    """Event types recorded on EmailNotification rows"""
    MEMBERSHIP_RECHARGED = "MEMBERSHIP_RECHARGED"
    MEMBERSHIP_EXPIRED = "MEMBERSHIP_EXPIRED"
    WEBHOOK_PREFIX = "WEBHOOK_"
    WEBHOOK_LIBRARY_PREFIX = "WEBHOOK_LIBRARY_"


@dataclass
class OutgoingEmail:
    """A single plain-text email to one recipient"""
    to: str
    subject: str
    body: str
    event_type: str
    user_id: Optional[str] = None


class EmailService:
    """SMTP email sender with a delivery log"""

    def _skip_reason(self, setting: NotificationSettingsData) -> Optional[str]:
        if not setting.ingestion_push_enabled:
            return "ingestion push disabled"
        if not setting.sender_email or not setting.email_auth_code:
            return "sender email or auth code not configured"
        if not setting.smtp_host:
            return "smtp host not configured in notification settings"
        return None

    def _record(
        self,
        db: Session,
        email: OutgoingEmail,
        status: EmailStatus,
        fail_reason: Optional[str] = None,
    ) -> EmailNotification:
        row = EmailNotification(
            user_id=email.user_id,
            recipient=email.to,
            subject=email.subject,
            body=email.body,
            event_type=email.event_type,
            status=status,
            fail_reason=fail_reason,
            dispatched_at=now_utc() if status == EmailStatus.SENT else None,
        )
        db.add(row)
        db.commit()
        return row

    def _build_message(self, setting: NotificationSettingsData, email: OutgoingEmail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = setting.sender_email
        message["To"] = email.to
        message["Subject"] = email.subject
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid()
        message.set_content(email.body, charset="utf-8")
        return message

    def _deliver(self, setting: NotificationSettingsData, message: EmailMessage) -> None:
        """Blocking SMTP delivery; implicit TLS when smtp_secure, else STARTTLS if offered"""
        context = ssl.create_default_context()
        if setting.smtp_secure:
            with smtplib.SMTP_SSL(
                setting.smtp_host, setting.smtp_port, timeout=SMTP_TIMEOUT_SECONDS, context=context
            ) as server:
                server.login(setting.sender_email, setting.email_auth_code)
                server.send_message(message)
            return

        with smtplib.SMTP(setting.smtp_host, setting.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
            server.login(setting.sender_email, setting.email_auth_code)
            server.send_message(message)

    async def send(self, db: Session, email: OutgoingEmail) -> EmailNotification:
        """Send an email and record the outcome; never raises on delivery failure"""
        setting = get_notification_settings(db)

        reason = self._skip_reason(setting)
        if reason:
            logger.info(f"[email] skipped {email.event_type} to {email.to}: {reason}")
            return self._record(db, email, EmailStatus.SKIPPED, reason)

        try:
            message = self._build_message(setting, email)
            await asyncio.to_thread(self._deliver, setting, message)
        except Exception as e:
            logger.error(f"[email] failed {email.event_type} to {email.to}: {e}", exc_info=True)
            return self._record(db, email, EmailStatus.FAILED, str(e) or e.__class__.__name__)

        logger.info(f"[email] sent {email.event_type} to {email.to}: {email.subject}")
        return self._record(db, email, EmailStatus.SENT)


# Singleton instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton"""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


async def send_email(
    db: Session,
    to: str,
    subject: str,
    body: str,
    event_type: str,
    user_id: Optional[str] = None,
) -> EmailNotification:
    """Convenience wrapper around the email service singleton"""
    email = OutgoingEmail(to=to, subject=subject, body=body, event_type=event_type, user_id=user_id)
    return await get_email_service().send(db, email)
