"""
Operator-editable settings stored in the singleton ``default`` row.

Covers SMTP / notification options and the cron expression of the
membership expiration job.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from config import settings
from membership.models import DEFAULT_SETTINGS_ID, NotificationSetting


@dataclass
class NotificationSettingsData:
    """Notification settings as exposed to the admin UI"""
    sender_email: Optional[str] = None
    email_auth_code: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 465
    smtp_secure: bool = True
    ingestion_push_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "senderEmail": self.sender_email,
            "emailAuthCode": self.email_auth_code,
            "smtpHost": self.smtp_host,
            "smtpPort": self.smtp_port,
            "smtpSecure": self.smtp_secure,
            "ingestionPushEnabled": self.ingestion_push_enabled,
        }

    @classmethod
    def from_row(cls, row: NotificationSetting) -> "NotificationSettingsData":
        return cls(
            sender_email=row.sender_email,
            email_auth_code=row.email_auth_code,
            smtp_host=row.smtp_host,
            smtp_port=row.smtp_port,
            smtp_secure=row.smtp_secure,
            ingestion_push_enabled=row.ingestion_push_enabled,
        )


@dataclass
class ExpireJobSettingsData:
    expire_job_cron: str

    def to_dict(self) -> Dict[str, Any]:
        return {"expireJobCron": self.expire_job_cron}


def _get_or_create_row(db: Session) -> NotificationSetting:
    row = db.get(NotificationSetting, DEFAULT_SETTINGS_ID)
    if row is None:
        row = NotificationSetting(
            id=DEFAULT_SETTINGS_ID,
            ingestion_push_enabled=True,
            expire_job_cron=settings.DEFAULT_EXPIRE_JOB_CRON,
        )
        db.add(row)
        db.commit()
    return row


def get_notification_settings(db: Session) -> NotificationSettingsData:
    return NotificationSettingsData.from_row(_get_or_create_row(db))


def update_notification_settings(
    db: Session, data: NotificationSettingsData
) -> NotificationSettingsData:
    row = _get_or_create_row(db)
    row.sender_email = data.sender_email
    row.email_auth_code = data.email_auth_code
    row.smtp_host = data.smtp_host
    row.smtp_port = data.smtp_port
    row.smtp_secure = data.smtp_secure
    row.ingestion_push_enabled = data.ingestion_push_enabled
    db.commit()
    return NotificationSettingsData.from_row(row)


def get_expire_job_settings(db: Session) -> ExpireJobSettingsData:
    row = _get_or_create_row(db)
    return ExpireJobSettingsData(expire_job_cron=row.expire_job_cron)


def update_expire_job_settings(db: Session, expire_job_cron: str) -> ExpireJobSettingsData:
    row = _get_or_create_row(db)
    row.expire_job_cron = expire_job_cron
    db.commit()
    return ExpireJobSettingsData(expire_job_cron=row.expire_job_cron)
