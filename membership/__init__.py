"""
Membership Management for Embyvault

Local subscription layer on top of an Emby media server:
- Local users linked to Emby accounts by Emby user id
- Paid membership periods extended by calendar months
- Recharge history and audit trail
- Emby account enable/disable kept in step with membership status
- Webhook-driven email notifications with new-content deduplication
- Scheduled expiration of lapsed memberships
"""

from membership.models import (
    AppUser,
    AuditLog,
    EmailNotification,
    EmailStatus,
    Membership,
    MembershipStatus,
    NotificationSetting,
    RechargeRecord,
    WebhookEvent,
)
from membership.dates import add_utc_months, now_utc
from membership.exceptions import (
    EmbyAPIError,
    EmbyvaultError,
    InvalidCronError,
    NotFoundError,
)
from membership.emby_client import EmbyClient, get_emby_client
from membership.email_service import EmailService, get_email_service, send_email

__all__ = [
    # Models
    "AppUser",
    "AuditLog",
    "EmailNotification",
    "EmailStatus",
    "Membership",
    "MembershipStatus",
    "NotificationSetting",
    "RechargeRecord",
    "WebhookEvent",
    # Dates
    "add_utc_months",
    "now_utc",
    # Errors
    "EmbyAPIError",
    "EmbyvaultError",
    "InvalidCronError",
    "NotFoundError",
    # Services
    "EmbyClient",
    "get_emby_client",
    "EmailService",
    "get_email_service",
    "send_email",
]
