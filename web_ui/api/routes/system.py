"""
System Routes - Emby connectivity, notification settings and the
membership expiration job.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from membership.audit import record_audit
from membership.database import get_db
from membership.emby_client import EmbyClient, get_emby_client
from membership.expiration import ExpireJobScheduler, get_expire_scheduler, parse_cron, run_expiration_job
from membership.settings_store import (
    NotificationSettingsData,
    get_expire_job_settings,
    get_notification_settings,
    update_expire_job_settings,
    update_notification_settings,
)
from web_ui.api.middleware.auth import require_admin
from web_ui.api.schemas.admin_schemas import ExpireJobSettingsUpdate, NotificationSettingsUpdate

router = APIRouter()


@router.get("/emby/test")
async def test_emby_connection(
    _admin: str = Depends(require_admin),
    client: EmbyClient = Depends(get_emby_client),
):
    return await client.test_connection()


# ========== Notification settings ==========

@router.get("/system/notification-settings")
async def read_notification_settings(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"settings": get_notification_settings(db).to_dict()}


@router.put("/system/notification-settings")
async def write_notification_settings(
    request: NotificationSettingsUpdate,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    saved = update_notification_settings(
        db,
        NotificationSettingsData(
            sender_email=request.sender_email,
            email_auth_code=request.email_auth_code,
            smtp_host=request.smtp_host,
            smtp_port=request.smtp_port,
            smtp_secure=request.smtp_secure,
            ingestion_push_enabled=request.ingestion_push_enabled,
        ),
    )

    # The auth code is a credential and stays out of the audit trail
    record_audit(
        db,
        admin_name,
        "NOTIFICATION_SETTINGS_UPDATE",
        "NotificationSetting",
        "default",
        {
            "senderEmail": saved.sender_email,
            "smtpHost": saved.smtp_host,
            "smtpPort": saved.smtp_port,
            "smtpSecure": saved.smtp_secure,
            "ingestionPushEnabled": saved.ingestion_push_enabled,
        },
    )
    return {"ok": True, "settings": saved.to_dict()}


# ========== Expiration job ==========

@router.post("/jobs/expire-memberships")
async def run_expire_memberships(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    return await run_expiration_job(db, client)


@router.get("/system/expire-job-settings")
async def read_expire_job_settings(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"settings": get_expire_job_settings(db).to_dict()}


@router.put("/system/expire-job-settings")
async def write_expire_job_settings(
    request: ExpireJobSettingsUpdate,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    scheduler: ExpireJobScheduler = Depends(get_expire_scheduler),
):
    expression = request.expire_job_cron.strip()
    parse_cron(expression)

    saved = update_expire_job_settings(db, expression)
    scheduler.apply(saved.expire_job_cron)

    record_audit(
        db,
        admin_name,
        "EXPIRE_JOB_CRON_UPDATE",
        "NotificationSetting",
        "default",
        {"expireJobCron": saved.expire_job_cron},
    )
    return {"ok": True, "settings": saved.to_dict()}
