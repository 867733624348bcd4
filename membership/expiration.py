"""
Membership expiration job and its cron schedule.

The job flips every ACTIVE membership whose end date has passed to EXPIRED,
disables the matching Emby account and emails the user. The schedule is a
standard five-field cron expression stored in the settings row and can be
replaced while the server runs.
"""

from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from config import settings
from membership import database
from membership.audit import SYSTEM_ACTOR, record_audit
from membership.dates import format_display_time, now_utc, to_iso
from membership.email_service import EmailType, send_email
from membership.emby_client import EmbyClient, get_emby_client
from membership.exceptions import EmbyvaultError, InvalidCronError
from membership.models import Membership, MembershipStatus
from membership.service import sync_membership_to_emby
from membership.settings_store import get_expire_job_settings
from utils.logger import logger

EXPIRE_JOB_ID = "membership-expire"


async def run_expiration_job(db: Session, client: EmbyClient) -> Dict[str, Any]:
    now = now_utc()
    expiring = list(db.scalars(
        select(Membership)
        .where(Membership.status == MembershipStatus.ACTIVE, Membership.end_at <= now)
        .options(selectinload(Membership.user))
    ))

    for membership in expiring:
        membership.status = MembershipStatus.EXPIRED
        db.commit()
        user = membership.user

        try:
            await sync_membership_to_emby(
                db, client, user.id, user.emby_user_id, MembershipStatus.EXPIRED, membership.end_at
            )
        except EmbyvaultError as e:
            logger.error(f"[expire] Emby sync failed for {user.emby_user_id}: {e}")

        if user.email:
            await send_email(
                db,
                to=user.email,
                subject="Emby 会员已到期",
                body=(
                    f"你的账户已于 {format_display_time(membership.end_at)} 到期，"
                    "请及时续费以恢复会员权限。"
                ),
                event_type=EmailType.MEMBERSHIP_EXPIRED,
                user_id=user.id,
            )

    record_audit(
        db,
        SYSTEM_ACTOR,
        "MEMBERSHIP_EXPIRE_JOB",
        "Membership",
        "batch",
        {"expiredCount": len(expiring), "runAt": to_iso(now)},
    )
    logger.info(f"[expire] expired {len(expiring)} membership(s)")
    return {"expiredCount": len(expiring)}


def parse_cron(expression: str) -> CronTrigger:
    """Build a trigger from a five-field cron expression"""
    try:
        return CronTrigger.from_crontab(expression.strip(), timezone=settings.DISPLAY_TIMEZONE)
    except ValueError as e:
        raise InvalidCronError(f"invalid cron expression: {expression}") from e


def is_valid_cron(expression: str) -> bool:
    try:
        parse_cron(expression)
    except InvalidCronError:
        return False
    return True


async def _scheduled_run() -> None:
    db = database.SessionLocal()
    try:
        await run_expiration_job(db, get_emby_client())
    except Exception as e:
        logger.error(f"Expiration job failed: {e}", exc_info=True)
    finally:
        db.close()


class ExpireJobScheduler:
    """Owns the APScheduler instance running the expiration job"""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=settings.DISPLAY_TIMEZONE)
        self.current_cron: Optional[str] = None

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def apply(self, expression: str) -> None:
        """Replace the running schedule; raises InvalidCronError"""
        trigger = parse_cron(expression)
        self.scheduler.add_job(
            _scheduled_run,
            trigger,
            id=EXPIRE_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.current_cron = expression.strip()
        logger.info(f"[cron] membership-expire schedule set: {self.current_cron}")

    def apply_stored(self, db: Session) -> None:
        """Schedule from the stored expression, falling back to the default"""
        try:
            stored = get_expire_job_settings(db).expire_job_cron
        except Exception as e:
            logger.warning(f"[cron] failed to load stored schedule, fallback to default: {e}")
            self.apply(settings.DEFAULT_EXPIRE_JOB_CRON)
            return

        if is_valid_cron(stored):
            self.apply(stored)
        else:
            logger.warning(f"[cron] invalid stored expression, fallback to default: {stored}")
            self.apply(settings.DEFAULT_EXPIRE_JOB_CRON)


# Singleton instance
_expire_scheduler: Optional[ExpireJobScheduler] = None


def get_expire_scheduler() -> ExpireJobScheduler:
    global _expire_scheduler
    if _expire_scheduler is None:
        _expire_scheduler = ExpireJobScheduler()
    return _expire_scheduler
