"""
Membership Data Models

Local mirror of the Emby account model plus the paid-membership layer:
users linked by Emby user id, one membership period per user, recharge
history, webhook events, email delivery log, audit log and the singleton
notification settings row.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from config import DEFAULT_EXPIRE_JOB_CRON
from membership.dates import ensure_utc, now_utc


DEFAULT_SETTINGS_ID = "default"


class MembershipStatus(str, Enum):
    """Membership status states"""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class EmailStatus(str, Enum):
    """Outcome of an email delivery attempt"""
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class UTCDateTime(TypeDecorator):
    """DateTime column that always stores and returns aware UTC values"""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    pass


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    emby_user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    emby_username: Mapped[str] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_push_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)

    memberships: Mapped[List["Membership"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    recharges: Mapped[List["RechargeRecord"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RechargeRecord.created_at.desc()",
    )

    @property
    def membership(self) -> Optional["Membership"]:
        """The user's single membership row, if one exists"""
        return self.memberships[0] if self.memberships else None


class Membership(Base):
    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("app_users.id", ondelete="CASCADE"), unique=True, index=True
    )
    status: Mapped[MembershipStatus] = mapped_column(
        SAEnum(MembershipStatus, native_enum=False, length=16),
        default=MembershipStatus.EXPIRED,
    )
    start_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    last_recharge_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)

    user: Mapped[AppUser] = relationship(back_populates="memberships")


class RechargeRecord(Base):
    __tablename__ = "recharge_records"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("app_users.id", ondelete="CASCADE"), index=True)
    admin_name: Mapped[str] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    months: Mapped[int] = mapped_column(Integer)
    start_from: Mapped[datetime] = mapped_column(UTCDateTime)
    old_end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    new_end_at: Mapped[datetime] = mapped_column(UTCDateTime)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, index=True)

    user: Mapped[AppUser] = relationship(back_populates="recharges")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    actor: Mapped[str] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(64), index=True)
    target_type: Mapped[str] = mapped_column(String(64))
    target_id: Mapped[str] = mapped_column(String(255))
    detail_json: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    event_type: Mapped[str] = mapped_column(String(255))
    event_key: Mapped[str] = mapped_column(String(512), unique=True)
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True
    )
    emby_event_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    payload_json: Mapped[str] = mapped_column(Text)
    email_dispatched: Mapped[bool] = mapped_column(Boolean, default=False)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)


class EmailNotification(Base):
    __tablename__ = "email_notifications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True
    )
    recipient: Mapped[str] = mapped_column(String(320))
    subject: Mapped[str] = mapped_column(String(512))
    body: Mapped[str] = mapped_column(Text)
    event_type: Mapped[str] = mapped_column(String(255))
    status: Mapped[EmailStatus] = mapped_column(SAEnum(EmailStatus, native_enum=False, length=16))
    fail_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)


class NotificationSetting(Base):
    __tablename__ = "notification_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=DEFAULT_SETTINGS_ID)
    sender_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    email_auth_code: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    smtp_host: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    smtp_port: Mapped[int] = mapped_column(Integer, default=465)
    smtp_secure: Mapped[bool] = mapped_column(Boolean, default=True)
    ingestion_push_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    expire_job_cron: Mapped[str] = mapped_column(String(128), default=DEFAULT_EXPIRE_JOB_CRON)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)
