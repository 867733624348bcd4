"""
Membership operations shared by the admin routes and the expiration job.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from membership.audit import SYSTEM_ACTOR, record_audit
from membership.dates import add_utc_months, now_utc, to_iso
from membership.emby_client import EmbyClient
from membership.exceptions import NotFoundError
from membership.models import AppUser, Membership, MembershipStatus, RechargeRecord


@dataclass
class RechargeResult:
    membership: Membership
    recharge: RechargeRecord


def find_user_by_emby_id(db: Session, emby_user_id: str) -> Optional[AppUser]:
    return db.scalars(
        select(AppUser)
        .where(AppUser.emby_user_id == emby_user_id)
        .options(selectinload(AppUser.memberships))
    ).first()


def require_user_by_emby_id(db: Session, emby_user_id: str) -> AppUser:
    user = find_user_by_emby_id(db, emby_user_id)
    if user is None:
        raise NotFoundError("user not found")
    return user


def ensure_membership(db: Session, user: AppUser) -> Membership:
    """Give the user an EXPIRED membership row if it has none (caller commits)"""
    membership = user.membership
    if membership is None:
        membership = Membership(status=MembershipStatus.EXPIRED)
        user.memberships.append(membership)
        db.flush()
    return membership


def new_user(emby_user_id: str, emby_username: str, **fields) -> AppUser:
    """Build a local user that starts with an EXPIRED membership"""
    user = AppUser(emby_user_id=emby_user_id, emby_username=emby_username, **fields)
    user.memberships.append(Membership(status=MembershipStatus.EXPIRED))
    return user


async def sync_membership_to_emby(
    db: Session,
    client: EmbyClient,
    app_user_id: str,
    emby_user_id: str,
    status: MembershipStatus,
    end_at: Optional[datetime],
) -> None:
    """Disable the Emby account for expired memberships, enable it otherwise"""
    disabled = status == MembershipStatus.EXPIRED
    user = await client.set_user_disabled(emby_user_id, disabled)
    record_audit(
        db,
        SYSTEM_ACTOR,
        "EMBY_SYNC",
        "AppUser",
        app_user_id,
        {
            "embyUserId": emby_user_id,
            "embyUserName": user.get("Name"),
            "status": status.value,
            "endAt": to_iso(end_at),
            "appliedPolicy": {"IsDisabled": disabled},
        },
    )


def apply_recharge(
    db: Session,
    user: AppUser,
    admin_name: str,
    amount: Decimal,
    months: int,
    note: Optional[str] = None,
) -> RechargeResult:
    """
    Extend the membership by ``months`` from the later of now and the current
    end date, record the recharge and audit it in a single transaction.
    """
    now = now_utc()
    membership = user.membership
    old_end_at = membership.end_at if membership else None
    start_from = old_end_at if old_end_at and old_end_at > now else now
    new_end_at = add_utc_months(start_from, months)

    try:
        if membership is None:
            membership = Membership(user_id=user.id, start_at=now)
            db.add(membership)
        membership.status = MembershipStatus.ACTIVE
        membership.start_at = membership.start_at or now
        membership.end_at = new_end_at
        membership.last_recharge_amount = amount

        recharge = RechargeRecord(
            user_id=user.id,
            admin_name=admin_name,
            amount=amount,
            months=months,
            start_from=start_from,
            old_end_at=old_end_at,
            new_end_at=new_end_at,
            note=note,
        )
        db.add(recharge)

        record_audit(
            db,
            admin_name,
            "MANUAL_RECHARGE",
            "AppUser",
            user.id,
            {
                "amount": float(amount),
                "months": months,
                "oldEndAt": to_iso(old_end_at),
                "newEndAt": to_iso(new_end_at),
            },
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return RechargeResult(membership=membership, recharge=recharge)


def set_membership_end_at(db: Session, user: AppUser, end_at: datetime) -> Membership:
    """Set the end date directly; status follows whether it lies in the future"""
    now = now_utc()
    status = MembershipStatus.ACTIVE if end_at > now else MembershipStatus.EXPIRED
    membership = user.membership
    if membership is None:
        membership = Membership(user_id=user.id)
        db.add(membership)
    membership.status = status
    membership.start_at = membership.start_at or now
    membership.end_at = end_at
    db.commit()
    return membership
