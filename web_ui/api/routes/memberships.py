"""
Membership Routes - manual recharges, direct end-date edits and recharge
history.

Local changes are committed first; the Emby account is then enabled or
disabled to match, and the user is emailed when they opted in.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from membership.audit import record_audit
from membership.database import get_db
from membership.dates import ensure_utc, to_iso
from membership.email_service import EmailType, send_email
from membership.emby_client import EmbyClient, get_emby_client
from membership.models import AppUser, MembershipStatus, RechargeRecord
from membership.serializers import membership_to_dict, recharge_to_dict, user_to_dict
from membership.service import (
    apply_recharge,
    require_user_by_emby_id,
    set_membership_end_at,
    sync_membership_to_emby,
)
from web_ui.api.middleware.auth import require_admin
from web_ui.api.schemas.admin_schemas import ManualRechargeRequest, SetMembershipEndAtRequest

recharges_router = APIRouter()
memberships_router = APIRouter()

DEFAULT_RECHARGE_LIMIT = 100
MAX_RECHARGE_LIMIT = 500
MEMBERSHIP_RECHARGE_HISTORY = 20


def parse_limit(raw: str) -> int:
    """Clamp to 1..500; anything non-numeric falls back to 100"""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_RECHARGE_LIMIT
    if value != value or value in (float("inf"), float("-inf")):
        return DEFAULT_RECHARGE_LIMIT
    return int(min(max(value, 1), MAX_RECHARGE_LIMIT))


@recharges_router.post("/manual")
async def manual_recharge(
    request: ManualRechargeRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    user = require_user_by_emby_id(db, request.emby_user_id)

    result = apply_recharge(db, user, admin_name, request.amount, request.months, request.note)

    await sync_membership_to_emby(
        db, client, user.id, user.emby_user_id, MembershipStatus.ACTIVE, result.membership.end_at
    )

    if user.email and user.email_push_enabled:
        await send_email(
            db,
            to=user.email,
            subject="Emby 会员已续期",
            body=f"你的会员已续期，新的到期时间为 {to_iso(result.recharge.new_end_at)}。",
            event_type=EmailType.MEMBERSHIP_RECHARGED,
            user_id=user.id,
        )

    return {
        "membership": membership_to_dict(result.membership),
        "recharge": recharge_to_dict(result.recharge),
    }


@recharges_router.get("")
async def list_recharges(
    q: str = Query(""),
    limit: str = Query(str(DEFAULT_RECHARGE_LIMIT)),
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    needle = q.strip().lower()
    stmt = (
        select(RechargeRecord)
        .join(RechargeRecord.user)
        .options(selectinload(RechargeRecord.user))
    )
    if needle:
        stmt = stmt.where(or_(
            func.lower(AppUser.emby_user_id).contains(needle, autoescape=True),
            func.lower(AppUser.emby_username).contains(needle, autoescape=True),
            func.lower(RechargeRecord.admin_name).contains(needle, autoescape=True),
        ))
    stmt = stmt.order_by(RechargeRecord.created_at.desc()).limit(parse_limit(limit))
    return {"records": [recharge_to_dict(r, include_user=True) for r in db.scalars(stmt)]}


@memberships_router.put("/{emby_user_id}/end-at")
async def set_end_at(
    emby_user_id: str,
    request: SetMembershipEndAtRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    user = require_user_by_emby_id(db, emby_user_id)
    old_end_at = user.membership.end_at if user.membership else None

    membership = set_membership_end_at(db, user, ensure_utc(request.end_at))

    await sync_membership_to_emby(
        db, client, user.id, user.emby_user_id, membership.status, membership.end_at
    )

    record_audit(
        db,
        admin_name,
        "MEMBERSHIP_END_AT_SET",
        "AppUser",
        user.id,
        {
            "embyUserId": user.emby_user_id,
            "oldEndAt": to_iso(old_end_at),
            "newEndAt": to_iso(membership.end_at),
            "status": membership.status.value,
        },
    )
    return {"ok": True, "membership": membership_to_dict(membership)}


@memberships_router.get("/{emby_user_id}")
async def get_membership(
    emby_user_id: str,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = require_user_by_emby_id(db, emby_user_id)
    return {"user": user_to_dict(user, recharge_limit=MEMBERSHIP_RECHARGE_HISTORY)}
