"""JSON shapes returned by the admin API (camelCase, ISO-8601 UTC times)"""

from decimal import Decimal
from typing import Any, Dict, Optional

from membership.dates import to_iso
from membership.models import AppUser, Membership, RechargeRecord


CENTS = Decimal("0.01")


def format_amount(value: Optional[Decimal]) -> Optional[str]:
    """Money as a fixed two-decimal string"""
    return None if value is None else str(Decimal(value).quantize(CENTS))


def membership_to_dict(membership: Membership) -> Dict[str, Any]:
    return {
        "id": membership.id,
        "userId": membership.user_id,
        "status": membership.status.value,
        "startAt": to_iso(membership.start_at),
        "endAt": to_iso(membership.end_at),
        "lastRechargeAmount": format_amount(membership.last_recharge_amount),
        "createdAt": to_iso(membership.created_at),
        "updatedAt": to_iso(membership.updated_at),
    }


def recharge_to_dict(record: RechargeRecord, include_user: bool = False) -> Dict[str, Any]:
    data = {
        "id": record.id,
        "userId": record.user_id,
        "adminName": record.admin_name,
        "amount": format_amount(record.amount),
        "months": record.months,
        "startFrom": to_iso(record.start_from),
        "oldEndAt": to_iso(record.old_end_at),
        "newEndAt": to_iso(record.new_end_at),
        "note": record.note,
        "createdAt": to_iso(record.created_at),
    }
    if include_user:
        data["user"] = {
            "id": record.user.id,
            "embyUserId": record.user.emby_user_id,
            "embyUsername": record.user.emby_username,
            "email": record.user.email,
        }
    return data


def user_to_dict(user: AppUser, recharge_limit: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": user.id,
        "embyUserId": user.emby_user_id,
        "embyUsername": user.emby_username,
        "email": user.email,
        "isEmailVerified": user.is_email_verified,
        "emailPushEnabled": user.email_push_enabled,
        "isActive": user.is_active,
        "createdAt": to_iso(user.created_at),
        "updatedAt": to_iso(user.updated_at),
        "memberships": [membership_to_dict(m) for m in user.memberships],
    }
    if recharge_limit is not None:
        data["recharges"] = [recharge_to_dict(r) for r in user.recharges[:recharge_limit]]
    return data
