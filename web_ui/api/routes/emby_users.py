"""
Emby User Routes - proxy user management calls to Emby and keep the local
user/membership records in step.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from membership.audit import record_audit
from membership.database import get_db
from membership.dates import now_utc, to_iso
from membership.emby_client import EmbyClient, get_emby_client
from membership.models import AppUser
from membership.serializers import format_amount
from membership.service import ensure_membership, find_user_by_emby_id, new_user
from web_ui.api.middleware.auth import require_admin
from web_ui.api.schemas.admin_schemas import (
    CreateEmbyUserRequest,
    UpdatePasswordRequest,
    UpdatePolicyRequest,
)

router = APIRouter()


@router.get("/users")
async def list_emby_users(
    q: str = Query(""),
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    """Emby users filtered by id or name, enriched with local membership data"""
    needle = q.strip().lower()
    emby_users = await client.list_users()
    if needle:
        emby_users = [
            item for item in emby_users
            if needle in item["embyUserId"].lower() or needle in item["embyUsername"].lower()
        ]

    ids = [item["embyUserId"] for item in emby_users]
    local_by_id = {}
    if ids:
        local_users = db.scalars(
            select(AppUser)
            .where(AppUser.emby_user_id.in_(ids))
            .options(selectinload(AppUser.memberships))
        )
        local_by_id = {user.emby_user_id: user for user in local_users}

    users = []
    for item in emby_users:
        local: Optional[AppUser] = local_by_id.get(item["embyUserId"])
        membership = local.membership if local else None
        users.append({
            **item,
            "localLinked": local is not None,
            "email": local.email if local else None,
            "emailPushEnabled": local.email_push_enabled if local else False,
            "membershipStatus": membership.status.value if membership else None,
            "membershipEndAt": to_iso(membership.end_at) if membership else None,
            "lastRechargeAmount": format_amount(membership.last_recharge_amount) if membership else None,
        })

    return {"users": users}


@router.get("/activities")
async def list_activities(
    _admin: str = Depends(require_admin),
    client: EmbyClient = Depends(get_emby_client),
):
    """Current playback sessions that belong to a user"""
    activities = [item for item in await client.list_realtime_activities() if item.get("userId")]
    return {"activities": activities, "fetchedAt": to_iso(now_utc())}


@router.post("/sync-users")
async def sync_users(
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    """Import every Emby user locally; new users start with an EXPIRED membership"""
    emby_users = await client.list_users()
    created = 0
    updated = 0

    for item in emby_users:
        user = find_user_by_emby_id(db, item["embyUserId"])
        if user is None:
            db.add(new_user(
                item["embyUserId"],
                item["embyUsername"],
                is_active=not item["embyDisabled"],
            ))
            created += 1
        else:
            user.emby_username = item["embyUsername"]
            user.is_active = not item["embyDisabled"]
            ensure_membership(db, user)
            updated += 1
    db.commit()

    record_audit(
        db,
        admin_name,
        "EMBY_USERS_SYNC",
        "AppUser",
        "batch",
        {"total": len(emby_users), "created": created, "updated": updated},
    )
    return {"ok": True, "total": len(emby_users), "created": created, "updated": updated}


@router.delete("/users/{emby_user_id}")
async def delete_emby_user(
    emby_user_id: str,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    await client.delete_user(emby_user_id)

    local = find_user_by_emby_id(db, emby_user_id)
    if local is not None:
        db.delete(local)
        db.commit()

    record_audit(
        db,
        admin_name,
        "EMBY_USER_DELETE",
        "EmbyUser",
        emby_user_id,
        {"removedLocalUser": local is not None},
    )
    return {"ok": True}


@router.post("/users/create")
async def create_emby_user(
    request: CreateEmbyUserRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    created = await client.create_user(request.username, request.password)

    user = find_user_by_emby_id(db, created["embyUserId"])
    if user is None:
        user = new_user(
            created["embyUserId"],
            created["embyUsername"],
            email=request.local_email,
            email_push_enabled=bool(request.email_push_enabled),
        )
        db.add(user)
    else:
        user.emby_username = created["embyUsername"]
        if request.local_email is not None:
            user.email = request.local_email
        if request.email_push_enabled is not None:
            user.email_push_enabled = request.email_push_enabled
        ensure_membership(db, user)
    db.commit()

    record_audit(
        db,
        admin_name,
        "EMBY_USER_CREATE",
        "EmbyUser",
        created["embyUserId"],
        {
            "embyUsername": created["embyUsername"],
            "localEmail": request.local_email,
            "emailPushEnabled": bool(request.email_push_enabled),
        },
    )
    return {
        "ok": True,
        "user": {
            "embyUserId": created["embyUserId"],
            "embyUsername": created["embyUsername"],
            "email": user.email,
            "emailPushEnabled": user.email_push_enabled,
        },
    }


@router.get("/users/{emby_user_id}/policy")
async def get_user_policy(
    emby_user_id: str,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    policy = await client.get_user_policy(emby_user_id)
    local = find_user_by_emby_id(db, emby_user_id)
    return {
        "embyUserId": emby_user_id,
        "policy": policy,
        "local": {
            "email": local.email if local else None,
            "emailPushEnabled": local.email_push_enabled if local else False,
        },
    }


@router.put("/users/{emby_user_id}/policy")
async def update_user_policy(
    emby_user_id: str,
    request: UpdatePolicyRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    await client.set_user_policy(emby_user_id, request.policy)

    provided = request.model_fields_set
    email_given = "local_email" in provided
    push_given = request.email_push_enabled is not None
    if email_given or push_given:
        existing = find_user_by_emby_id(db, emby_user_id)
        if existing is None:
            db.add(new_user(
                emby_user_id,
                request.emby_username or emby_user_id,
                email=request.local_email,
                email_push_enabled=bool(request.email_push_enabled),
            ))
        else:
            if email_given:
                existing.email = request.local_email
            if push_given:
                existing.email_push_enabled = request.email_push_enabled
        db.commit()

    record_audit(db, admin_name, "EMBY_USER_POLICY_UPDATE", "EmbyUser", emby_user_id, request.policy)
    return {"ok": True}


@router.put("/users/{emby_user_id}/password")
async def update_user_password(
    emby_user_id: str,
    request: UpdatePasswordRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
    client: EmbyClient = Depends(get_emby_client),
):
    await client.set_password(emby_user_id, request.password)
    record_audit(
        db,
        admin_name,
        "EMBY_USER_PASSWORD_UPDATE",
        "EmbyUser",
        emby_user_id,
        {"updated": True},
    )
    return {"ok": True}
