"""Local User Routes"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from membership.audit import record_audit
from membership.database import get_db
from membership.models import AppUser
from membership.serializers import user_to_dict
from membership.service import find_user_by_emby_id, new_user
from web_ui.api.middleware.auth import require_admin
from web_ui.api.schemas.admin_schemas import UpsertUserRequest

router = APIRouter()

USER_LIST_LIMIT = 100


def _contains_ci(column, needle: str):
    return func.lower(column).contains(needle.lower(), autoescape=True)


@router.post("/upsert")
async def upsert_user(
    request: UpsertUserRequest,
    admin_name: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create or rename a local user; an omitted email leaves the stored one untouched"""
    user = find_user_by_emby_id(db, request.emby_user_id)
    if user is None:
        user = new_user(
            request.emby_user_id,
            request.emby_username,
            email=request.email,
            is_email_verified=False,
        )
        db.add(user)
    else:
        user.emby_username = request.emby_username
        if request.email is not None:
            user.email = request.email
    db.commit()

    record_audit(
        db,
        admin_name,
        "USER_UPSERT",
        "AppUser",
        user.id,
        request.model_dump(by_alias=True, exclude_none=True),
    )
    return {"user": user_to_dict(user)}


@router.get("")
async def list_users(
    q: str = Query(""),
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    needle = q.strip()
    stmt = select(AppUser).options(selectinload(AppUser.memberships))
    if needle:
        stmt = stmt.where(or_(
            _contains_ci(AppUser.emby_user_id, needle),
            _contains_ci(AppUser.emby_username, needle),
            _contains_ci(AppUser.email, needle),
        ))
    stmt = stmt.order_by(AppUser.created_at.desc()).limit(USER_LIST_LIMIT)
    return {"users": [user_to_dict(user) for user in db.scalars(stmt)]}
