"""
Authentication Routes for Embyvault Admin API

Single-operator login against the configured admin credentials.
"""

from fastapi import APIRouter, HTTPException, status

from web_ui.api.middleware.auth import check_admin_credentials, create_admin_session_token
from web_ui.api.schemas.admin_schemas import LoginRequest
from utils.logger import logger

router = APIRouter()


@router.post("/login")
async def login(request: LoginRequest):
    """Exchange admin credentials for a bearer session token"""
    if not check_admin_credentials(request.username, request.password):
        logger.warning(f"[auth] failed admin login for {request.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid username or password",
        )

    token, expires_at = create_admin_session_token(request.username)
    return {
        "ok": True,
        "token": token,
        "expiresAt": expires_at,
        "username": request.username,
    }
