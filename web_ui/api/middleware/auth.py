"""
Authentication Middleware for Embyvault Admin API

A single admin operator logs in with the configured credentials and gets a
signed session token:

    base64url(json{"username", "exp"}) + "." + base64url(HMAC-SHA256(payload))

``exp`` is epoch milliseconds. Tokens are stateless; rotating AUTH_SECRET
invalidates all of them.
"""

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings


@dataclass
class AdminSession:
    """Decoded session token payload"""
    username: str
    exp: int


# Security scheme for Swagger UI
security_scheme = HTTPBearer(auto_error=False)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(data: str) -> str:
    digest = hmac.new(settings.AUTH_SECRET.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_admin_session_token(username: str) -> Tuple[str, int]:
    """Issue a token for ``username``; returns (token, expires_at_ms)"""
    expires_at = _now_ms() + settings.SESSION_TTL_HOURS * 60 * 60 * 1000
    payload = json.dumps({"username": username, "exp": expires_at}, separators=(",", ":"))
    payload_encoded = _b64url_encode(payload.encode("utf-8"))
    return f"{payload_encoded}.{_sign(payload_encoded)}", expires_at


def verify_token(token: str) -> Optional[AdminSession]:
    """
    Verify a session token.

    Returns:
        The session if the signature matches and it has not expired, None otherwise
    """
    parts = token.split(".")
    if len(parts) != 2:
        return None

    payload_encoded, signature = parts
    if not hmac.compare_digest(signature.encode("utf-8"), _sign(payload_encoded).encode("utf-8")):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_encoded))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    username = payload.get("username")
    exp = payload.get("exp")
    if not username or not isinstance(exp, (int, float)) or exp < _now_ms():
        return None
    return AdminSession(username=username, exp=int(exp))


def check_admin_credentials(username: str, password: str) -> bool:
    """Constant-time comparison against the configured admin account"""
    user_ok = hmac.compare_digest(username.encode("utf-8"), settings.ADMIN_USERNAME.encode("utf-8"))
    pass_ok = hmac.compare_digest(password.encode("utf-8"), settings.ADMIN_PASSWORD.encode("utf-8"))
    return user_ok and pass_ok


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> str:
    """
    FastAPI dependency guarding admin endpoints.

    Usage:
        @router.get("/protected")
        async def protected_route(admin_name: str = Depends(require_admin)):
            ...

    Returns:
        The admin username carried by the token

    Raises:
        HTTPException 401: missing, malformed, forged or expired token
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    session = verify_token(credentials.credentials)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    return session.username
