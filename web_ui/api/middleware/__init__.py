"""
Embyvault API Middleware

Admin authentication and error handling for the FastAPI application.
"""

from .auth import (
    AdminSession,
    check_admin_credentials,
    create_admin_session_token,
    require_admin,
    verify_token,
)

from .errors import register_exception_handlers

__all__ = [
    # Auth
    "AdminSession",
    "check_admin_credentials",
    "create_admin_session_token",
    "require_admin",
    "verify_token",
    # Errors
    "register_exception_handlers",
]
