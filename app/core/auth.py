"""
Admin session tokens (signed JWT) OR dev-mode bypass. Controlled by FF_USE_ADMIN_AUTH flag.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from jose import jwt, JWTError

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

SESSION_COOKIE = "admin_session"


@dataclass
class AdminUser:
    username: str
    issued_at: int = 0
    expires_at: int = 0


# Dev-mode admin — returned when FF_USE_ADMIN_AUTH=false
DEV_ADMIN = AdminUser(username="dev-admin")


def verify_credentials(username: str, password: str) -> bool:
    """Constant-time check against the configured admin account."""
    settings = get_settings()
    if not settings.admin_password:
        logger.warning("ADMIN_PASSWORD is not configured; admin login disabled")
        return False

    user_ok = secrets.compare_digest(username.encode(), settings.admin_username.encode())
    pass_ok = secrets.compare_digest(password.encode(), settings.admin_password.encode())
    return user_ok and pass_ok


def issue_session_token(username: str, now: Optional[int] = None) -> str:
    settings = get_settings()
    issued = int(now if now is not None else time.time())
    claims = {
        "sub": username,
        "iat": issued,
        "exp": issued + settings.session_ttl_seconds,
        "scope": "admin",
    }
    return jwt.encode(claims, settings.session_secret, algorithm=settings.session_algorithm)


def decode_session_token(token: str) -> AdminUser:
    """Raises JWTError on bad signature, expiry or wrong scope."""
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.session_secret,
        algorithms=[settings.session_algorithm],
    )
    if payload.get("scope") != "admin" or not payload.get("sub"):
        raise JWTError("Token is not an admin session")

    return AdminUser(
        username=payload["sub"],
        issued_at=int(payload.get("iat", 0)),
        expires_at=int(payload.get("exp", 0)),
    )


def get_current_admin(cookie_token: str = "", authorization: str = "") -> AdminUser:
    """
    Resolve the admin from the session cookie or a Bearer header.
    If FF_USE_ADMIN_AUTH is false, returns the dev admin.
    """
    if not get_flags().use_admin_auth:
        return DEV_ADMIN

    token = cookie_token
    if not token and authorization:
        scheme, _, bearer = authorization.partition(" ")
        if scheme.lower() != "bearer" or not bearer:
            raise PermissionError("Invalid Authorization header. Use: Bearer <token>")
        token = bearer

    if not token:
        raise PermissionError("Authentication required")

    try:
        return decode_session_token(token)
    except JWTError as e:
        raise PermissionError(f"Invalid session: {e}")
