"""
Admin session endpoints.

POST /api/admin/login      — exchange credentials for a session cookie
POST /api/admin/logout     — clear the session cookie
GET  /api/admin/check-auth — report whether the caller holds a valid session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Header, HTTPException, Response, status
from pydantic import BaseModel

from ..core.auth import (
    SESSION_COOKIE,
    get_current_admin,
    issue_session_token,
    verify_credentials,
)
from ..core.config import get_settings

logger = logging.getLogger(__name__)

admin_auth_router = APIRouter(prefix="/admin", tags=["admin"])


class LoginRequest(BaseModel):
    username: str = ""
    password: str


class AuthStatus(BaseModel):
    authenticated: bool
    username: Optional[str] = None


@admin_auth_router.post("/login", response_model=AuthStatus)
async def login(request: LoginRequest, response: Response):
    settings = get_settings()
    username = request.username or settings.admin_username

    if not verify_credentials(username, request.password):
        logger.warning("Failed admin login for %r", username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = issue_session_token(username)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.env == "production",
    )
    logger.info("Admin %s logged in", username)
    return AuthStatus(authenticated=True, username=username)


@admin_auth_router.post("/logout", response_model=AuthStatus)
async def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return AuthStatus(authenticated=False)


@admin_auth_router.get("/check-auth", response_model=AuthStatus)
async def check_auth(
    session_token: str = Cookie(default="", alias=SESSION_COOKIE),
    authorization: str = Header(default=""),
):
    try:
        admin = get_current_admin(cookie_token=session_token, authorization=authorization)
    except PermissionError:
        return AuthStatus(authenticated=False)
    return AuthStatus(authenticated=True, username=admin.username)
