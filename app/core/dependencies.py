"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import SESSION_COOKIE, AdminUser, get_current_admin
from .database import get_db as _get_db
from .storage import StorageBackend, get_storage as _get_storage
from ..services.media_processor import MediaProcessor
from ..services.tavus import TavusClient


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def require_admin(
    session_token: str = Cookie(default="", alias=SESSION_COOKIE),
    authorization: str = Header(default=""),
) -> AdminUser:
    """
    Resolve the admin from the session cookie or Authorization header.
    Returns the dev admin if FF_USE_ADMIN_AUTH=false.
    """
    try:
        return get_current_admin(cookie_token=session_token, authorization=authorization)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_tavus(request: Request) -> TavusClient:
    """The app-wide Tavus client created at startup."""
    return request.app.state.tavus


def get_media_processor(request: Request) -> MediaProcessor:
    return request.app.state.media_processor


def get_storage_dep() -> StorageBackend:
    """Returns the active storage backend (S3 or local)."""
    return _get_storage()

