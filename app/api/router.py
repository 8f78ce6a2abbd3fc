"""
Main API router. Mounts all sub-routers under /api.
"""

from fastapi import APIRouter

from .admin_auth import admin_auth_router
from .admin_avatars import admin_avatars_router
from .admin_media import admin_media_router
from .contact import contact_router
from .samples import samples_router
from .tavus import tavus_router

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    from ..core.flags import get_flags

    flags = get_flags()
    return {
        "status": "ok",
        "service": "studio",
        "storage": "s3" if flags.use_s3 else "local",
    }


# ── Public + admin API ──────────────────────────────────────────────
# Admin routers carry their own require_admin dependency; the Tavus router
# mixes public and admin endpoints and guards per-route.

api_router = APIRouter(prefix="/api")
api_router.include_router(samples_router)
api_router.include_router(contact_router)
api_router.include_router(tavus_router)
api_router.include_router(admin_auth_router)
api_router.include_router(admin_media_router)
api_router.include_router(admin_avatars_router)

router.include_router(api_router)
