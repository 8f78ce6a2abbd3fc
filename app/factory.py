"""
FastAPI application factory.
"""

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.flags import get_flags
from .core.storage import LOCAL_URL_PREFIX
from .api.router import router
from .services.media_processor import MediaProcessor, check_ffmpeg_available
from .services.tavus import TavusClient

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    flags = get_flags()

    app = FastAPI(
        title="Studio",
        description="Marketing site backend: media gallery, Tavus avatars, admin",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if origins != ["*"] else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error payloads: {"error": "..."} ─────────────────────────
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid data", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ── Local media files ────────────────────────────────────────
    if not flags.use_s3:
        media_dir = Path(settings.local_storage_path)
        media_dir.mkdir(parents=True, exist_ok=True)
        app.mount(LOCAL_URL_PREFIX, StaticFiles(directory=str(media_dir)), name="media")

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting Studio (env=%s)", settings.env)

        await init_db()

        Path(settings.temp_upload_dir).mkdir(parents=True, exist_ok=True)

        app.state.tavus = TavusClient(
            api_key=settings.tavus_api_key,
            base_url=settings.tavus_api_url,
        )
        app.state.media_processor = MediaProcessor(
            timeout_seconds=settings.ffmpeg_timeout_seconds,
            compress=flags.use_media_compression,
        )

        if not check_ffmpeg_available():
            logger.warning("ffmpeg/ffprobe not found; media uploads will fail until installed")

        logger.info(
            "Flags: admin_auth=%s s3=%s media_compression=%s",
            flags.use_admin_auth, flags.use_s3, flags.use_media_compression,
        )
        logger.info("Studio is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        tavus = getattr(app.state, "tavus", None)
        if tavus is not None:
            await tavus.aclose()
        await close_db()
        logger.info("Studio shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Field errors without the raw input/ctx objects (not always JSON-serializable)."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
