"""
Shared fixtures: in-memory SQLite, a fake Tavus API, a fake media processor.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import issue_session_token
from app.core.config import get_settings
from app.core.database import build_engine, create_tables
from app.core.dependencies import get_db, get_media_processor, get_tavus
from app.core.flags import get_flags
from app.factory import create_app
from app.services.media_processor import ProcessedMedia
from app.services.tavus import TavusClient

TAVUS_BASE = "https://tavus.test/v2"


@pytest.fixture(autouse=True)
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("FF_USE_ADMIN_AUTH", "true")
    monkeypatch.setenv("FF_USE_S3", "false")
    monkeypatch.setenv("ADMIN_USERNAME", "admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")
    monkeypatch.setenv("SESSION_SECRET", "test-secret")
    monkeypatch.setenv("TAVUS_API_KEY", "test-key")
    monkeypatch.setenv("TAVUS_API_URL", TAVUS_BASE)
    monkeypatch.setenv("LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("TEMP_UPLOAD_DIR", str(tmp_path / "temp-uploads"))
    get_settings.cache_clear()
    get_flags.cache_clear()
    yield
    get_settings.cache_clear()
    get_flags.cache_clear()


# ── Database ─────────────────────────────────────────────────────────

@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ── Fake Tavus ───────────────────────────────────────────────────────

class FakeTavusAPI:
    """Canned Tavus responses keyed by (method, path below /v2)."""

    def __init__(self):
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        self.routes[(method, path)] = (status, json)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _api_path(r) == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, _api_path(request))
        if key not in self.routes:
            return httpx.Response(404, json={"message": "not found"})
        status, body = self.routes[key]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


def _api_path(request: httpx.Request) -> str:
    return request.url.path.removeprefix("/v2")


@pytest.fixture
def tavus_api():
    return FakeTavusAPI()


@pytest.fixture
async def tavus_client(tavus_api):
    http = httpx.AsyncClient(transport=httpx.MockTransport(tavus_api.handler))
    client = TavusClient(api_key="test-key", base_url=TAVUS_BASE, http=http)
    yield client
    await client.aclose()


# ── Fake media processor ─────────────────────────────────────────────

class FakeProcessor:
    """Stands in for ffmpeg: copies the upload and writes a fake thumbnail."""

    def __init__(self, work_root: Path):
        self.work_root = work_root
        self.fail: Optional[Exception] = None
        self.calls: list[tuple[Path, str, str]] = []
        self.discarded: list[ProcessedMedia] = []

    async def process(self, source: Path, original_filename: str, file_type: str) -> ProcessedMedia:
        self.calls.append((Path(source), original_filename, file_type))
        if self.fail is not None:
            raise self.fail

        self.work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(dir=self.work_root))
        stem = Path(original_filename).stem
        suffix = ".mp4" if file_type == "video" else ".mp3"
        output = work_dir / f"{stem}{suffix}"
        output.write_bytes(Path(source).read_bytes())

        thumbnail = None
        if file_type == "video":
            thumbnail = work_dir / f"{stem}-thumb.jpg"
            thumbnail.write_bytes(b"\xff\xd8\xff")

        return ProcessedMedia(
            work_dir=work_dir,
            output_path=output,
            output_filename=output.name,
            thumbnail_path=thumbnail,
            duration_seconds=65.0,
            size_bytes=output.stat().st_size,
            metadata={"duration_seconds": 65.0, "format": "mov,mp4"},
        )

    def discard(self, processed: Optional[ProcessedMedia]) -> None:
        if processed is not None:
            self.discarded.append(processed)
            shutil.rmtree(processed.work_dir, ignore_errors=True)


@pytest.fixture
def processor(tmp_path):
    return FakeProcessor(tmp_path / "work")


# ── App + clients ────────────────────────────────────────────────────

@pytest.fixture
def app(session_factory, tavus_client, processor):
    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_tavus] = lambda: tavus_client
    application.dependency_overrides[get_media_processor] = lambda: processor
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {issue_session_token('admin')}"}


@pytest.fixture
def temp_upload_dir(tmp_path) -> Path:
    return tmp_path / "temp-uploads"


@pytest.fixture
def storage_dir(tmp_path) -> Path:
    return tmp_path / "storage"


def leftover_files(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return [p for p in directory.rglob("*") if p.is_file()]
