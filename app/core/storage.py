"""
Media file storage. S3 OR local filesystem. Controlled by FF_USE_S3 flag.
"""

import asyncio
import logging
import mimetypes
import shutil
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/media"


class StorageBackend(ABC):
    @abstractmethod
    async def upload_file(self, source: Path, filename: str, folder: str = "") -> str:
        """Store a file from disk. Returns the URL/path the front end should use."""
        ...

    @abstractmethod
    async def delete(self, stored_path: str) -> bool:
        """Remove a previously stored file. Returns False if it was not there."""
        ...


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _base_url(self) -> str:
        settings = get_settings()
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/"

    async def upload_file(self, source: Path, filename: str, folder: str = "") -> str:
        settings = get_settings()
        key = _unique_key(filename, folder)

        await asyncio.to_thread(
            self._get_client().upload_file,
            str(source),
            settings.s3_bucket_name,
            key,
            ExtraArgs={"ContentType": _guess_content_type(filename)},
        )

        logger.info("Uploaded to S3: %s", key)
        return self._base_url() + key

    async def delete(self, stored_path: str) -> bool:
        base = self._base_url()
        if not stored_path.startswith(base):
            logger.warning("Not an S3 object of this bucket: %s", stored_path)
            return False

        settings = get_settings()
        key = stored_path[len(base):]
        await asyncio.to_thread(
            self._get_client().delete_object,
            Bucket=settings.s3_bucket_name,
            Key=key,
        )
        logger.info("Deleted from S3: %s", key)
        return True


class LocalStorage(StorageBackend):
    def __init__(self, base_path: str = "./local_storage"):
        self.base_path = Path(base_path)

    async def upload_file(self, source: Path, filename: str, folder: str = "") -> str:
        key = _unique_key(filename, folder)
        target = self.base_path / key
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, target)

        logger.info("Saved locally: %s", target)
        return f"{LOCAL_URL_PREFIX}/{key}"

    def resolve(self, stored_path: str) -> Optional[Path]:
        """Map a /media/... URL back to a file under base_path, or None."""
        key = stored_path
        if key.startswith(LOCAL_URL_PREFIX + "/"):
            key = key[len(LOCAL_URL_PREFIX) + 1:]
        base = self.base_path.resolve()
        candidate = (base / key).resolve()
        if base not in candidate.parents:
            return None
        return candidate

    async def delete(self, stored_path: str) -> bool:
        path = self.resolve(stored_path)
        if path is None or not path.is_file():
            logger.warning("Stored file not found: %s", stored_path)
            return False
        await asyncio.to_thread(path.unlink)
        logger.info("Deleted local file: %s", path)
        return True


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage(get_settings().local_storage_path)


def _unique_key(filename: str, folder: str) -> str:
    ext = Path(filename).suffix
    unique = f"{uuid.uuid4().hex[:12]}{ext}"
    key = f"{folder}/{unique}" if folder else unique
    return key.strip("/")


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
