"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_admin_auth: bool = Field(default=True, alias="FF_USE_ADMIN_AUTH")
    # ON  → Admin routes need a signed session. Needs ADMIN_PASSWORD, SESSION_SECRET.
    # OFF → Dev admin injected. No login needed.

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Processed media goes to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Files saved under LOCAL_STORAGE_PATH and served from /media.

    # ── Media processing ─────────────────────────────────────────────
    use_media_compression: bool = Field(default=True, alias="FF_USE_MEDIA_COMPRESSION")
    # ON  → Uploads are transcoded with ffmpeg and thumbnailed.
    # OFF → Uploads are stored as-is; only duration is probed.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
