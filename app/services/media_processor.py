"""
ffmpeg-based media processing for gallery uploads.

Video → H.264/AAC mp4 (faststart, capped at 1080p) + a JPEG thumbnail.
Audio → 128k mp3.
Duration is probed with ffprobe. All work happens in a private work
directory; the caller stores the outputs and then calls discard().

Blocking subprocess calls run in a worker thread (asyncio.to_thread).
"""

import asyncio
import json
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

VIDEO_CODEC = "libx264"
VIDEO_CRF = "28"
VIDEO_PRESET = "medium"
VIDEO_MAX_HEIGHT = 1080
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "128k"
THUMBNAIL_AT_SECONDS = 1.0
THUMBNAIL_WIDTH = 640


@dataclass
class ProcessedMedia:
    """Outputs of one processing run. Paths live inside work_dir."""

    work_dir: Path
    output_path: Path
    output_filename: str
    thumbnail_path: Optional[Path] = None
    duration_seconds: float = 0.0
    size_bytes: int = 0
    metadata: dict = field(default_factory=dict)

    @property
    def duration(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def file_size(self) -> str:
        return format_file_size(self.size_bytes)


def format_duration(seconds: float) -> str:
    """Render seconds as M:SS or H:MM:SS."""
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def check_ffmpeg_available() -> bool:
    """True if both ffmpeg and ffprobe can be executed."""
    try:
        subprocess.run(["ffmpeg", "-version"], capture_output=True, timeout=5)
        subprocess.run(["ffprobe", "-version"], capture_output=True, timeout=5)
        return True
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


class MediaProcessor:
    """Compresses uploads and derives thumbnails with ffmpeg."""

    def __init__(self, timeout_seconds: int = 600, compress: bool = True):
        self.timeout_seconds = timeout_seconds
        self.compress = compress

    async def process(self, source: Path, original_filename: str, file_type: str) -> ProcessedMedia:
        """
        Process an uploaded file.

        Raises:
            FileNotFoundError: If source doesn't exist.
            RuntimeError: If ffmpeg/ffprobe fails or times out.
        """
        return await asyncio.to_thread(self._process_sync, Path(source), original_filename, file_type)

    def discard(self, processed: Optional[ProcessedMedia]) -> None:
        if processed is not None:
            shutil.rmtree(processed.work_dir, ignore_errors=True)

    # ── Sync internals (run in a worker thread) ──────────────────────

    def _process_sync(self, source: Path, original_filename: str, file_type: str) -> ProcessedMedia:
        if not source.exists():
            raise FileNotFoundError(f"Upload not found: {source}")

        work_dir = Path(tempfile.mkdtemp(prefix="media-"))
        stem = Path(original_filename).stem or "media"
        try:
            if not self.compress:
                output = work_dir / f"{stem}{Path(original_filename).suffix.lower()}"
                shutil.copyfile(source, output)
            elif file_type == "video":
                output = work_dir / f"{stem}.mp4"
                self._compress_video(source, output)
            else:
                output = work_dir / f"{stem}.mp3"
                self._compress_audio(source, output)

            probe = self._probe(output)
            thumbnail = None
            if file_type == "video":
                thumbnail = work_dir / f"{stem}-thumb.jpg"
                at = min(THUMBNAIL_AT_SECONDS, probe["duration_seconds"] / 2)
                self._extract_thumbnail(output, thumbnail, at)

            size = output.stat().st_size
            logger.info(
                "Processed %s %s: %.1fs, %d bytes (source %d bytes)",
                file_type, original_filename, probe["duration_seconds"], size, source.stat().st_size,
            )
            return ProcessedMedia(
                work_dir=work_dir,
                output_path=output,
                output_filename=output.name,
                thumbnail_path=thumbnail,
                duration_seconds=probe["duration_seconds"],
                size_bytes=size,
                metadata=probe,
            )
        except Exception:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise

    def _run(self, args: list[str], what: str) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"{what} timed out after {self.timeout_seconds}s") from e
        except FileNotFoundError as e:
            raise RuntimeError(f"{what} failed: {args[0]} is not installed") from e

        if result.returncode != 0:
            raise RuntimeError(f"{what} failed: {result.stderr[-1000:]}")
        return result

    def _compress_video(self, source: Path, output: Path) -> None:
        self._run(
            [
                "ffmpeg",
                "-y",
                "-i", str(source),
                "-c:v", VIDEO_CODEC,
                "-preset", VIDEO_PRESET,
                "-crf", VIDEO_CRF,
                # Cap height, keep aspect, force even dimensions for yuv420p
                "-vf", f"scale=-2:'min({VIDEO_MAX_HEIGHT},ih)'",
                "-pix_fmt", "yuv420p",
                "-c:a", AUDIO_CODEC,
                "-b:a", AUDIO_BITRATE,
                "-movflags", "+faststart",  # Browser-friendly
                str(output),
            ],
            "Video compression",
        )

    def _compress_audio(self, source: Path, output: Path) -> None:
        self._run(
            [
                "ffmpeg",
                "-y",
                "-i", str(source),
                "-vn",
                "-c:a", "libmp3lame",
                "-b:a", AUDIO_BITRATE,
                str(output),
            ],
            "Audio compression",
        )

    def _extract_thumbnail(self, video: Path, output: Path, at_seconds: float) -> None:
        self._run(
            [
                "ffmpeg",
                "-y",
                "-ss", f"{max(at_seconds, 0):.2f}",
                "-i", str(video),
                "-frames:v", "1",
                "-vf", f"scale={THUMBNAIL_WIDTH}:-2",
                "-q:v", "3",
                str(output),
            ],
            "Thumbnail extraction",
        )

    def _probe(self, path: Path) -> dict:
        result = self._run(
            [
                "ffprobe",
                "-v", "error",
                "-show_entries", "format=duration,format_name,bit_rate:stream=codec_type,codec_name,width,height",
                "-of", "json",
                str(path),
            ],
            "Media probe",
        )
        return parse_probe_output(result.stdout)


def parse_probe_output(raw: str) -> dict:
    """Reduce ffprobe JSON to the fields stored on the media record."""
    data = json.loads(raw or "{}")
    fmt = data.get("format", {})
    info: dict = {
        "duration_seconds": float(fmt.get("duration") or 0),
        "format": fmt.get("format_name"),
    }
    if fmt.get("bit_rate"):
        info["bit_rate"] = int(fmt["bit_rate"])

    for stream in data.get("streams", []):
        kind = stream.get("codec_type")
        if kind == "video" and "video_codec" not in info:
            info["video_codec"] = stream.get("codec_name")
            info["width"] = int(stream.get("width", 0))
            info["height"] = int(stream.get("height", 0))
        elif kind == "audio" and "audio_codec" not in info:
            info["audio_codec"] = stream.get("codec_name")
    return info
