from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from translate_glue.types import TargetFormat


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    health_path: str
    data_dir: Path
    max_upload_bytes: int
    request_timeout_seconds: float
    ffmpeg_binary: str
    target_format: TargetFormat
    transcription_url: str
    translation_url: str | None
    provider_api_token: str | None
    source_language: str
    translation_enabled: bool
    default_target_language: str | None

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def converted_dir(self) -> Path:
        return self.data_dir / "converted"


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _as_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def load_settings() -> Settings:
    load_dotenv()
    data_dir = Path(os.getenv("DATA_DIR", "./data")).resolve()

    transcription_url = os.getenv("TRANSCRIPTION_URL", "").strip()
    if not transcription_url:
        raise RuntimeError("TRANSCRIPTION_URL is required")

    translation_enabled = _as_bool("TRANSLATION_ENABLED", True)
    translation_url = os.getenv("TRANSLATION_URL", "").strip() or None
    if translation_enabled and not translation_url:
        raise RuntimeError("TRANSLATION_URL is required when translation is enabled")

    channels = os.getenv("AUDIO_CHANNELS")
    target_format = TargetFormat(
        codec=os.getenv("AUDIO_CODEC", "libmp3lame"),
        bitrate_kbps=_as_int("AUDIO_BITRATE_KBPS", 128),
        container=os.getenv("AUDIO_FORMAT", "mp3"),
        channels=int(channels) if channels else None,
    )

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3001),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/health")),
        data_dir=data_dir,
        max_upload_bytes=_as_int("MAX_UPLOAD_BYTES", 100 * 1024 * 1024),
        request_timeout_seconds=float(_as_int("REQUEST_TIMEOUT_SECONDS", 60)),
        ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        target_format=target_format,
        transcription_url=transcription_url,
        translation_url=translation_url,
        provider_api_token=os.getenv("PROVIDER_API_TOKEN") or None,
        source_language=os.getenv("SOURCE_LANGUAGE", "en").strip().lower(),
        translation_enabled=translation_enabled,
        default_target_language=(os.getenv("DEFAULT_TARGET_LANGUAGE") or "").strip().lower() or None,
    )
