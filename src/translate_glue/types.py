from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

ConversionStatus = Literal["pending", "running", "succeeded", "failed"]
StorageArea = Literal["uploads", "converted"]
PipelineState = Literal[
    "received",
    "stored",
    "converted",
    "transcribed",
    "translated",
    "completed",
    "failed",
]

_AUDIO_MIME_TYPES = {"mp3": "audio/mpeg", "ogg": "audio/ogg", "wav": "audio/wav", "flac": "audio/flac"}


@dataclass(slots=True)
class UploadedMedia:
    data: bytes
    content_type: str
    filename: str
    size: int


@dataclass(slots=True)
class PipelineRequest:
    """One inbound call: the media field as received and the language field."""

    media: UploadedMedia | str | None
    language: str | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass(slots=True, frozen=True)
class MediaHandle:
    name: str
    path: Path
    area: StorageArea
    original_filename: str | None = None


@dataclass(slots=True, frozen=True)
class TargetFormat:
    codec: str = "libmp3lame"
    bitrate_kbps: int = 128
    container: str = "mp3"
    channels: int | None = None

    @property
    def suffix(self) -> str:
        return f".{self.container}"

    @property
    def mime_type(self) -> str:
        return _AUDIO_MIME_TYPES.get(self.container, f"audio/{self.container}")


@dataclass(slots=True)
class ConversionJob:
    source: MediaHandle
    target_format: TargetFormat
    output: MediaHandle
    status: ConversionStatus = "pending"
    progress: float = 0.0
    error: str | None = None


@dataclass(slots=True, frozen=True)
class CanonicalAudio:
    handle: MediaHandle
    format: TargetFormat
    size: int


@dataclass(slots=True, frozen=True)
class TranscriptionResult:
    text: str
    language: str | None = None


@dataclass(slots=True, frozen=True)
class TranslationResult:
    text: str
    source_lang: str
    target_lang: str


@dataclass(slots=True)
class PipelineOutcome:
    """Exactly one of these is produced for every request."""

    state: PipelineState
    original_file: str | None = None
    converted_size: int | None = None
    transcription: TranscriptionResult | None = None
    translation: TranslationResult | None = None
    error_kind: str | None = None
    failed_stage: str | None = None
    message: str | None = None
    details: str | None = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.state == "completed"

    def to_payload(self) -> dict[str, Any]:
        if not self.ok:
            payload: dict[str, Any] = {"error": self.message, "details": self.details}
            if self.status_code >= 500:
                payload["stage"] = self.failed_stage
            return payload

        payload = {
            "success": True,
            "originalFile": self.original_file,
            "convertedSize": self.converted_size,
        }
        if self.transcription is not None:
            payload["transcription"] = {
                "text": self.transcription.text,
                "language": self.transcription.language,
            }
        if self.translation is not None:
            payload["translation"] = {
                "text": self.translation.text,
                "source_lang": self.translation.source_lang,
                "target_lang": self.translation.target_lang,
            }
        return payload
