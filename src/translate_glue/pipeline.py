from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from threading import Event

from translate_glue.errors import (
    ConversionError,
    PipelineError,
    TranscriptionError,
    TranslationError,
    ValidationError,
)
from translate_glue.services.storage import MediaStore
from translate_glue.services.transcoder import FFmpegTranscoder
from translate_glue.services.transcriber import TranscriptionClient
from translate_glue.services.translator import TranslationClient
from translate_glue.types import (
    ConversionJob,
    MediaHandle,
    PipelineOutcome,
    PipelineRequest,
    PipelineState,
    TargetFormat,
    TranslationResult,
    UploadedMedia,
)
from translate_glue.utils.url import remote_media_host

logger = logging.getLogger(__name__)

_LANGUAGE_CODE = re.compile(r"^[a-z]{2}$")
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}
_FAILURE_LABELS = {
    "store": "Storage failed",
    "convert": "Conversion failed",
    "transcribe": "Transcription failed",
    "translate": "Translation failed",
}


def _format_size(size: int) -> str:
    megabytes = size / (1024 * 1024)
    if megabytes >= 1 and megabytes.is_integer():
        return f"{int(megabytes)}MB"
    return f"{size} bytes"


@dataclass(slots=True, frozen=True)
class PipelineOptions:
    target_format: TargetFormat
    max_upload_bytes: int = 100 * 1024 * 1024
    source_language: str = "en"
    translation_enabled: bool = True
    default_target_language: str | None = None


class Pipeline:
    """Runs one request through store, convert, transcribe and translate.

    The pipeline holds no per-request state, so a single instance can serve
    concurrent requests. Both stored files are released before ``run`` returns.
    """

    def __init__(
        self,
        *,
        store: MediaStore,
        transcoder: FFmpegTranscoder,
        transcriber: TranscriptionClient,
        translator: TranslationClient | None,
        options: PipelineOptions,
    ) -> None:
        self.store = store
        self.transcoder = transcoder
        self.transcriber = transcriber
        self.translator = translator
        self.options = options

    def run(self, request: PipelineRequest, cancel_event: Event | None = None) -> PipelineOutcome:
        upload: MediaHandle | None = None
        jobs: list[ConversionJob] = []
        stage = "receive"
        original_file: str | None = None
        rid = request.request_id

        try:
            media, language = self._validate(request)
            original_file = media.filename

            stage = "store"
            upload = self.store.store(media)
            self._transition(rid, "stored")

            stage = "convert"
            self._check_cancelled(cancel_event, ConversionError)
            audio = self.transcoder.convert(
                upload,
                self.options.target_format,
                cancel_event=cancel_event,
                on_job=jobs.append,
            )
            self._transition(rid, "converted")

            stage = "transcribe"
            self._check_cancelled(cancel_event, TranscriptionError)
            hint = None if self.options.translation_enabled else language
            transcription = self.transcriber.transcribe(
                self.store.read(audio.handle),
                hint,
                content_type=audio.format.mime_type,
            )
            self._transition(rid, "transcribed")

            translation: TranslationResult | None = None
            target = self._translation_target(language)
            source = transcription.language or self.options.source_language
            if target is not None and target != source:
                stage = "translate"
                self._check_cancelled(cancel_event, TranslationError)
                if self.translator is None:
                    raise TranslationError("Translation provider is not configured")
                translation = self.translator.translate(transcription.text, source, target)
                self._transition(rid, "translated")
            elif target is not None:
                logger.info("Request %s: target language %s matches source, skipping translation", rid, target)

            outcome = PipelineOutcome(
                state="completed",
                original_file=original_file,
                converted_size=audio.size,
                transcription=transcription,
                translation=translation,
            )
            self._transition(rid, "completed")
        except PipelineError as exc:
            outcome = self._failure(rid, stage, exc, original_file)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Request %s: unexpected error during %s", rid, stage)
            outcome = PipelineOutcome(
                state="failed",
                original_file=original_file,
                error_kind="InternalError",
                failed_stage=stage,
                message="An error occurred during processing",
                details=str(exc).strip() or type(exc).__name__,
                status_code=500,
            )
        finally:
            self._cleanup(rid, upload, jobs)

        return outcome

    def _validate(self, request: PipelineRequest) -> tuple[UploadedMedia, str | None]:
        media = request.media
        if media is None:
            raise ValidationError("No media file provided")
        if isinstance(media, str):
            host = remote_media_host(media)
            if host is not None:
                raise ValidationError(
                    f"Extracting audio from remote URLs ({host}) is not supported; upload the media file instead"
                )
            raise ValidationError("Invalid media field: expected a file upload, got a text value")

        limit = self.options.max_upload_bytes
        if len(media.data) > limit or media.size > limit:
            raise ValidationError(f"File too large. Maximum size is {_format_size(limit)}.")
        if not media.data or media.size == 0:
            raise ValidationError("Media file is empty; upload a valid audio or video file")

        content_type = (media.content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in _GENERIC_CONTENT_TYPES and not content_type.startswith(("audio/", "video/")):
            raise ValidationError("Only video and audio files are allowed!")

        language = (request.language or "").strip().lower() or None
        if language is not None and not _LANGUAGE_CODE.match(language):
            raise ValidationError(f"Invalid language code {request.language!r}; expected a 2-letter code")

        return media, language

    def _translation_target(self, language: str | None) -> str | None:
        if not self.options.translation_enabled:
            return None
        return language or self.options.default_target_language

    def _failure(
        self,
        rid: str,
        stage: str,
        exc: PipelineError,
        original_file: str | None,
    ) -> PipelineOutcome:
        logger.warning("Request %s failed at %s: %s", rid, stage, exc.message)
        label = _FAILURE_LABELS.get(stage)
        return PipelineOutcome(
            state="failed",
            original_file=original_file,
            error_kind=exc.kind,
            failed_stage=stage,
            message=f"{label}: {exc.message}" if label else exc.message,
            details=exc.message,
            status_code=exc.status_code,
        )

    def _cleanup(self, rid: str, upload: MediaHandle | None, jobs: list[ConversionJob]) -> None:
        handles = [upload, *(job.output for job in jobs)]
        for handle in handles:
            try:
                self.store.release(handle)
            except OSError:
                logger.exception("Request %s: error cleaning up %s", rid, handle.name if handle else None)

    @staticmethod
    def _check_cancelled(cancel_event: Event | None, error: type[PipelineError]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise error("Request cancelled")

    @staticmethod
    def _transition(rid: str, state: PipelineState) -> None:
        logger.info("Request %s: %s", rid, state)
