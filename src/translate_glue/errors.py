"""Error taxonomy for the conversion-and-chaining pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every failure a pipeline stage can report."""

    stage = "pipeline"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.status = status
        self.cause = cause
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(PipelineError):
    """Raised when the caller sent a missing or unusable media payload."""

    stage = "receive"
    status_code = 400


class StorageError(PipelineError):
    """Raised when the media store cannot write or read a file."""

    stage = "store"


class ConversionError(PipelineError):
    """Raised when the conversion engine fails, crashes or times out."""

    stage = "convert"


class TranscriptionError(PipelineError):
    """Raised when the speech-recognition provider fails or returns no text."""

    stage = "transcribe"


class TranslationError(PipelineError):
    """Raised when the translation provider fails or returns no text."""

    stage = "translate"
