from __future__ import annotations

import logging
from typing import Any

import httpx

from translate_glue.errors import TranscriptionError
from translate_glue.types import TranscriptionResult

logger = logging.getLogger(__name__)


def provider_headers(api_token: str | None) -> dict[str, str]:
    headers = {"accept": "application/json"}
    if api_token:
        headers["authorization"] = f"Bearer {api_token}"
    return headers


def provider_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if error:
            return str(error)
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                return str(first.get("message") or first)
            return str(first)

    return response.text[:400] or response.reason_phrase


def unwrap_result(payload: object) -> dict[str, Any] | None:
    """Return the provider's result object, unwrapping ``{"result": {...}}`` envelopes."""
    if not isinstance(payload, dict):
        return None
    if payload.get("success") is False:
        return None
    result = payload.get("result")
    if isinstance(result, dict):
        return result
    return payload


class TranscriptionClient:
    def __init__(
        self,
        url: str,
        api_token: str | None = None,
        timeout_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def transcribe(
        self,
        audio: bytes,
        language_hint: str | None = None,
        content_type: str = "audio/mpeg",
    ) -> TranscriptionResult:
        if not audio:
            raise TranscriptionError("No audio to transcribe")

        headers = provider_headers(self.api_token)
        headers["content-type"] = content_type
        params = {"language": language_hint} if language_hint else None

        logger.info("Sending %d bytes of audio for transcription", len(audio))
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.post(self.url, headers=headers, params=params, content=audio)
        except httpx.TimeoutException as exc:
            raise TranscriptionError(
                f"Transcription request timed out after {self.timeout_seconds:g} seconds",
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Transcription request failed: {exc}", cause=exc) from exc

        if response.status_code >= 400:
            raise TranscriptionError(
                f"Transcription provider error ({response.status_code}): {provider_error_message(response)}",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError(
                "Transcription provider returned a non-JSON response",
                status=response.status_code,
                cause=exc,
            ) from exc

        result = unwrap_result(payload)
        if result is None:
            raise TranscriptionError(
                f"Transcription provider error: {provider_error_message(response)}",
                status=response.status_code,
            )

        text = str(result.get("text") or "").strip()
        if not text:
            raise TranscriptionError("Transcription returned an empty result", status=response.status_code)

        language = result.get("language") or result.get("detected_language") or language_hint
        language_value = str(language).strip().lower() if language else None

        logger.info("Transcription received (%d characters, language=%s)", len(text), language_value)
        return TranscriptionResult(text=text, language=language_value)
