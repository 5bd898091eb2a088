from __future__ import annotations

import logging

import httpx

from translate_glue.errors import TranslationError
from translate_glue.services.transcriber import provider_error_message, provider_headers, unwrap_result
from translate_glue.types import TranslationResult

logger = logging.getLogger(__name__)


class TranslationClient:
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

    def translate(self, text: str, source_lang: str, target_lang: str) -> TranslationResult:
        if not text.strip():
            raise TranslationError("Nothing to translate: text is empty")

        request_payload = {
            "text": text,
            "source_lang": source_lang,
            "target_lang": target_lang,
        }
        logger.info("Translating %d characters from %s to %s", len(text), source_lang, target_lang)
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.post(
                    self.url,
                    headers=provider_headers(self.api_token),
                    json=request_payload,
                )
        except httpx.TimeoutException as exc:
            raise TranslationError(
                f"Translation request timed out after {self.timeout_seconds:g} seconds",
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise TranslationError(f"Translation request failed: {exc}", cause=exc) from exc

        if response.status_code >= 400:
            raise TranslationError(
                f"Translation provider error ({response.status_code}): {provider_error_message(response)}",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranslationError(
                "Translation provider returned a non-JSON response",
                status=response.status_code,
                cause=exc,
            ) from exc

        result = unwrap_result(payload)
        if result is None:
            raise TranslationError(
                f"Translation provider error: {provider_error_message(response)}",
                status=response.status_code,
            )

        translated = str(result.get("translated_text") or "").strip()
        if not translated:
            raise TranslationError("Translation returned an empty result", status=response.status_code)

        return TranslationResult(text=translated, source_lang=source_lang, target_lang=target_lang)
