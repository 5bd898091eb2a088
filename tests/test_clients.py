import json

import httpx
import pytest

from translate_glue.errors import TranscriptionError, TranslationError
from translate_glue.services.transcriber import TranscriptionClient
from translate_glue.services.translator import TranslationClient

STT_URL = "https://stt.example.com/transcribe"
MT_URL = "https://mt.example.com/translate"


def transcriber_for(handler, **kwargs) -> TranscriptionClient:
    return TranscriptionClient(STT_URL, transport=httpx.MockTransport(handler), **kwargs)


def translator_for(handler, **kwargs) -> TranslationClient:
    return TranslationClient(MT_URL, transport=httpx.MockTransport(handler), **kwargs)


def test_transcribe_sends_raw_audio() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "  hello there ", "language": "EN"})

    result = transcriber_for(handler, api_token="secret").transcribe(b"ID3audio", "en")

    assert result.text == "hello there"
    assert result.language == "en"
    request = seen[0]
    assert request.content == b"ID3audio"
    assert request.headers["content-type"] == "audio/mpeg"
    assert request.headers["authorization"] == "Bearer secret"
    assert request.url.params["language"] == "en"


def test_transcribe_unwraps_result_envelope() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "language" not in request.url.params
        return httpx.Response(200, json={"success": True, "result": {"text": "hola"}})

    result = transcriber_for(handler).transcribe(b"ID3audio")

    assert result.text == "hola"
    assert result.language is None


def test_transcribe_empty_text_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"text": "", "word_count": 0})

    with pytest.raises(TranscriptionError, match="empty result"):
        transcriber_for(handler).transcribe(b"ID3audio")


def test_transcribe_reports_provider_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "model overloaded"})

    with pytest.raises(TranscriptionError) as excinfo:
        transcriber_for(handler).transcribe(b"ID3audio")

    assert excinfo.value.status == 503
    assert "model overloaded" in excinfo.value.message


def test_transcribe_reports_unsuccessful_envelope() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "errors": [{"message": "Invalid audio"}]})

    with pytest.raises(TranscriptionError, match="Invalid audio"):
        transcriber_for(handler).transcribe(b"ID3audio")


def test_transcribe_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(TranscriptionError, match="timed out after 60 seconds"):
        transcriber_for(handler).transcribe(b"ID3audio")


def test_transcribe_rejects_non_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(TranscriptionError, match="non-JSON"):
        transcriber_for(handler).transcribe(b"ID3audio")


def test_translate_posts_language_pair() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"translated_text": "hola mundo"})

    result = translator_for(handler).translate("hello world", "en", "es")

    assert seen == [{"text": "hello world", "source_lang": "en", "target_lang": "es"}]
    assert result.text == "hola mundo"
    assert result.source_lang == "en"
    assert result.target_lang == "es"


def test_translate_requires_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("provider must not be called")

    with pytest.raises(TranslationError, match="empty"):
        translator_for(handler).translate("   ", "en", "es")


def test_translate_reports_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="unsupported target_lang")

    with pytest.raises(TranslationError) as excinfo:
        translator_for(handler).translate("hello", "en", "xx")

    assert excinfo.value.status == 400
    assert "unsupported target_lang" in excinfo.value.message


def test_translate_empty_result_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"translated_text": ""}})

    with pytest.raises(TranslationError, match="empty result"):
        translator_for(handler).translate("hello", "en", "es")
