from __future__ import annotations

import asyncio
import logging
from threading import Event

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from translate_glue.config import Settings, load_settings
from translate_glue.pipeline import Pipeline, PipelineOptions
from translate_glue.services.storage import MediaStore
from translate_glue.services.transcoder import FFmpegTranscoder
from translate_glue.services.transcriber import TranscriptionClient
from translate_glue.services.translator import TranslationClient
from translate_glue.types import PipelineOutcome, PipelineRequest, UploadedMedia

logger = logging.getLogger(__name__)

PROCESS_PATH = "/api/process-and-translate"
MEDIA_FIELDS = ("media", "audio")
DISCONNECT_POLL_SECONDS = 0.5


class AppRuntime:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store = MediaStore(settings.data_dir, max_bytes=settings.max_upload_bytes)
        self.transcoder = FFmpegTranscoder(
            self.store,
            binary=settings.ffmpeg_binary,
            timeout_seconds=settings.request_timeout_seconds,
        )
        self.transcriber = TranscriptionClient(
            settings.transcription_url,
            api_token=settings.provider_api_token,
            timeout_seconds=settings.request_timeout_seconds,
        )
        self.translator = (
            TranslationClient(
                settings.translation_url,
                api_token=settings.provider_api_token,
                timeout_seconds=settings.request_timeout_seconds,
            )
            if settings.translation_url
            else None
        )
        self.pipeline = Pipeline(
            store=self.store,
            transcoder=self.transcoder,
            transcriber=self.transcriber,
            translator=self.translator,
            options=PipelineOptions(
                target_format=settings.target_format,
                max_upload_bytes=settings.max_upload_bytes,
                source_language=settings.source_language,
                translation_enabled=settings.translation_enabled,
                default_target_language=settings.default_target_language,
            ),
        )


async def _read_media(value: UploadFile | str | None, max_bytes: int) -> UploadedMedia | str | None:
    if not isinstance(value, UploadFile):
        return value
    if value.size is not None and value.size > max_bytes:
        # oversized: keep the declared size only
        data = b""
        size = value.size
    else:
        data = await value.read(max_bytes + 1)
        size = len(data)
    return UploadedMedia(
        data=data,
        content_type=value.content_type or "",
        filename=value.filename or "upload",
        size=size,
    )


async def _run_until_disconnected(
    pipeline: Pipeline,
    request: Request,
    pipeline_request: PipelineRequest,
) -> PipelineOutcome:
    cancel_event = Event()
    task = asyncio.ensure_future(run_in_threadpool(pipeline.run, pipeline_request, cancel_event))
    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            return task.result()
        if not cancel_event.is_set() and await request.is_disconnected():
            logger.warning("Request %s: client disconnected, cancelling", pipeline_request.request_id)
            cancel_event.set()


def create_app(runtime: AppRuntime) -> Starlette:
    async def process_and_translate(request: Request) -> JSONResponse:
        try:
            form = await request.form()
        except MultiPartException as exc:
            return JSONResponse({"error": "Malformed multipart body", "details": exc.message}, status_code=400)

        try:
            field = next((form[name] for name in MEDIA_FIELDS if name in form), None)
            if field is None and "url" in form:
                field = form["url"]
            language = form.get("language")
            pipeline_request = PipelineRequest(
                media=await _read_media(field, runtime.settings.max_upload_bytes),
                language=language if isinstance(language, str) else None,
            )
        finally:
            await form.close()

        logger.info("Request %s: received", pipeline_request.request_id)
        outcome = await _run_until_disconnected(runtime.pipeline, request, pipeline_request)
        return JSONResponse(outcome.to_payload(), status_code=outcome.status_code)

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "OK", "message": "FFmpeg Translation Middleware is running"})

    async def http_error(_: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    async def unhandled_error(_: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s", exc, exc_info=exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    return Starlette(
        routes=[
            Route(PROCESS_PATH, process_and_translate, methods=["POST"]),
            Route(runtime.settings.health_path, health, methods=["GET"]),
        ],
        exception_handlers={HTTPException: http_error, Exception: unhandled_error},
    )


def cli() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    settings = load_settings()
    runtime = AppRuntime(settings)
    app = create_app(runtime)
    logger.info("Starting translate-glue on %s:%s", settings.host, settings.port)
    logger.info("API endpoint: http://%s:%s%s", settings.host, settings.port, PROCESS_PATH)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    cli()
