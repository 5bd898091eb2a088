from __future__ import annotations

import logging
import re
import shlex
import subprocess
import time
from collections import deque
from threading import Event, Thread
from typing import Callable, Iterable, NoReturn

from translate_glue.errors import ConversionError
from translate_glue.services.storage import MediaStore
from translate_glue.types import CanonicalAudio, ConversionJob, MediaHandle, TargetFormat

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ConversionJob, float], None]

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


def parse_duration(line: str) -> float | None:
    match = _DURATION_RE.search(line)
    if match is None:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def log_progress(job: ConversionJob, percent: float) -> None:
    logger.info("Processing %s: %.1f%% done", job.source.name, percent)


class FFmpegTranscoder:
    """Runs ffmpeg as a bounded child process to produce canonical audio."""

    def __init__(
        self,
        store: MediaStore,
        *,
        binary: str = "ffmpeg",
        timeout_seconds: float = 60.0,
        watch_interval_seconds: float = 0.2,
    ) -> None:
        self.store = store
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self.watch_interval_seconds = watch_interval_seconds

    def build_command(self, job: ConversionJob) -> list[str]:
        fmt = job.target_format
        cmd = [
            self.binary,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i",
            str(job.source.path),
            "-vn",
            "-acodec",
            fmt.codec,
            "-b:a",
            f"{fmt.bitrate_kbps}k",
        ]
        if fmt.channels:
            cmd.extend(["-ac", str(fmt.channels)])
        cmd.extend(["-f", fmt.container, "-progress", "pipe:1", "-nostats", str(job.output.path)])
        return cmd

    def convert(
        self,
        source: MediaHandle,
        target_format: TargetFormat,
        *,
        observer: ProgressObserver | None = log_progress,
        cancel_event: Event | None = None,
        on_job: Callable[[ConversionJob], None] | None = None,
    ) -> CanonicalAudio:
        """Convert ``source`` into ``target_format``, blocking until a terminal event.

        ``on_job`` receives the job as soon as its output path is reserved, so the
        caller can release that path even when conversion fails.

        Raises:
            ConversionError: On empty input, engine failure, timeout or cancellation.
        """
        job = ConversionJob(
            source=source,
            target_format=target_format,
            output=self.store.allocate("converted", target_format.suffix),
        )
        if on_job is not None:
            on_job(job)

        try:
            input_size = source.path.stat().st_size
        except OSError as exc:
            self._fail(job, f"Input file is unavailable: {exc}")
        if input_size == 0:
            self._fail(job, "Input file is empty")

        self._run(job, observer=observer, cancel_event=cancel_event)

        try:
            output_size = job.output.path.stat().st_size
        except OSError:
            output_size = 0
        if output_size == 0:
            self._fail(job, "Conversion produced no audio output")

        job.status = "succeeded"
        logger.info("Conversion finished: %s (%d bytes)", job.output.name, output_size)
        return CanonicalAudio(handle=job.output, format=target_format, size=output_size)

    def _run(
        self,
        job: ConversionJob,
        *,
        observer: ProgressObserver | None,
        cancel_event: Event | None,
    ) -> None:
        cmd = self.build_command(job)
        logger.info("FFmpeg command: %s", shlex.join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            self._fail(job, f"Could not start {self.binary}: {exc}")
        job.status = "running"

        stderr_tail: deque[str] = deque(maxlen=20)
        duration: list[float] = []
        stderr_reader = Thread(
            target=self._drain_stderr,
            args=(process.stderr, stderr_tail, duration),
            name="ffmpeg-stderr",
            daemon=True,
        )
        stderr_reader.start()

        finished = Event()
        stop_reason: list[str] = []
        watchdog = Thread(
            target=self._watch,
            args=(process, finished, cancel_event, stop_reason),
            name="ffmpeg-watchdog",
            daemon=True,
        )
        watchdog.start()

        try:
            self._consume_progress(job, process.stdout, duration, observer)
            returncode = process.wait()
        finally:
            finished.set()
            if process.poll() is None:
                process.kill()
                process.wait()
            watchdog.join()
            stderr_reader.join(timeout=5.0)

        if returncode == 0:
            return
        if stop_reason:
            if stop_reason[0] == "timeout":
                self._fail(job, f"Conversion timed out after {self.timeout_seconds:g} seconds")
            self._fail(job, "Conversion cancelled")
        diagnostics = "\n".join(stderr_tail).strip() or f"{self.binary} exited with status {returncode}"
        self._fail(job, diagnostics)

    def _consume_progress(
        self,
        job: ConversionJob,
        lines: Iterable[str],
        duration: list[float],
        observer: ProgressObserver | None,
    ) -> None:
        for raw in lines:
            key, _, value = raw.strip().partition("=")
            if key != "out_time_ms" or not duration or duration[0] <= 0:
                continue
            try:
                # ffmpeg reports out_time_ms in microseconds
                elapsed = int(value) / 1_000_000
            except ValueError:
                continue
            percent = min(100.0, elapsed / duration[0] * 100.0)
            if percent <= job.progress:
                continue
            job.progress = percent
            if observer is not None:
                try:
                    observer(job, percent)
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Progress observer failed for %s", job.source.name)

    @staticmethod
    def _drain_stderr(stream: Iterable[str], tail: deque[str], duration: list[float]) -> None:
        for raw in stream:
            line = raw.rstrip()
            if not line:
                continue
            tail.append(line)
            if not duration:
                parsed = parse_duration(line)
                if parsed is not None:
                    duration.append(parsed)

    def _watch(
        self,
        process: subprocess.Popen[str],
        finished: Event,
        cancel_event: Event | None,
        stop_reason: list[str],
    ) -> None:
        deadline = time.monotonic() + self.timeout_seconds
        while not finished.wait(self.watch_interval_seconds):
            if cancel_event is not None and cancel_event.is_set():
                stop_reason.append("cancelled")
            elif time.monotonic() >= deadline:
                stop_reason.append("timeout")
            else:
                continue
            logger.warning("Stopping ffmpeg (pid %s): %s", process.pid, stop_reason[0])
            process.kill()
            return

    @staticmethod
    def _fail(job: ConversionJob, message: str) -> NoReturn:
        job.status = "failed"
        job.error = message
        logger.error("FFmpeg error for %s: %s", job.source.name, message)
        raise ConversionError(message)
