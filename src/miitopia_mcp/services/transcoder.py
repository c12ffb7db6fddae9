from __future__ import annotations

import logging
import shlex
import subprocess
import time
from contextlib import suppress
from threading import Thread
from typing import IO

import httpx

from miitopia_mcp.errors import InvalidFileType, TranscodeFailed, TransportFailure, UnsupportedFileType
from miitopia_mcp.types import Attachment, CompositionJob, JobResult, MediaKind

logger = logging.getLogger(__name__)

MEDIA_KINDS: dict[str, MediaKind] = {
    "image/png": "still",
    "image/jpeg": "still",
    "image/webp": "still",
    "image/bmp": "still",
    "image/gif": "animated",
    "video/webm": "video",
}


def media_kind(content_type: str | None) -> MediaKind:
    if not content_type:
        raise InvalidFileType()
    mime = content_type.split(";", 1)[0].strip().lower()
    kind = MEDIA_KINDS.get(mime)
    if kind is None:
        raise UnsupportedFileType(mime)
    return kind


def _feed(stream: IO[bytes], data: bytes) -> None:
    try:
        stream.write(data)
    except BrokenPipeError:
        # ffmpeg stopped reading; its exit status tells the rest
        logger.debug("ffmpeg closed stdin before reading %d bytes", len(data))
    finally:
        with suppress(BrokenPipeError):
            stream.close()


def _drain(stream: IO[bytes], sink: list[bytes]) -> None:
    sink.append(stream.read())
    stream.close()


class Transcoder:
    """Runs one ffmpeg process per composition job."""

    def __init__(
        self,
        binary: str = "ffmpeg",
        *,
        threads: int = 4,
        still_framerate: int = 24,
        output_format: str = "webm",
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.binary = binary
        self.threads = threads
        self.still_framerate = still_framerate
        self.output_format = output_format
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def build_command(self, job: CompositionJob, kind: MediaKind) -> list[str]:
        cmd = [
            self.binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-nostdin",
            "-ss",
            f"{job.start_offset_seconds:.3f}",
            "-t",
            f"{job.clip_duration_seconds:.3f}",
            "-i",
            job.audio_reference,
        ]

        if kind == "still":
            cmd += ["-f", "image2pipe", "-framerate", str(self.still_framerate)]
        elif kind == "animated":
            cmd += ["-f", "gif", "-stream_loop", "-1"]
        else:
            cmd += ["-f", "webm"]
        cmd += ["-i", "-"]

        cmd += [
            "-f",
            self.output_format,
            "-vf",
            "format=yuv420p",
            "-map",
            "0:a:0",
            "-map",
            "1:v:0",
            "-threads",
            str(self.threads),
        ]
        # A still image has no length of its own, so the audio decides it.
        if kind != "still":
            cmd.append("-shortest")
        cmd.append("-")
        return cmd

    def download(self, attachment: Attachment) -> bytes:
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport, follow_redirects=True) as client:
                response = client.get(attachment.url)
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportFailure(f"Failed to download {attachment.filename}: {exc}") from exc
        return response.content

    def run_job(self, job: CompositionJob) -> JobResult:
        started = time.monotonic()
        kind = media_kind(job.attachment.content_type)
        cmd = self.build_command(job, kind)
        source_bytes = self.download(job.attachment)

        logger.debug("%s", shlex.join(cmd))
        returncode, stdout, stderr = self._execute(cmd, source_bytes)

        if returncode != 0:
            raise TranscodeFailed(stderr.decode("utf-8", errors="replace").strip())

        diagnostic = stderr.decode("utf-8", errors="replace").strip() or None
        return JobResult(
            attachment=job.attachment,
            audio_reference=job.audio_reference,
            output_bytes=stdout,
            diagnostic_text=diagnostic,
            elapsed_seconds=time.monotonic() - started,
        )

    def _execute(self, cmd: list[str], source_bytes: bytes) -> tuple[int, bytes, bytes]:
        try:
            process = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as exc:
            raise TranscodeFailed(f"Failed to start {self.binary}: {exc}") from exc

        assert process.stdin is not None and process.stdout is not None and process.stderr is not None
        stderr_chunks: list[bytes] = []
        writer = Thread(target=_feed, args=(process.stdin, source_bytes), name="ffmpeg-stdin", daemon=True)
        stderr_reader = Thread(target=_drain, args=(process.stderr, stderr_chunks), name="ffmpeg-stderr", daemon=True)
        writer.start()
        stderr_reader.start()

        try:
            stdout = process.stdout.read()
        except OSError as exc:
            process.kill()
            raise TranscodeFailed(f"Failed to read {self.binary} output: {exc}") from exc
        finally:
            process.stdout.close()
            returncode = process.wait()
            writer.join()
            stderr_reader.join()

        return returncode, stdout, b"".join(stderr_chunks)
