from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from miitopia_mcp.audio_source import AudioSource, Library, ResolveContext, classify, resolve_track
from miitopia_mcp.errors import ComposeError, NoTracksAvailable, TranscodeFailed
from miitopia_mcp.services.transcoder import Transcoder
from miitopia_mcp.types import AggregateOutcome, Attachment, CompositionJob, JobResult

logger = logging.getLogger(__name__)


def _human_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "kB", "MB"):
        if value < 1000:
            return f"{value:.1f}{unit}"
        value /= 1000
    return f"{value:.1f}GB"


class Composer:
    """Fans composition jobs out across threads and collects them in finish order."""

    def __init__(
        self,
        *,
        context: ResolveContext,
        transcoder: Transcoder,
        rng_factory: Callable[[], random.Random] = random.Random,
    ) -> None:
        self.context = context
        self.transcoder = transcoder
        self.rng_factory = rng_factory

    def handle_message(self, text: str, attachments: Sequence[Attachment]) -> AggregateOutcome:
        source = classify(text)
        logger.debug("Using %s audio source", source.describe())
        return self.process_attachments(source, attachments, rng=self.rng_factory())

    def process_attachments(
        self,
        source: AudioSource,
        attachments: Sequence[Attachment],
        rng: random.Random | None = None,
    ) -> AggregateOutcome:
        # An empty library fails every attachment the same way, so report it once.
        if isinstance(source, Library) and len(self.context.library.get()) == 0:
            logger.error("Failed to get track: no tracks available")
            return AggregateOutcome(failures=(NoTracksAvailable(),))
        if not attachments:
            return AggregateOutcome()

        rng = rng or self.rng_factory()
        successes: list[JobResult] = []
        failures: list[ComposeError] = []

        with ThreadPoolExecutor(max_workers=len(attachments), thread_name_prefix="compose") as pool:
            pending: dict[Future[JobResult], Attachment] = {
                pool.submit(self._compose, source, attachment, rng): attachment for attachment in attachments
            }
            for future in as_completed(pending):
                attachment = pending.pop(future)
                try:
                    job = future.result()
                except ComposeError as exc:
                    logger.error("Error processing %s: %s", attachment.url, exc)
                    failures.append(exc)
                    continue
                logger.info(
                    "Processed %s\n\tSize: %s\n\tTime: %.2fs\n\tTrack: %s\n\tffmpeg stderr: %s",
                    attachment.url,
                    _human_bytes(len(job.output_bytes)),
                    job.elapsed_seconds,
                    job.audio_reference,
                    job.diagnostic_text or "empty",
                )
                successes.append(job)

        return AggregateOutcome(successes=tuple(successes), failures=tuple(failures))

    def _prepare_job(self, source: AudioSource, attachment: Attachment, rng: random.Random) -> CompositionJob:
        try:
            segment = resolve_track(source, rng, self.context)
        except ComposeError as exc:
            logger.error("Failed to get track for %s: %s", attachment.url, exc)
            raise
        return CompositionJob(
            attachment=attachment,
            audio_reference=segment.audio_reference,
            start_offset_seconds=segment.start_offset_seconds,
            clip_duration_seconds=self.context.max_length,
        )

    def _compose(self, source: AudioSource, attachment: Attachment, rng: random.Random) -> JobResult:
        try:
            return self.transcoder.run_job(self._prepare_job(source, attachment, rng))
        except ComposeError:
            raise
        except OSError as exc:
            raise TranscodeFailed(str(exc)) from exc
        except Exception as exc:  # pylint: disable=broad-except
            message = str(exc).strip() or "Unknown composition error"
            logger.exception("Job for %s failed: %s", attachment.url, message)
            raise ComposeError(message) from exc
