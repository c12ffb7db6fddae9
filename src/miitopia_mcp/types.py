from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from miitopia_mcp.errors import ComposeError

MediaKind = Literal["still", "animated", "video"]


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    filename: str
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True, slots=True)
class ResolvedSegment:
    audio_reference: str
    start_offset_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class CompositionJob:
    attachment: Attachment
    audio_reference: str
    start_offset_seconds: float
    clip_duration_seconds: float


@dataclass(slots=True)
class JobResult:
    attachment: Attachment
    audio_reference: str
    output_bytes: bytes
    elapsed_seconds: float
    diagnostic_text: str | None = None


@dataclass(frozen=True, slots=True)
class AggregateOutcome:
    successes: tuple[JobResult, ...] = field(default_factory=tuple)
    failures: tuple[ComposeError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures
