from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

import httpx

from miitopia_mcp.errors import NoTracksAvailable, PreviewUnavailable, TransportFailure, UnsupportedAudioType
from miitopia_mcp.services.library import TrackLibrary
from miitopia_mcp.services.spotify import SpotifyClient
from miitopia_mcp.state import Snapshot
from miitopia_mcp.types import ResolvedSegment

logger = logging.getLogger(__name__)

SUPPORTED_AUDIO_TYPES = frozenset({"audio/mpeg", "audio/ogg", "audio/vorbis"})


@dataclass(frozen=True, slots=True)
class Library:
    kind: Literal["library"] = "library"

    def describe(self) -> str:
        return "Library"


@dataclass(frozen=True, slots=True)
class RemoteUrl:
    url: str
    kind: Literal["url"] = "url"

    def describe(self) -> str:
        return f"Url:{self.url}"


@dataclass(frozen=True, slots=True)
class StreamingPreview:
    track_id: str
    kind: Literal["spotify"] = "spotify"

    def describe(self) -> str:
        return f"Spotify track:{self.track_id}"


AudioSource = Library | RemoteUrl | StreamingPreview

# Evaluated in order; the first rule whose pattern matches decides the source.
CLASSIFICATION_RULES: tuple[tuple[re.Pattern[str], Callable[[re.Match[str]], AudioSource]], ...] = (
    (re.compile(r"https://open\.spotify\.com/track/([a-zA-Z0-9]*)"), lambda m: StreamingPreview(m.group(1))),
    (re.compile(r"https://[^\s]*"), lambda m: RemoteUrl(m.group(0))),
)


def classify(text: str) -> AudioSource:
    for pattern, build in CLASSIFICATION_RULES:
        match = pattern.search(text)
        if match is not None:
            return build(match)
    return Library()


@dataclass(slots=True)
class ResolveContext:
    library: Snapshot[TrackLibrary]
    max_length: float
    spotify: SpotifyClient | None = None
    timeout_seconds: float = 30.0
    transport: httpx.BaseTransport | None = None


def resolve_track(source: AudioSource, rng: random.Random, ctx: ResolveContext) -> ResolvedSegment:
    if isinstance(source, Library):
        return _resolve_library(rng, ctx)
    if isinstance(source, RemoteUrl):
        return ResolvedSegment(audio_reference=_check_remote_audio(source.url, ctx))
    if isinstance(source, StreamingPreview):
        if ctx.spotify is None:
            raise PreviewUnavailable("Spotify is not configured")
        return ResolvedSegment(audio_reference=ctx.spotify.fetch_preview_url(source.track_id))
    raise TypeError(f"Unknown audio source: {source!r}")


def _resolve_library(rng: random.Random, ctx: ResolveContext) -> ResolvedSegment:
    picked = ctx.library.get().choice(rng)
    if picked is None:
        raise NoTracksAvailable()

    path, duration = picked
    start_max = duration - min(duration, ctx.max_length)
    start = 0.0
    if start_max > 0:
        start = rng.random() * start_max
    logger.debug("Using %s starting at %.3f seconds", path, start)
    return ResolvedSegment(audio_reference=path, start_offset_seconds=start)


def _check_remote_audio(url: str, ctx: ResolveContext) -> str:
    logger.debug('Requesting "%s" to get mimetype', url)
    try:
        with httpx.Client(timeout=ctx.timeout_seconds, transport=ctx.transport, follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                declared = response.headers.get("content-type")
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise TransportFailure(f"Failed to fetch {url}: {exc}") from exc

    if not declared:
        raise UnsupportedAudioType("Unknown")
    mime = declared.split(";", 1)[0].strip().lower()
    if mime not in SUPPORTED_AUDIO_TYPES:
        raise UnsupportedAudioType(mime)
    return url
