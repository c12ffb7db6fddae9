from __future__ import annotations

import logging
import random
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from mutagen import File as MutagenFile
from mutagen import MutagenError

logger = logging.getLogger(__name__)


class TrackLibrary(Mapping[str, float]):
    """Ordered, read-only mapping of clip path to duration in seconds."""

    def __init__(self, tracks: Mapping[str, float] | None = None) -> None:
        self._tracks = MappingProxyType(dict(tracks or {}))
        self._keys = tuple(self._tracks)

    def __getitem__(self, key: str) -> float:
        return self._tracks[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def choice(self, rng: random.Random) -> tuple[str, float] | None:
        if not self._keys:
            return None
        path = self._keys[rng.randrange(len(self._keys))]
        return path, self._tracks[path]


def _read_duration(path: Path) -> float | None:
    try:
        audio_file = MutagenFile(str(path))
    except (MutagenError, OSError):
        return None
    info = getattr(audio_file, "info", None)
    if info is None:
        return None
    length = getattr(info, "length", None)
    try:
        seconds = float(length) if length is not None else None
    except (TypeError, ValueError):
        return None
    if seconds is None or seconds < 0:
        return None
    return seconds


def scan_library(directory: Path, pattern: str = "*.ogg", min_duration: float = 0.0) -> TrackLibrary:
    tracks: dict[str, float] = {}
    if not directory.is_dir():
        logger.warning("Music directory %s does not exist", directory)
        return TrackLibrary()

    for path in sorted(directory.glob(pattern)):
        if not path.is_file():
            continue
        seconds = _read_duration(path)
        if seconds is None:
            continue
        if seconds < min_duration:
            logger.info("Ignoring '%s'. Duration: %.2fs, Minimum: %.2fs.", path, seconds, min_duration)
            continue
        tracks.setdefault(str(path), seconds)

    return TrackLibrary(tracks)
