from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    mcp_path: str
    health_path: str
    log_level: str
    data_dir: Path
    output_dir: Path
    music_dir: Path
    music_glob: str
    max_audio_length: float
    min_track_seconds: float
    ffmpeg_binary: str
    http_timeout_seconds: float
    spotify_id: str | None
    spotify_secret: str | None
    spotify_market: str

    @property
    def spotify_enabled(self) -> bool:
        return bool(self.spotify_id and self.spotify_secret)


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _as_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def load_settings() -> Settings:
    load_dotenv()
    data_dir = Path(os.getenv("DATA_DIR", "/data")).resolve()
    output_dir = Path(os.getenv("OUTPUT_DIR", str(data_dir / "outputs"))).resolve()

    max_audio_length = _as_float("MAX_AUDIO_LENGTH", 10.0)
    if max_audio_length <= 0:
        raise RuntimeError("MAX_AUDIO_LENGTH must be positive")

    spotify_id = os.getenv("SPOTIFY_ID", "").strip() or None
    spotify_secret = os.getenv("SPOTIFY_SECRET", "").strip() or None
    if spotify_id and not spotify_secret:
        raise RuntimeError("SPOTIFY_SECRET is required when SPOTIFY_ID is provided")

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        data_dir=data_dir,
        output_dir=output_dir,
        music_dir=Path(os.getenv("MUSIC_DIR", "./resources/music")).resolve(),
        music_glob=os.getenv("MUSIC_GLOB", "*.ogg"),
        max_audio_length=max_audio_length,
        min_track_seconds=_as_float("MIN_TRACK_SECONDS", max_audio_length),
        ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        http_timeout_seconds=_as_float("HTTP_TIMEOUT_SECONDS", 30.0),
        spotify_id=spotify_id,
        spotify_secret=spotify_secret,
        spotify_market=os.getenv("SPOTIFY_MARKET", "AU"),
    )
