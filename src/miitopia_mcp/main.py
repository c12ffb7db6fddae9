from __future__ import annotations

import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from miitopia_mcp.audio_source import ResolveContext
from miitopia_mcp.config import Settings, load_settings
from miitopia_mcp.mcp_tools import ToolRegistry
from miitopia_mcp.services.library import TrackLibrary, scan_library
from miitopia_mcp.services.spotify import SpotifyClient
from miitopia_mcp.services.storage import OutputStore
from miitopia_mcp.services.transcoder import Transcoder
from miitopia_mcp.state import Snapshot
from miitopia_mcp.worker import Composer

logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings, spotify: SpotifyClient | None = None) -> None:
        self.settings = settings
        self.library: Snapshot[TrackLibrary] = Snapshot(TrackLibrary())
        self.spotify = spotify
        self.store = OutputStore(settings.output_dir)
        self.transcoder = Transcoder(settings.ffmpeg_binary, timeout_seconds=settings.http_timeout_seconds)
        self.composer = Composer(
            context=ResolveContext(
                library=self.library,
                max_length=settings.max_audio_length,
                spotify=spotify,
                timeout_seconds=settings.http_timeout_seconds,
            ),
            transcoder=self.transcoder,
        )

    def rescan_library(self) -> TrackLibrary:
        logger.info("Scanning %s", self.settings.music_dir)
        library = scan_library(
            self.settings.music_dir,
            pattern=self.settings.music_glob,
            min_duration=self.settings.min_track_seconds,
        )
        self.library.swap(library)
        if len(library) > 0:
            logger.info("Found %d tracks", len(library))
        else:
            logger.error("No tracks found")
        return library


def _build_spotify(settings: Settings) -> SpotifyClient | None:
    if not settings.spotify_enabled:
        return None
    assert settings.spotify_id is not None and settings.spotify_secret is not None
    spotify = SpotifyClient(
        settings.spotify_id,
        settings.spotify_secret,
        market=settings.spotify_market,
        timeout_seconds=settings.http_timeout_seconds,
    )
    spotify.authenticate()
    return spotify


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="miitopia-mcp")

    tools = ToolRegistry(runtime.composer, runtime.store, runtime.rescan_library, music_dir=runtime.settings.music_dir)
    tools.register(mcp)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "tracks": len(runtime.library.get()),
                "spotify_configured": runtime.spotify is not None,
                "mcp_path": runtime.settings.mcp_path,
            }
        )

    return mcp


def cli() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")

    runtime = AppRuntime(settings, spotify=_build_spotify(settings))
    runtime.rescan_library()

    app = create_app(runtime)
    logger.info("Starting MCP server on %s:%s%s", settings.host, settings.port, settings.mcp_path)
    app.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        path=settings.mcp_path,
    )


if __name__ == "__main__":
    cli()
