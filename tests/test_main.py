from pathlib import Path

from starlette.testclient import TestClient

from miitopia_mcp.config import Settings
from miitopia_mcp.main import AppRuntime, create_app
from miitopia_mcp.services.library import TrackLibrary


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        host="127.0.0.1",
        port=3000,
        mcp_path="/mcp",
        health_path="/healthz",
        log_level="INFO",
        data_dir=tmp_path,
        output_dir=tmp_path / "outputs",
        music_dir=tmp_path / "music",
        music_glob="*.ogg",
        max_audio_length=10.0,
        min_track_seconds=10.0,
        ffmpeg_binary="ffmpeg",
        http_timeout_seconds=5.0,
        spotify_id=None,
        spotify_secret=None,
        spotify_market="AU",
    )


def test_health_route_reports_library(tmp_path: Path) -> None:
    runtime = AppRuntime(_settings(tmp_path))
    runtime.library.swap(TrackLibrary({"/music/a.ogg": 20.0, "/music/b.ogg": 30.0}))
    app = create_app(runtime)

    client = TestClient(app.http_app(path="/mcp"))
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "tracks": 2,
        "spotify_configured": False,
        "mcp_path": "/mcp",
    }


def test_rescan_of_empty_directory_swaps_in_empty_library(tmp_path: Path) -> None:
    runtime = AppRuntime(_settings(tmp_path))
    runtime.library.swap(TrackLibrary({"/music/a.ogg": 20.0}))

    library = runtime.rescan_library()

    assert len(library) == 0
    assert runtime.library.get() is library
