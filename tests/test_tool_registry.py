import random
from pathlib import Path
from typing import Any

from miitopia_mcp.audio_source import ResolveContext
from miitopia_mcp.mcp_tools import ToolRegistry, parse_attachments
from miitopia_mcp.services.library import TrackLibrary
from miitopia_mcp.services.storage import OutputStore
from miitopia_mcp.state import Snapshot
from miitopia_mcp.types import CompositionJob, JobResult
from miitopia_mcp.worker import Composer


class DummyMCP:
    def __init__(self) -> None:
        self.tools: dict[str, Any] = {}

    def tool(self, fn: Any = None, **_: Any) -> Any:
        def decorator(func: Any) -> Any:
            self.tools[func.__name__] = func
            return func

        return decorator(fn) if fn is not None else decorator


class FakeTranscoder:
    def run_job(self, job: CompositionJob) -> JobResult:
        return JobResult(
            attachment=job.attachment,
            audio_reference=job.audio_reference,
            output_bytes=b"webm-bytes",
            elapsed_seconds=0.25,
        )


def _registry(
    tmp_path: Path, tracks: dict[str, float], store: OutputStore | None = None
) -> tuple[DummyMCP, Snapshot[TrackLibrary]]:
    library: Snapshot[TrackLibrary] = Snapshot(TrackLibrary(tracks))
    composer = Composer(
        context=ResolveContext(library=library, max_length=10.0),
        transcoder=FakeTranscoder(),  # type: ignore[arg-type]
        rng_factory=lambda: random.Random(3),
    )

    def rescan() -> TrackLibrary:
        fresh = TrackLibrary({"/music/a.ogg": 20.0, "/music/b.ogg": 15.0})
        library.swap(fresh)
        return fresh

    mcp = DummyMCP()
    ToolRegistry(
        composer, store or OutputStore(tmp_path / "out"), rescan, music_dir=tmp_path / "music"
    ).register(mcp)  # type: ignore[arg-type]
    return mcp, library


def test_compose_writes_outputs(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path, {"/music/a.ogg": 20.0})

    response = mcp.tools["compose"](
        "<@bot> miitopia",
        [
            {"url": "https://cdn.example.com/cat.png", "filename": "cat.png", "content_type": "image/png"},
        ],
    )

    assert response["source"] == "Library"
    assert response["errors"] == []
    (output,) = response["outputs"]
    assert output["filename"].startswith("cat-")
    assert output["filename"].endswith(".webm")
    assert Path(output["path"]).read_bytes() == b"webm-bytes"
    assert output["track"] == "/music/a.ogg"


def test_compose_reports_errors_as_text(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path, {})
    response = mcp.tools["compose"]("hi", [{"url": "https://cdn.example.com/cat.png", "content_type": "image/png"}])
    assert response["outputs"] == []
    assert response["errors"] == ["No tracks available in the music library"]


def test_compose_rejects_attachment_without_url(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path, {"/music/a.ogg": 20.0})
    response = mcp.tools["compose"]("hi", [{"filename": "cat.png"}])
    assert response["error"] == "invalid_attachments"


def test_rescan_swaps_library(tmp_path: Path) -> None:
    mcp, library = _registry(tmp_path, {})
    assert mcp.tools["library_status"]()["tracks"] == 0
    assert mcp.tools["rescan_library"]() == {"tracks": 2}
    assert len(library.get()) == 2
    assert mcp.tools["library_status"]()["tracks"] == 2


def test_parse_attachments_defaults_filename() -> None:
    (attachment,) = parse_attachments([{"url": "https://cdn.example.com/x/dog.gif?ex=1", "size": "10"}])
    assert attachment.filename == "dog.gif"
    assert attachment.content_type is None
    assert attachment.size == 10


class FailingStore(OutputStore):
    def save(self, result: JobResult) -> dict[str, object]:
        if result.attachment.filename == "full.png":
            raise OSError(28, "No space left on device")
        return super().save(result)


def test_compose_keeps_going_when_one_output_cannot_be_written(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path, {"/music/a.ogg": 20.0}, store=FailingStore(tmp_path / "out"))

    response = mcp.tools["compose"](
        "miitopia",
        [
            {"url": "https://cdn.example.com/full.png", "filename": "full.png", "content_type": "image/png"},
            {"url": "https://cdn.example.com/ok.png", "filename": "ok.png", "content_type": "image/png"},
        ],
    )

    assert [Path(output["path"]).read_bytes() for output in response["outputs"]] == [b"webm-bytes"]
    assert response["outputs"][0]["filename"].startswith("ok-")
    (error,) = response["errors"]
    assert "full.png" in error
    assert "No space left on device" in error


def test_library_status_reports_directory(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path, {"/music/a.ogg": 20.0})
    status = mcp.tools["library_status"]()
    assert status == {
        "tracks": 1,
        "music_dir": str(tmp_path / "music"),
        "max_audio_length": 10.0,
        "spotify_configured": False,
    }
