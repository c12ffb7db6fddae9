from __future__ import annotations

import re
import uuid
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from miitopia_mcp.types import JobResult


def _sanitize_path_component(value: str, fallback: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip())
    clean = clean.strip("._")
    return clean or fallback


def filename_from_url(url: str, fallback: str = "attachment") -> str:
    name = PurePosixPath(urlparse(url).path).name
    return name or fallback


class OutputStore:
    """Writes composed files where the chat bridge picks them up."""

    def __init__(self, output_dir: Path, extension: str = "webm") -> None:
        self.output_dir = output_dir
        self.extension = extension
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def save(self, result: JobResult) -> dict[str, object]:
        stem = _sanitize_path_component(Path(result.attachment.filename).stem, "miitopia")
        path = self.output_dir / f"{stem}-{uuid.uuid4().hex[:8]}.{self.extension}"
        path.write_bytes(result.output_bytes)
        return {
            "source_url": result.attachment.url,
            "filename": path.name,
            "path": str(path),
            "size_bytes": len(result.output_bytes),
            "elapsed_seconds": round(result.elapsed_seconds, 3),
            "track": result.audio_reference,
            "diagnostic": result.diagnostic_text,
        }
