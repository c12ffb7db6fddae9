from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from miitopia_mcp.audio_source import classify
from miitopia_mcp.services.library import TrackLibrary
from miitopia_mcp.services.storage import OutputStore, filename_from_url
from miitopia_mcp.types import Attachment
from miitopia_mcp.worker import Composer

logger = logging.getLogger(__name__)


def parse_attachments(items: list[dict[str, Any]]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for item in items:
        url = str(item.get("url") or "").strip()
        if not url:
            raise ValueError("Every attachment needs a url")
        size = item.get("size")
        attachments.append(
            Attachment(
                url=url,
                filename=str(item.get("filename") or filename_from_url(url)),
                content_type=item.get("content_type") or None,
                size=int(size) if size is not None else None,
            )
        )
    return attachments


class ToolRegistry:
    def __init__(
        self,
        composer: Composer,
        store: OutputStore,
        rescan: Callable[[], TrackLibrary],
        music_dir: Path | None = None,
    ) -> None:
        self.composer = composer
        self.store = store
        self.rescan = rescan
        self.music_dir = music_dir

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, idempotentHint=False))
        def compose(text: str, attachments: list[dict[str, Any]]) -> dict[str, Any]:
            """Compose every attachment of a message with an audio clip.

            Args:
                text: The message text. A Spotify track link or an https audio URL
                    selects that audio; anything else uses the local clip library.
                attachments: Items with "url", "filename", "content_type" and optional "size".

            Returns:
                Written output files in the order they finished, plus one error string per failure.
            """
            try:
                parsed = parse_attachments(attachments)
            except (TypeError, ValueError) as exc:
                return {"error": "invalid_attachments", "message": str(exc)}

            outcome = self.composer.handle_message(text, parsed)
            outputs: list[dict[str, object]] = []
            errors = [str(error) for error in outcome.failures]
            for result in outcome.successes:
                try:
                    outputs.append(self.store.save(result))
                except OSError as exc:
                    logger.error("Failed to write output for %s: %s", result.attachment.url, exc)
                    errors.append(f"Failed to save output for {result.attachment.filename}: {exc}")
            return {
                "source": classify(text).describe(),
                "outputs": outputs,
                "errors": errors,
            }

        @mcp.tool(annotations=_ro)
        def library_status() -> dict[str, Any]:
            library = self.composer.context.library.get()
            return {
                "tracks": len(library),
                "music_dir": str(self.music_dir) if self.music_dir is not None else None,
                "max_audio_length": self.composer.context.max_length,
                "spotify_configured": self.composer.context.spotify is not None,
            }

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, idempotentHint=True))
        def rescan_library() -> dict[str, Any]:
            library = self.rescan()
            return {"tracks": len(library)}
