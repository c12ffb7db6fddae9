from __future__ import annotations


class ComposeError(RuntimeError):
    """Failure of a single attachment; rendered to the user as ``str(error)``."""

    default_message = "Composition failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoTracksAvailable(ComposeError):
    default_message = "No tracks available in the music library"


class UnsupportedAudioType(ComposeError):
    def __init__(self, declared_type: str) -> None:
        self.declared_type = declared_type
        super().__init__(f"Audio type not supported: {declared_type}")


class PreviewUnavailable(ComposeError):
    default_message = "Spotify preview not found or not available"


class InvalidFileType(ComposeError):
    default_message = "Invalid file type"


class UnsupportedFileType(ComposeError):
    def __init__(self, declared_type: str) -> None:
        self.declared_type = declared_type
        super().__init__(f"File type not supported: {declared_type}")


class TranscodeFailed(ComposeError):
    def __init__(self, diagnostic: str) -> None:
        self.diagnostic = diagnostic
        super().__init__(f"ffmpeg error: {diagnostic}" if diagnostic else "ffmpeg error")


class TransportFailure(ComposeError):
    default_message = "Network error"


class SpotifyError(RuntimeError):
    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(f"Spotify API error {status}: {message}" if status is not None else message)
