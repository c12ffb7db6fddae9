from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from miitopia_mcp.errors import PreviewUnavailable, SpotifyError, TransportFailure
from miitopia_mcp.state import Snapshot

logger = logging.getLogger(__name__)


class SpotifyClient:
    """Client-credentials Spotify access, limited to track preview lookups."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        market: str = "AU",
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.market = market
        self.timeout_seconds = timeout_seconds
        self.token_url = "https://accounts.spotify.com/api/token"
        self.base_url = "https://api.spotify.com/v1"
        self._transport = transport
        self._token: Snapshot[str | None] = Snapshot(None)

    @property
    def has_token(self) -> bool:
        return self._token.get() is not None

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, transport=self._transport)

    def authenticate(self) -> None:
        credentials = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        headers = {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}
        logger.debug("Requesting token from %s", self.token_url)
        try:
            with self._client() as client:
                response = client.post(self.token_url, headers=headers, data={"grant_type": "client_credentials"})
        except httpx.HTTPError as exc:
            raise SpotifyError(f"Token request failed: {exc}") from exc

        if response.status_code != 200:
            raise self._error_from(response)

        token = self._parse_token(response.json())
        if token is None:
            raise SpotifyError("Invalid token")
        self._token.swap(token)

    def fetch_preview_url(self, track_id: str) -> str:
        token = self._token.get()
        if token is None:
            raise PreviewUnavailable("Spotify is not authenticated")

        url = f"{self.base_url}/tracks/{track_id}"
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            with self._client() as client:
                response = client.get(url, headers=headers, params={"market": self.market})
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Spotify request failed: {exc}") from exc

        if response.status_code in (400, 404):
            raise PreviewUnavailable()
        if response.status_code >= 400:
            raise TransportFailure(str(self._error_from(response)))

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportFailure("Spotify returned invalid JSON") from exc

        preview_url = payload.get("preview_url") if isinstance(payload, dict) else None
        if not isinstance(preview_url, str) or not preview_url:
            logger.warning("Preview URL for track %s is missing or not a string", track_id)
            raise PreviewUnavailable()
        logger.debug("Got preview_url from spotify: %s", preview_url)
        return preview_url

    @staticmethod
    def _parse_token(payload: Any) -> str | None:
        if not isinstance(payload, dict):
            return None
        token_type = payload.get("token_type")
        if token_type != "Bearer":
            logger.warning('Token type is "%s" not "Bearer", token invalid', token_type)
            return None
        access_token = payload.get("access_token")
        return str(access_token) if isinstance(access_token, str) and access_token else None

    @staticmethod
    def _error_from(response: httpx.Response) -> SpotifyError:
        status = response.status_code
        try:
            payload = response.json()
        except ValueError:
            return SpotifyError(response.text[:400] or "Unknown error", status)

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, str):
            description = payload.get("error_description")
            return SpotifyError(f"{error}: {description}" if description else error, status)
        if isinstance(error, dict):
            return SpotifyError(str(error.get("message") or "Unknown error"), status)
        return SpotifyError("Unknown error", status)
