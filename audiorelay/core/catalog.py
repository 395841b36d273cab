"""
Spotify catalog search.

Uses the client-credentials flow: one token request, then one search
request with the bearer token. Results are normalized to TrackRecord.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx

from audiorelay.config import CatalogSettings

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
SEARCH_URL = "https://api.spotify.com/v1/search"

REQUEST_TIMEOUT_SECONDS = 10.0


class CatalogError(Exception):
    """Credentials missing, token exchange failed, or search failed."""


@dataclass
class TrackRecord:
    """A normalized search result."""

    id: str
    name: str
    artists: list[str] = field(default_factory=list)
    artwork: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def normalize_track(item: object) -> TrackRecord:
    """
    Convert one Spotify track object to a TrackRecord.

    Missing or malformed fields become empty values instead of errors.
    """
    if not isinstance(item, dict):
        return TrackRecord(id="", name="")

    artists: list[str] = []
    raw_artists = item.get("artists")
    if isinstance(raw_artists, list):
        for artist in raw_artists:
            if isinstance(artist, dict):
                artists.append(_str(artist.get("name")))

    artwork = ""
    album = item.get("album")
    if isinstance(album, dict):
        images = album.get("images")
        if isinstance(images, list) and images and isinstance(images[0], dict):
            artwork = _str(images[0].get("url"))

    return TrackRecord(
        id=_str(item.get("id")),
        name=_str(item.get("name")),
        artists=artists,
        artwork=artwork,
    )


class CatalogClient:
    """
    Minimal Spotify Web API client.

    Args:
        settings: Credentials and result limit.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        settings: CatalogSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT_SECONDS)

    async def _fetch_token(self, client: httpx.AsyncClient) -> str:
        client_id = self.settings.client_id
        client_secret = self.settings.client_secret
        if not client_id or not client_secret:
            raise CatalogError("Spotify credentials are not configured")

        try:
            response = await client.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(client_id, client_secret),
            )
            response.raise_for_status()
            token = response.json().get("access_token")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Spotify token exchange failed: %s", e)
            raise CatalogError(f"Token exchange failed: {e}") from e

        if not isinstance(token, str) or not token:
            raise CatalogError("Token exchange returned no access_token")
        return token

    async def search(self, query: str) -> list[TrackRecord]:
        """
        Search tracks matching `query`.

        Raises:
            CatalogError: On missing credentials or any upstream failure.
        """
        if not self.settings.has_credentials:
            raise CatalogError("Spotify credentials are not configured")

        async with self._client() as client:
            token = await self._fetch_token(client)
            try:
                response = await client.get(
                    SEARCH_URL,
                    params={"q": query, "type": "track", "limit": self.settings.result_limit},
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Spotify search for %r failed: %s", query, e)
                raise CatalogError(f"Search failed: {e}") from e

        tracks = payload.get("tracks") if isinstance(payload, dict) else None
        items = tracks.get("items") if isinstance(tracks, dict) else None
        if not isinstance(items, list):
            items = []

        results = [normalize_track(item) for item in items]
        logger.info("Spotify search %r returned %d tracks", query, len(results))
        return results
