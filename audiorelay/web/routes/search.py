"""
Search Routes for audiorelay.

- /yt/search: resolve a title (and optional artist) to a YouTube video id
- /spotify/search: Spotify track search, normalized
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

from audiorelay.core.catalog import CatalogClient, CatalogError
from audiorelay.core.lookup import LookupFailedError, LookupUnavailableError, lookup_video_id

if TYPE_CHECKING:
    from audiorelay.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])

# References set during route registration
_settings: Settings | None = None
_catalog_client: CatalogClient | None = None


@dataclass
class CatalogSearchRequest:
    """Body of POST /spotify/search."""

    query: str


def register_search_routes(
    app,
    settings: Settings,
    catalog_client: CatalogClient | None = None,
) -> None:
    """
    Register search routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        settings: Lookup and catalog settings
        catalog_client: Optional preconfigured CatalogClient
    """
    global _settings, _catalog_client
    _settings = settings
    _catalog_client = catalog_client if catalog_client is not None else CatalogClient(settings.catalog)
    app.include_router(router)


@router.get("/yt/search")
async def youtube_search(title: str, artist: str | None = None) -> dict[str, str]:
    """Resolve a title/artist pair to a YouTube video id."""
    if _settings is None:
        raise HTTPException(status_code=503, detail="Search not initialized")

    try:
        video_id = await lookup_video_id(title, artist, _settings.lookup)
    except LookupFailedError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except LookupUnavailableError as e:
        raise HTTPException(status_code=500, detail="Search tool unavailable") from e

    return {"youtubeId": video_id}


@router.post("/spotify/search")
async def spotify_search(request: CatalogSearchRequest) -> list[dict[str, Any]]:
    """Search Spotify tracks; upstream failures map to 502."""
    if _catalog_client is None:
        raise HTTPException(status_code=503, detail="Search not initialized")

    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="query must not be empty")

    try:
        tracks = await _catalog_client.search(query)
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return [track.to_dict() for track in tracks]
