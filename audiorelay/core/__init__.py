"""
Core collaborators for audiorelay.

- lookup: free-text search resolving a title to a video id
- catalog: Spotify catalog search (client-credentials flow)
"""

from audiorelay.core.catalog import CatalogClient, CatalogError, TrackRecord
from audiorelay.core.lookup import LookupFailedError, LookupUnavailableError, lookup_video_id

__all__ = [
    "CatalogClient",
    "CatalogError",
    "LookupFailedError",
    "LookupUnavailableError",
    "TrackRecord",
    "lookup_video_id",
]
