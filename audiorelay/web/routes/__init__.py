"""
Web Routes Package.

This package contains FastAPI route modules:
- streaming: Audio relay (/youtube/{id}, /stream/{id})
- search: Lookup and catalog search (/yt/search, /spotify/search)
"""

from audiorelay.web.routes.search import register_search_routes
from audiorelay.web.routes.streaming import register_streaming_routes

__all__ = [
    "register_search_routes",
    "register_streaming_routes",
]
