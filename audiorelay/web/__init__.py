"""
audiorelay Web Layer.

Components:
- WebServer: FastAPI application with all routes
- routes: streaming and search endpoints
"""

from audiorelay.web.server import WebServer

__all__ = ["WebServer"]
