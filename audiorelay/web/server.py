"""
Web Server Module for audiorelay.

This module provides the WebServer class that creates and manages the
FastAPI application, registers all routes, and runs uvicorn.

The WebServer integrates:
- Streaming endpoint for relayed audio
- Lookup endpoint for title -> video id
- Catalog search endpoint (Spotify)
- Health check
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from audiorelay import __version__
from audiorelay.web.routes.search import register_search_routes
from audiorelay.web.routes.streaming import register_streaming_routes

if TYPE_CHECKING:
    from audiorelay.config import Settings
    from audiorelay.core.catalog import CatalogClient

logger = logging.getLogger(__name__)


class WebServer:
    """
    FastAPI-based web server for audiorelay.

    Settings are fixed at construction and handed to every route module.
    """

    def __init__(
        self,
        settings: Settings,
        catalog_client: CatalogClient | None = None,
    ) -> None:
        """
        Initialize the WebServer.

        Args:
            settings: Application settings
            catalog_client: Optional CatalogClient (tests inject a mock transport)
        """
        self.settings = settings

        self.app = FastAPI(
            title="audiorelay",
            description="Relays extracted audio streams over HTTP",
            version=__version__,
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

        self._register_routes(catalog_client)

    def _register_routes(self, catalog_client: CatalogClient | None) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "audiorelay"}

        register_streaming_routes(self.app, self.settings)
        register_search_routes(self.app, self.settings, catalog_client)

    async def start(self) -> None:
        """Start serving in a background task."""
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Web server started on http://%s:%d", self.settings.host, self.settings.port)

    async def wait(self) -> None:
        """Wait until the server task exits."""
        if self._serve_task is not None:
            await self._serve_task

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for it."""
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
            self._serve_task = None
        self._server = None

        logger.info("Web server stopped")
