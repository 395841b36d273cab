"""
audiorelay - Main Server Module

This module contains the AudioRelayServer class that wires settings into the
web server and manages the application lifecycle.
"""

import asyncio
import logging
import signal

from audiorelay.config import Settings
from audiorelay.streaming.launcher import resolve_binary
from audiorelay.web.server import WebServer

logger = logging.getLogger(__name__)


class AudioRelayServer:
    """
    Main audiorelay server.

    Owns the WebServer and handles startup diagnostics and signal-driven
    shutdown.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.web_server = WebServer(settings)
        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    def _check_binaries(self) -> None:
        """Warn about missing external tools; requests will fail with 500."""
        for binary in {self.settings.extractor.binary, self.settings.lookup.binary}:
            path = resolve_binary(binary)
            if path is None:
                logger.warning("%s not found on PATH; streaming and lookup will fail", binary)
            else:
                logger.info("Using %s", path)

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting audiorelay on %s:%d", self.settings.host, self.settings.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        self._check_binaries()
        await self.web_server.start()

        logger.info("Try accessing: http://localhost:%d/youtube/dQw4w9WgXcQ", self.settings.port)

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping audiorelay...")
        self._running = False
        await self.web_server.stop()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        Returns on SIGINT/SIGTERM or when uvicorn exits on its own.
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        assert self._shutdown_event is not None
        shutdown = asyncio.create_task(self._shutdown_event.wait())
        serving = asyncio.create_task(self.web_server.wait())
        await asyncio.wait({shutdown, serving}, return_when=asyncio.FIRST_COMPLETED)
        shutdown.cancel()

        await self.stop()
