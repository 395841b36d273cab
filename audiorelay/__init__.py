"""
audiorelay - stream the audio of online videos over HTTP.

An HTTP service that runs an external extractor (yt-dlp) per request and
relays its stdout to the client as a chunked mp3 stream, plus small lookup
and catalog search endpoints.
"""

__version__ = "0.1.0"

from audiorelay.server import AudioRelayServer

__all__ = ["AudioRelayServer", "__version__"]
