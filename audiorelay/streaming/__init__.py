"""
Streaming module for audiorelay.

Relays the stdout of an external extractor process to HTTP clients.

Components:
    ExtractorProcess / launch_extractor: Starts the extractor with piped stdout.
    StreamRelay: Pumps stdout into a bounded RelayChannel.
    RelayChannel: Ordered hand-off queue between the pump and the response body.
"""

from audiorelay.streaming.errors import (
    ChannelClosed,
    ExtractorExitError,
    RelayError,
    SpawnError,
    StreamTruncatedError,
)
from audiorelay.streaming.launcher import (
    ExtractorProcess,
    build_extract_command,
    launch_extractor,
    resolve_binary,
    youtube_url,
)
from audiorelay.streaming.relay import RelayChannel, RelayState, StreamChunk, StreamRelay

__all__ = [
    "ChannelClosed",
    "ExtractorExitError",
    "ExtractorProcess",
    "RelayChannel",
    "RelayError",
    "RelayState",
    "SpawnError",
    "StreamChunk",
    "StreamRelay",
    "StreamTruncatedError",
    "build_extract_command",
    "launch_extractor",
    "resolve_binary",
    "youtube_url",
]
