"""
Streaming Routes for audiorelay.

Provides /youtube/{video_id} (and the /stream/{video_id} alias), which
relays the extractor's mp3 output to the client as a chunked response.

Status codes are only meaningful until the first byte is sent:
- 400: malformed video id (nothing is spawned)
- 500: the extractor could not be started, or failed before any output
After that, a failure aborts the transfer and the client sees a truncated
body. The abort is a StreamTruncatedError raised from the body generator,
so uvicorn also logs "Exception in ASGI application" with a traceback for
each truncated stream, next to the warning logged here.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from audiorelay.streaming.errors import SpawnError, StreamTruncatedError
from audiorelay.streaming.launcher import launch_extractor, youtube_url
from audiorelay.streaming.relay import RelayChannel, StreamChunk, StreamRelay

if TYPE_CHECKING:
    from audiorelay.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

VIDEO_ID_LENGTH = 11
_VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Content-Type-Options": "nosniff",
}

# Settings reference, set during route registration
_settings: Settings | None = None


def register_streaming_routes(app, settings: Settings) -> None:
    """
    Register streaming routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        settings: Extractor and relay settings
    """
    global _settings
    _settings = settings
    app.include_router(router)


def is_valid_video_id(video_id: str) -> bool:
    """Cheap format check performed before anything is spawned."""
    return len(video_id) == VIDEO_ID_LENGTH and bool(_VIDEO_ID_PATTERN.match(video_id))


@router.get("/youtube/{video_id}")
@router.get("/stream/{video_id}")
async def stream_youtube(video_id: str) -> StreamingResponse:
    """
    Stream the audio track of a YouTube video as mp3.

    Args:
        video_id: 11-character YouTube video id.

    Returns:
        StreamingResponse with audio/mpeg data of unknown length.

    Raises:
        HTTPException: 400 for a malformed id, 500 if extraction fails
            before the first byte.
    """
    if _settings is None:
        raise HTTPException(status_code=503, detail="Streaming not initialized")

    if not is_valid_video_id(video_id):
        raise HTTPException(status_code=400, detail="Invalid YouTube video id")

    logger.info("Requested YouTube video %s", video_id)

    try:
        process = await launch_extractor(youtube_url(video_id), _settings.extractor)
    except SpawnError as e:
        raise HTTPException(status_code=500, detail="Failed to start audio extractor") from e

    relay = StreamRelay(
        process,
        RelayChannel(_settings.relay.queue_capacity),
        read_size=_settings.relay.read_size,
    )
    relay.start()

    # Hold back the headers until the extractor has produced something, so an
    # early failure can still be reported with a status code.
    try:
        first = await relay.channel.receive()
    except asyncio.CancelledError:
        relay.abandon()
        raise

    if first is not None and first.is_error:
        logger.warning("Extraction failed for %s before any output: %s", video_id, first.error)
        raise HTTPException(status_code=500, detail="Audio extraction failed")

    return StreamingResponse(
        _relay_body(video_id, relay, first),
        media_type="audio/mpeg",
        headers=STREAM_HEADERS,
    )


async def _relay_body(
    video_id: str,
    relay: StreamRelay,
    first: StreamChunk | None,
) -> AsyncIterator[bytes]:
    """Yield relayed chunks in order; abort the transfer on a relay error."""
    bytes_sent = 0
    try:
        if first is None:
            return
        yield first.data
        bytes_sent += len(first.data)

        async for chunk in relay.channel:
            if chunk.is_error:
                logger.warning(
                    "Stream for %s truncated after %d bytes: %s",
                    video_id,
                    bytes_sent,
                    chunk.error,
                )
                raise StreamTruncatedError(f"Extraction failed after {bytes_sent} bytes") from chunk.error
            yield chunk.data
            bytes_sent += len(chunk.data)

        logger.info("Stream for %s finished, %d bytes sent", video_id, bytes_sent)
    finally:
        if not relay.done:
            logger.info("Client left stream for %s after %d bytes", video_id, bytes_sent)
            relay.abandon()
