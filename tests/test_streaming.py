"""
Tests for the streaming routes.

Tests cover:
- Identifier validation before anything is spawned
- Byte-exact relay of extractor output
- Response headers (audio/mpeg, no-cache, no Content-Length)
- 500 when the extractor cannot start or fails before any output
- Truncated body when the extractor fails mid-stream
- Client disconnect abandons the relay
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from audiorelay.config import ExtractorSettings, RelaySettings, Settings
from audiorelay.streaming.errors import ExtractorExitError, StreamTruncatedError
from audiorelay.streaming.launcher import launch_extractor
from audiorelay.streaming.relay import RelayChannel, RelayState, StreamRelay
from audiorelay.web.routes.streaming import _relay_body, is_valid_video_id
from audiorelay.web.server import WebServer

VIDEO_ID = "dQw4w9WgXcQ"

CHUNKED_OUTPUT = """
import sys
out = sys.stdout.buffer
for i in range(40):
    out.write(bytes([i]) * 3000)
    out.flush()
"""
CHUNKED_EXPECTED = b"".join(bytes([i]) * 3000 for i in range(40))

FAIL_BEFORE_OUTPUT = """
import sys
sys.stderr.write("ERROR: [youtube] Video unavailable")
sys.exit(1)
"""

FAIL_AFTER_OUTPUT = """
import sys
sys.stdout.buffer.write(b"ID3" + b"\\x00" * 19997)
sys.stdout.flush()
sys.exit(2)
"""

EMPTY_OUTPUT = "pass"

SLOW_OUTPUT = """
import sys, time
sys.stdout.buffer.write(b"frame")
sys.stdout.flush()
time.sleep(60)
"""


def make_client(extractor: ExtractorSettings, *, raise_app_exceptions: bool = True) -> AsyncClient:
    settings = Settings(extractor=extractor, relay=RelaySettings(queue_capacity=32, read_size=8192))
    server = WebServer(settings)
    transport = ASGITransport(app=server.app, raise_app_exceptions=raise_app_exceptions)
    return AsyncClient(transport=transport, base_url="http://test")


# =============================================================================
# Validation
# =============================================================================


class TestVideoIdValidation:
    """Tests for is_valid_video_id()."""

    def test_valid_id(self) -> None:
        assert is_valid_video_id("dQw4w9WgXcQ") is True
        assert is_valid_video_id("a-b_c-d_e-f") is True

    @pytest.mark.parametrize("video_id", ["", "short", "dQw4w9WgXcQX", "x" * 40])
    def test_wrong_length(self, video_id: str) -> None:
        assert is_valid_video_id(video_id) is False

    def test_illegal_characters(self) -> None:
        assert is_valid_video_id("dQw4w9W;XcQ") is False


class TestStreamValidation:
    """Malformed identifiers are rejected before spawning."""

    @pytest.mark.parametrize("video_id", ["short", "dQw4w9WgXcQX", "0123456789abcdef"])
    async def test_wrong_length_returns_400_without_spawn(self, video_id: str) -> None:
        """No process is started for a malformed id."""
        with patch(
            "audiorelay.web.routes.streaming.launch_extractor",
            new=AsyncMock(),
        ) as launcher:
            async with make_client(ExtractorSettings()) as client:
                response = await client.get(f"/youtube/{video_id}")

        assert response.status_code == 400
        launcher.assert_not_called()


# =============================================================================
# Streaming
# =============================================================================


class TestStreamYoutube:
    """Tests for /youtube/{id} and /stream/{id}."""

    async def test_relays_output_exactly(self, python_extractor) -> None:
        """The body equals the extractor output byte for byte."""
        async with make_client(python_extractor(CHUNKED_OUTPUT)) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == CHUNKED_EXPECTED

    async def test_stream_alias(self, python_extractor) -> None:
        """/stream/{id} behaves like /youtube/{id}."""
        async with make_client(python_extractor(CHUNKED_OUTPUT)) as client:
            response = await client.get(f"/stream/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == CHUNKED_EXPECTED

    async def test_headers(self, python_extractor) -> None:
        """Audio content type, no caching, no fixed length."""
        async with make_client(python_extractor(CHUNKED_OUTPUT)) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["cache-control"] == "no-cache"
        assert "content-length" not in response.headers

    async def test_target_url_passed_to_extractor(self, python_extractor) -> None:
        """The extractor receives the YouTube watch URL."""
        script = "import sys; sys.stdout.write(sys.argv[-1])"
        async with make_client(python_extractor(script)) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.text == f"https://www.youtube.com/watch?v={VIDEO_ID}"

    async def test_empty_output_is_empty_body(self, python_extractor) -> None:
        """A clean exit without output yields an empty 200 response."""
        async with make_client(python_extractor(EMPTY_OUTPUT)) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == b""


# =============================================================================
# Failures
# =============================================================================


class TestStreamFailures:
    """Error handling before and after the first byte."""

    async def test_spawn_failure_returns_500(self) -> None:
        """A missing extractor binary is a server error."""
        extractor = ExtractorSettings(binary="/nonexistent/audiorelay-yt-dlp")
        async with make_client(extractor) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to start audio extractor"

    async def test_failure_before_output_returns_500(self, python_extractor) -> None:
        """Non-zero exit with no bytes sent is a server error."""
        async with make_client(python_extractor(FAIL_BEFORE_OUTPUT)) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.status_code == 500
        assert response.json()["detail"] == "Audio extraction failed"

    async def test_failure_after_output_truncates(self, python_extractor) -> None:
        """Bytes emitted before the failure are delivered, then the body stops."""
        extractor = python_extractor(FAIL_AFTER_OUTPUT)
        async with make_client(extractor, raise_app_exceptions=False) as client:
            response = await client.get(f"/youtube/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == b"ID3" + b"\x00" * 19997


# =============================================================================
# Client disconnect
# =============================================================================


class TestClientDisconnect:
    """Closing the response body abandons the relay."""

    async def test_closing_body_abandons_relay(self, python_extractor) -> None:
        """aclose() on the body generator stops the pump and the extractor."""
        process = await launch_extractor("target", python_extractor(SLOW_OUTPUT))
        relay = StreamRelay(process, RelayChannel(32))
        relay.start()
        first = await relay.channel.receive()

        body = _relay_body(VIDEO_ID, relay, first)
        assert await body.__anext__() == b"frame"
        await body.aclose()

        assert await relay.wait() is RelayState.ABANDONED
        assert relay.channel.receiver_closed is True

        returncode = await asyncio.wait_for(process.wait(), timeout=10.0)
        assert returncode != 0


class TestTruncation:
    """A late failure surfaces as StreamTruncatedError from the body."""

    async def test_body_raises_after_partial_output(self, python_extractor) -> None:
        process = await launch_extractor("target", python_extractor(FAIL_AFTER_OUTPUT))
        relay = StreamRelay(process, RelayChannel(32))
        relay.start()
        first = await relay.channel.receive()

        received = b""
        with pytest.raises(StreamTruncatedError) as exc_info:
            async for data in _relay_body(VIDEO_ID, relay, first):
                received += data

        assert received == b"ID3" + b"\x00" * 19997
        assert isinstance(exc_info.value.__cause__, ExtractorExitError)
        assert relay.state is RelayState.FAILED
