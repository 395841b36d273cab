"""
Shared fixtures.

The extractor is replaced by `python -c <script>` so tests exercise real
subprocesses and pipes without needing yt-dlp or network access.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable

import pytest

from audiorelay.config import ExtractorSettings, LookupSettings


@pytest.fixture
def python_extractor() -> Callable[..., ExtractorSettings]:
    """Build ExtractorSettings that run a Python snippet instead of yt-dlp."""

    def factory(script: str, capture_stderr: bool = True) -> ExtractorSettings:
        return ExtractorSettings(
            binary=sys.executable,
            args=("-c", script),
            capture_stderr=capture_stderr,
        )

    return factory


@pytest.fixture
def python_lookup() -> Callable[[str], LookupSettings]:
    """Build LookupSettings that run a Python snippet instead of yt-dlp."""

    def factory(script: str) -> LookupSettings:
        return LookupSettings(binary=sys.executable, args=("-c", script))

    return factory


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    """Poll `predicate` until it is true or fail after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def until() -> Callable[..., object]:
    """Expose wait_until to tests."""
    return wait_until
