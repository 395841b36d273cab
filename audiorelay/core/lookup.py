"""
Free-text lookup of a YouTube video id.

Runs a single-result search through the extractor tool and returns the
first line it prints.
"""

from __future__ import annotations

import asyncio
import logging

from audiorelay.config import LookupSettings

logger = logging.getLogger(__name__)


class LookupFailedError(Exception):
    """The search produced no usable identifier."""


class LookupUnavailableError(Exception):
    """The search tool could not be started."""


def build_search_query(title: str, artist: str | None = None) -> str:
    """Join title and optional artist into one search string."""
    parts = [title.strip()]
    if artist and artist.strip():
        parts.append(artist.strip())
    return " ".join(parts)


def build_lookup_command(query: str, settings: LookupSettings) -> list[str]:
    return [settings.binary, *settings.args, f"{settings.search_prefix}{query}"]


async def lookup_video_id(title: str, artist: str | None, settings: LookupSettings) -> str:
    """
    Resolve a title (and optional artist) to a video id.

    Args:
        title: Track title. Must not be blank.
        artist: Optional artist name.
        settings: Search tool invocation.

    Returns:
        The identifier printed by the search tool.

    Raises:
        LookupFailedError: Blank title, non-zero exit or empty output.
        LookupUnavailableError: The tool could not be started.
    """
    if not title or not title.strip():
        raise LookupFailedError("title must not be empty")

    query = build_search_query(title, artist)
    command = build_lookup_command(query, settings)
    logger.debug("Lookup: %s", " ".join(command))

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Failed to start lookup tool %s: %s", command[0], e)
        raise LookupUnavailableError(f"Failed to start {command[0]!r}: {e}") from e

    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        logger.warning(
            "Lookup for %r exited with code %d: %s",
            query,
            process.returncode,
            stderr.decode(errors="ignore").strip()[:500] or "no stderr",
        )
        raise LookupFailedError(f"No result for {query!r}")

    for line in stdout.decode(errors="ignore").splitlines():
        video_id = line.strip()
        if video_id:
            logger.info("Lookup %r -> %s", query, video_id)
            return video_id

    raise LookupFailedError(f"No result for {query!r}")
