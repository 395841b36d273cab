"""
Extractor process launcher.

Builds the yt-dlp command line for a target URL and starts it with its
stdout attached to a pipe. The launcher only establishes the pipeline;
reading is done by the relay.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from audiorelay.config import ExtractorSettings
from audiorelay.streaming.errors import SpawnError

logger = logging.getLogger(__name__)

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# How long to wait for a graceful termination before SIGKILL
TERMINATE_TIMEOUT_SECONDS = 2.0

# How long to wait for SIGKILL to take effect
KILL_TIMEOUT_SECONDS = 1.0

# Amount of extractor stderr kept for error reports
STDERR_TAIL_BYTES = 4096


def youtube_url(video_id: str) -> str:
    """Return the watch URL for a YouTube video id."""
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


def resolve_binary(name: str) -> Path | None:
    """
    Resolve a binary name to its full path via the system PATH.

    Args:
        name: Binary name (e.g., "yt-dlp") or an explicit path.

    Returns:
        Path to the binary, or None if not found.
    """
    found = shutil.which(name)
    return Path(found) if found else None


def build_extract_command(target: str, settings: ExtractorSettings) -> list[str]:
    """Return the argv for extracting `target` to stdout."""
    return [settings.binary, *settings.args, target]


@dataclass
class ExtractorProcess:
    """
    A running extractor process and the pipes it owns.

    Owned by exactly one StreamRelay for its whole lifetime.
    """

    process: asyncio.subprocess.Process
    command: list[str] = field(default_factory=list)
    _stderr_tail: bytearray = field(default_factory=bytearray, init=False, repr=False)
    _stderr_task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def start_stderr_drain(self) -> None:
        """
        Keep stderr flowing so the process never blocks on a full pipe.

        Only the last STDERR_TAIL_BYTES are retained for diagnostics.
        """
        if self.process.stderr is None or self._stderr_task is not None:
            return
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def _drain_stderr(self) -> None:
        stream = self.process.stderr
        assert stream is not None
        with contextlib.suppress(OSError, ValueError):
            while True:
                data = await stream.read(1024)
                if not data:
                    break
                self._stderr_tail += data
                del self._stderr_tail[:-STDERR_TAIL_BYTES]

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        if self.process.stdout is None:
            raise RuntimeError("Extractor stdout is not piped")
        return self.process.stdout

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self.process.wait()

    async def stderr_text(self) -> str:
        """
        Return the retained stderr tail, best effort.

        Gives the drain task a short grace period to pick up the final
        output of an exited process. Empty if stderr is not captured.
        """
        if self._stderr_task is None:
            return ""
        if not self._stderr_task.done():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=0.5)
        return self._stderr_tail.decode(errors="ignore").strip()

    def stop_stderr_drain(self) -> None:
        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()

    async def terminate(
        self,
        timeout: float = TERMINATE_TIMEOUT_SECONDS,
        kill_timeout: float = KILL_TIMEOUT_SECONDS,
    ) -> None:
        """
        Terminate the process with escalation to SIGKILL.

        1. Return if already exited
        2. Send SIGTERM and wait
        3. If still alive, send SIGKILL and wait
        """
        process = self.process
        if process.returncode is not None:
            return

        with contextlib.suppress(ProcessLookupError, OSError):
            process.terminate()

        # A paused stdout transport never sees EOF, and wait() can block on it
        discard = asyncio.create_task(self._discard_stdout())
        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
                return
            except asyncio.TimeoutError:
                pass

            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError, OSError):
                    process.kill()
                try:
                    await asyncio.wait_for(process.wait(), timeout=kill_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Extractor PID %s did not die after SIGKILL", process.pid)
        finally:
            discard.cancel()

    async def _discard_stdout(self) -> None:
        stream = self.process.stdout
        if stream is None:
            return
        with contextlib.suppress(Exception):
            while await stream.read(65536):
                pass


async def launch_extractor(target: str, settings: ExtractorSettings) -> ExtractorProcess:
    """
    Start the extractor for `target` with stdout piped.

    Args:
        target: The URL handed to the extractor.
        settings: Binary, flags and stderr handling.

    Returns:
        The running ExtractorProcess.

    Raises:
        SpawnError: If the process could not be started (binary missing,
            permission denied, exec failure).
    """
    command = build_extract_command(target, settings)
    logger.debug("[EXTRACT] Starting: %s", " ".join(command))

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if settings.capture_stderr else asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.error("[EXTRACT] Failed to start %s: %s", command[0], e)
        raise SpawnError(command, e) from e

    logger.info("[EXTRACT] Started pid=%s for %s", process.pid, target)
    extractor = ExtractorProcess(process=process, command=command)
    extractor.start_stderr_drain()
    return extractor
