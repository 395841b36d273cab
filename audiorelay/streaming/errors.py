"""Exceptions raised by the extractor launcher and the stream relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for streaming pipeline errors."""


class SpawnError(RelayError):
    """The extractor process could not be started at all."""

    def __init__(self, command: list[str], cause: OSError) -> None:
        self.command = command
        self.cause = cause
        super().__init__(f"Failed to start {command[0]!r}: {cause}")


class ExtractorExitError(RelayError):
    """The extractor ran but exited with a non-zero status."""

    def __init__(self, returncode: int, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        message = f"Extractor exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)


class ChannelClosed(RelayError):
    """The consuming side of a relay channel is gone."""


class StreamTruncatedError(RelayError):
    """Raised inside a response body to abort an already-started stream."""
