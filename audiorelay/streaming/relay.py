"""
Stream relay: extractor stdout -> bounded queue -> HTTP response body.

A pump task reads the extractor's stdout in fixed-size blocks and hands each
block to a RelayChannel. The HTTP layer drains the channel in order.

Backpressure:
    The channel holds at most `capacity` chunks. When it is full the pump
    suspends on send, so a slow client throttles the extractor instead of
    growing memory or dropping data.

Termination:
    - EOF with exit code 0: the channel is closed without an error chunk.
    - Read error or non-zero exit: one terminal error chunk, then close.
    - Consumer gone (client disconnect): send fails with ChannelClosed, the
      pump stops reading and the extractor is terminated. This is a normal
      shutdown and is not reported upward.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

from audiorelay.streaming.errors import ChannelClosed, ExtractorExitError
from audiorelay.streaming.launcher import ExtractorProcess

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 32
DEFAULT_READ_SIZE = 8192

# Teardown tasks that outlive their relay; kept referenced until done
_background_tasks: set[asyncio.Task[None]] = set()


class RelayState(Enum):
    """Lifecycle of a single relay instance."""

    IDLE = "idle"
    SPAWNED = "spawned"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (RelayState.COMPLETED, RelayState.FAILED, RelayState.ABANDONED)


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """Either a non-empty block of bytes or a terminal error."""

    data: bytes = b""
    error: Exception | None = None

    def __post_init__(self) -> None:
        if self.error is None and not self.data:
            raise ValueError("StreamChunk needs data or an error")
        if self.error is not None and self.data:
            raise ValueError("StreamChunk cannot carry both data and an error")

    @classmethod
    def of(cls, data: bytes) -> StreamChunk:
        return cls(data=data)

    @classmethod
    def failure(cls, error: Exception) -> StreamChunk:
        return cls(error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class RelayChannel:
    """
    Bounded single-producer/single-consumer FIFO of StreamChunk.

    The producer side is closed exactly once with close(). The consumer
    side announces its departure with close_receiver(), after which every
    send() fails with ChannelClosed.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._queue: asyncio.Queue[StreamChunk | None] = asyncio.Queue(maxsize=capacity)
        self._capacity = capacity
        self._closed = False
        self._receiver_closed = False
        self._exhausted = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()

    async def send(self, chunk: StreamChunk) -> None:
        """
        Enqueue a chunk, suspending while the channel is full.

        Raises:
            ChannelClosed: If the consumer is gone, immediately or while
                suspended.
            RuntimeError: If the producer side was already closed.
        """
        if self._closed:
            raise RuntimeError("send() on a closed RelayChannel")
        if self._receiver_closed:
            raise ChannelClosed("consumer is gone")
        await self._queue.put(chunk)
        if self._receiver_closed:
            raise ChannelClosed("consumer is gone")

    def close(self) -> None:
        """Signal end-of-stream. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True
        if self._receiver_closed:
            return
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # receive() reports end-of-stream once the queue drains
            pass

    async def receive(self) -> StreamChunk | None:
        """Return the next chunk, or None once the stream has ended."""
        if self._exhausted:
            return None
        if self._queue.empty() and self._closed:
            self._exhausted = True
            return None
        item = await self._queue.get()
        if item is None:
            self._exhausted = True
        return item

    def close_receiver(self) -> None:
        """
        Mark the consumer as gone and release any queued chunks.

        Draining the queue wakes a producer suspended in send(), which then
        observes ChannelClosed.
        """
        if self._receiver_closed:
            return
        self._receiver_closed = True
        self._exhausted = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        while True:
            chunk = await self.receive()
            if chunk is None:
                return
            yield chunk


def _spawn_background(coro: Coroutine[Any, Any, None]) -> None:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


class StreamRelay:
    """
    Pumps one extractor's stdout into one RelayChannel.

    Usage:
        relay = StreamRelay(process)
        relay.start()
        async for chunk in relay.channel:
            ...
    """

    def __init__(
        self,
        process: ExtractorProcess,
        channel: RelayChannel | None = None,
        *,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        if read_size <= 0:
            raise ValueError("read_size must be positive")
        self.process = process
        self.channel = channel if channel is not None else RelayChannel()
        self.read_size = read_size
        self.state = RelayState.SPAWNED
        self.bytes_relayed = 0
        self.chunks_relayed = 0
        self.error: Exception | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def done(self) -> bool:
        return self.state.is_terminal

    def start(self) -> asyncio.Task[None]:
        """Start the pump task. May only be called once."""
        if self._task is not None:
            raise RuntimeError("StreamRelay already started")
        self._task = asyncio.create_task(self._pump(), name=f"relay-{self.process.pid}")
        return self._task

    async def wait(self) -> RelayState:
        """Wait for the pump to finish and return the final state."""
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self.state

    def abandon(self) -> None:
        """
        Consumer-side shutdown, e.g. after a client disconnect.

        Closes the receiving side and stops the pump; the extractor is
        terminated in the background.
        """
        self.channel.close_receiver()
        if self._task is not None and not self._task.done() and not self.state.is_terminal:
            self._task.cancel()

    async def _pump(self) -> None:
        self.state = RelayState.STREAMING
        stdout = self.process.stdout
        logger.debug("[RELAY] Streaming from pid=%s", self.process.pid)

        try:
            while True:
                try:
                    data = await stdout.read(self.read_size)
                except Exception as e:
                    logger.warning("[RELAY] Read error from pid=%s: %s", self.process.pid, e)
                    await self._fail(e)
                    return

                if not data:
                    break

                try:
                    await self.channel.send(StreamChunk.of(data))
                except ChannelClosed:
                    await self._abandon_process()
                    return

                self.bytes_relayed += len(data)
                self.chunks_relayed += 1
                if self.chunks_relayed <= 3 or self.chunks_relayed % 100 == 0:
                    logger.debug(
                        "[RELAY] Chunk %d, %d bytes total",
                        self.chunks_relayed,
                        self.bytes_relayed,
                    )

            await self._finish()

        except asyncio.CancelledError:
            if not self.state.is_terminal:
                self.state = RelayState.ABANDONED
            self.channel.close()
            logger.info(
                "[RELAY] Cancelled after %d bytes, terminating pid=%s",
                self.bytes_relayed,
                self.process.pid,
            )
            _spawn_background(self._terminate())
            raise

    async def _finish(self) -> None:
        """EOF reached: reap the process and report its exit status."""
        returncode = await self.process.wait()
        if returncode != 0:
            stderr = await self.process.stderr_text()
            logger.warning(
                "[RELAY] Extractor pid=%s exited with code %d after %d bytes: %s",
                self.process.pid,
                returncode,
                self.bytes_relayed,
                stderr[-500:] if stderr else "no stderr",
            )
            await self._fail(ExtractorExitError(returncode, stderr))
            return

        self.state = RelayState.COMPLETED
        self.channel.close()
        logger.info("[RELAY] Complete: pid=%s, relayed %d bytes", self.process.pid, self.bytes_relayed)

    async def _fail(self, error: Exception) -> None:
        """Enqueue the single terminal error chunk and close the channel."""
        self.error = error
        try:
            await self.channel.send(StreamChunk.failure(error))
        except ChannelClosed:
            await self._abandon_process()
            return
        self.state = RelayState.FAILED
        self.channel.close()
        await self._terminate()

    async def _abandon_process(self) -> None:
        self.state = RelayState.ABANDONED
        self.channel.close()
        logger.info(
            "[RELAY] Consumer gone after %d bytes, terminating pid=%s",
            self.bytes_relayed,
            self.process.pid,
        )
        await self._terminate()

    async def _terminate(self) -> None:
        await self.process.terminate()
        self.process.stop_stderr_drain()
