"""
Cancellable block event stream.

A BlockStream is the handle returned by ChainEventSource.open() and
ChainPollSource.open(). Producers push events with ``emit``; the consumer
iterates with ``async for``. The stream owns the release of the producer's
underlying subscription or timer: ``close()`` runs the registered release
callbacks exactly once, however many times it is called and whoever calls it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .events import BlocksFailed, RawBlockEvent

logger = logging.getLogger(__name__)

_END = object()


class BlockStream:
    """
    Ordered, closable stream of raw block events.

    Once ended (by ``fail`` or ``end``) the stream accepts no more events;
    events already queued are still delivered. Once closed, queued events are
    dropped and iteration stops.
    """

    def __init__(self, label: str) -> None:
        """
        Initialize the stream.

        Args:
            label: Name used in log messages (e.g. 'new-heads', 'block-poll')
        """
        self.label = label
        self._queue: asyncio.Queue = asyncio.Queue()
        self._ended = False
        self._closed = False
        self._exhausted = False
        self._late_releases: set[asyncio.Future] = set()
        self._release_callbacks: list[Callable[[], Awaitable[None]]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ended(self) -> bool:
        return self._ended

    def on_close(self, release: Callable[[], Awaitable[None]]) -> None:
        """
        Register a coroutine function that releases a producer resource.

        If the stream is already closed, the release is scheduled right away
        so a resource acquired during a late open is never leaked.
        """
        if self._closed:
            future = asyncio.ensure_future(self._run_release(release))
            self._late_releases.add(future)
            future.add_done_callback(self._late_releases.discard)
            return
        self._release_callbacks.append(release)

    def emit(self, event: RawBlockEvent) -> bool:
        """
        Queue an event for the consumer.

        Returns:
            False if the stream has ended or closed and the event was dropped
        """
        if self._ended or self._closed:
            logger.debug(f"[{self.label}] Dropping {event.type.value} after stream end")
            return False
        self._queue.put_nowait(event)
        return True

    def fail(self, error: BaseException) -> None:
        """Emit a single BlocksFailed event and end the stream."""
        if self.emit(BlocksFailed(error=error)):
            logger.error(f"[{self.label}] Block stream failed: {error}")
            self.end()

    def end(self) -> None:
        """Stop accepting events; the consumer drains what is queued."""
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(_END)

    async def close(self) -> None:
        """Release producer resources exactly once and stop iteration."""
        if self._closed:
            return
        self._closed = True
        if not self._ended:
            self._ended = True
            self._queue.put_nowait(_END)

        callbacks, self._release_callbacks = self._release_callbacks, []
        for release in reversed(callbacks):
            await self._run_release(release)
        logger.debug(f"[{self.label}] Block stream closed")

    async def _run_release(self, release: Callable[[], Awaitable[None]]) -> None:
        try:
            await release()
        except Exception as e:
            logger.warning(f"[{self.label}] Error releasing stream resource: {e}")

    def __aiter__(self) -> "BlockStream":
        return self

    async def __anext__(self) -> RawBlockEvent:
        if self._closed or self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if self._closed:
            raise StopAsyncIteration
        return item
