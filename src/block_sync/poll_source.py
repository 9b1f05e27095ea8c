"""
Polling block source.

Drives a BlockTracker at a fixed interval and exposes its blocks as a
BlockStream of BlockFound events, equivalent in shape to ChainEventSource.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .events import BlockFound
from .exceptions import ProducerError, TrackerStopError
from .models import Block
from .stream import BlockStream
from .utils.block_tracker import BlockTracker

if TYPE_CHECKING:
    from .interfaces import ChainProvider

logger = logging.getLogger(__name__)

TrackerFactory = Callable[["ChainProvider", float], BlockTracker]


class ChainPollSource:
    """Producer of BlockFound events from a polling BlockTracker."""

    LABEL = "block-poll"

    def __init__(
        self,
        provider: "ChainProvider",
        interval: float,
        tracker_factory: TrackerFactory | None = None,
        max_catchup_blocks: int = 10,
    ) -> None:
        """
        Initialize the poll source.

        Args:
            provider: Chain provider the tracker polls
            interval: Polling interval in seconds
            tracker_factory: Builds the tracker (defaults to BlockTracker)
            max_catchup_blocks: Passed to the default tracker
        """
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")

        self.provider = provider
        self.interval = interval
        self.tracker_factory = tracker_factory or (
            lambda provider, interval: BlockTracker(
                provider,
                polling_interval=interval,
                max_catchup_blocks=max_catchup_blocks,
            )
        )

    async def open(self) -> BlockStream:
        """
        Start a tracker and stream its blocks.

        Start failure emits BlocksFailed and ends the stream. Closing the
        stream stops the tracker; stopping a tracker that never started or
        already stopped is ignored.

        Returns:
            The stream handle; the caller must close it when done
        """
        stream = BlockStream(self.LABEL)
        tracker = self.tracker_factory(self.provider, self.interval)

        def on_block(block: Block) -> None:
            stream.emit(BlockFound(block=block))

        async def stop_tracker() -> None:
            try:
                await tracker.stop()
            except TrackerStopError:
                # Nothing outstanding to stop
                logger.debug("Block tracker already stopped")

        tracker.on_block(on_block)
        stream.on_close(stop_tracker)

        logger.info(f"Starting block polling every {self.interval} seconds")
        try:
            await tracker.start()
        except asyncio.CancelledError:
            # Stream is never handed to the caller
            await stream.close()
            raise
        except Exception as e:
            logger.error(f"Block tracker failed to start: {e}", exc_info=True)
            error = ProducerError(
                f"Block tracker failed to start: {e}",
                details={"cause": type(e).__name__},
            )
            error.__cause__ = e
            stream.fail(error)
        return stream
