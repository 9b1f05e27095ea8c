"""
Polling-based block tracker.

Polls the provider for the chain head at a fixed interval and hands every new
full block to the registered listeners.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import TrackerStopError
from ..models import Block

if TYPE_CHECKING:
    from ..interfaces import ChainProvider


class BlockTracker:
    """
    Tracks the chain head via HTTP polling.

    On start the latest block is fetched once (failures propagate to the
    caller); afterwards the tracker polls ``get_block_number`` every
    ``polling_interval`` seconds and emits each block between the last seen
    head and the new one, up to ``max_catchup_blocks`` per cycle.
    """

    def __init__(
        self,
        provider: "ChainProvider",
        polling_interval: float = 4,
        max_catchup_blocks: int = 10
    ):
        """
        Initialize the block tracker.

        Args:
            provider: Chain provider used for head and block queries
            polling_interval: Seconds between head polls
            max_catchup_blocks: Maximum blocks emitted per poll cycle
        """
        if polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {polling_interval}")
        if max_catchup_blocks <= 0:
            raise ValueError(f"Max catch-up blocks must be positive, got {max_catchup_blocks}")

        self.provider = provider
        self.polling_interval = polling_interval
        self.max_catchup_blocks = max_catchup_blocks

        # State tracking
        self.last_block_number: Optional[int] = None
        self.is_running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: list[Callable[[Block], Any]] = []

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def on_block(self, listener: Callable[[Block], Any]) -> None:
        """Register a listener called with every new block."""
        self._listeners.append(listener)

    async def start(self) -> None:
        """
        Fetch the current head block and start the poll loop.

        Raises:
            RuntimeError: If the tracker is already running
            Exception: Any provider error while fetching the first block
        """
        if self.is_running:
            raise RuntimeError("Block tracker already running")

        self.is_running = True
        try:
            latest = await self.provider.get_block('latest', full_transactions=True)
        except Exception:
            self.is_running = False
            raise

        self.logger.info(
            f"Block tracker started at block {latest.number}, "
            f"polling every {self.polling_interval} seconds"
        )
        self.last_block_number = latest.number
        self._emit(latest)
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def poll_once(self) -> int:
        """
        Run a single poll cycle.

        Returns:
            Number of blocks emitted
        """
        current = await self.provider.get_block_number()

        # Skip if no new blocks
        if self.last_block_number is not None and current <= self.last_block_number:
            return 0

        from_block = (self.last_block_number + 1) if self.last_block_number is not None else current
        if current - from_block + 1 > self.max_catchup_blocks:
            skipped_to = current - self.max_catchup_blocks + 1
            self.logger.warning(
                f"Head advanced {current - from_block + 1} blocks; "
                f"skipping blocks {from_block}-{skipped_to - 1}"
            )
            from_block = skipped_to

        emitted = 0
        for number in range(from_block, current + 1):
            block = await self.provider.get_block(number, full_transactions=True)
            if not self.is_running:
                break
            # Advance per block so a failed fetch resumes from that block
            self.last_block_number = number
            self._emit(block)
            emitted += 1
        return emitted

    async def _poll_loop(self) -> None:
        """Main polling loop; errors are logged and polling continues."""
        while self.is_running:
            try:
                await asyncio.sleep(self.polling_interval)
                await self.poll_once()
            except asyncio.CancelledError:
                self.logger.debug("Block polling cancelled")
                break
            except Exception as e:
                self.logger.error(f"Error polling for blocks: {e}")

    def _emit(self, block: Block) -> None:
        if not self.is_running:
            return
        for listener in self._listeners:
            listener(block)

    async def stop(self) -> None:
        """
        Stop the poll loop.

        Raises:
            TrackerStopError: If the tracker has no running poll loop
        """
        if not self.is_running:
            raise TrackerStopError("Block tracker is not running")

        self.logger.info("Stopping block tracker")
        self.is_running = False
        task, self._poll_task = self._poll_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the tracker.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "last_block_number": self.last_block_number,
            "polling_interval": self.polling_interval,
            "max_catchup_blocks": self.max_catchup_blocks,
        }
