"""
Block-sync coordinator.

This module wires block producers to the block processor and the balance
updater. It owns the producer lifecycle (at most one live producer per
kind) and the single ordered channel through which every produced event
flows before it is handled.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from .balance_updater import AccountBalanceUpdater
from .block_processor import BlockProcessor
from .event_source import ChainEventSource
from .events import (
    AppReady,
    BlockFound,
    BlockReceived,
    BlocksListening,
    BlocksPolling,
    ChainEvent,
    Signal,
    SourceKind,
    StopBlocks,
)
from .poll_source import ChainPollSource, TrackerFactory
from .stream import BlockStream

if TYPE_CHECKING:
    from .interfaces import ChainProvider, ContractRegistry, EventSink, SubscriptionSource

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Producer:
    """A live block stream and the task pumping it into the channel.

    Channel items carry their producer so events queued before a stop or
    replacement can be dropped by the consumer.
    """
    kind: SourceKind
    stream: BlockStream
    task: Optional[asyncio.Task] = None
    stopped: bool = False


class Coordinator:
    """
    Routes block events between producers, processor and balance updater.

    Producers run as independent tasks pushing into one asyncio.Queue. A
    single consumer task forwards each event to the sink and then handles
    it, so one event is fully handled before the next is taken and blocks
    are processed in delivery order.
    """

    STATUS_LOG_INTERVAL = 60  # seconds

    def __init__(
        self,
        provider: "ChainProvider",
        registry: "ContractRegistry",
        subscriptions: "SubscriptionSource",
        sink: "EventSink",
        *,
        sync_always: bool = False,
        polling_interval: float = 4,
        refresh_balance_on_poll: bool = False,
        max_catchup_blocks: int = 10,
        tracker_factory: TrackerFactory | None = None
    ):
        """
        Initialize the coordinator.

        Args:
            provider: Chain provider shared by all components
            registry: Contract registry
            subscriptions: Source of subscriptions and the current account
            sink: Async callable receiving every consumer-visible event
            sync_always: Sync every registered contract on every block
            polling_interval: Default interval for BlocksPolling, in seconds
            refresh_balance_on_poll: Also refresh the balance on BlockFound
            max_catchup_blocks: Upper bound of blocks emitted per poll cycle
            tracker_factory: Override for the poll source's tracker
        """
        self.provider = provider
        self.registry = registry
        self.subscriptions = subscriptions
        self.sink = sink
        self.sync_always = sync_always
        self.polling_interval = polling_interval
        self.refresh_balance_on_poll = refresh_balance_on_poll
        self.max_catchup_blocks = max_catchup_blocks
        self.tracker_factory = tracker_factory

        self.processor = BlockProcessor(provider, registry, emit=sink)
        self.balance_updater = AccountBalanceUpdater(provider, emit=sink)

        # Async coordination
        self.running = False
        self._channel: asyncio.Queue[tuple[_Producer, ChainEvent]] = asyncio.Queue()
        self._producers: dict[SourceKind, _Producer] = {}
        self._lifecycle_lock = asyncio.Lock()
        self._consumer_task: Optional[asyncio.Task] = None
        self.shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the consumer task; idempotent."""
        if self._consumer_task and not self._consumer_task.done():
            return
        self.running = True
        self.shutdown_event.clear()
        self._consumer_task = asyncio.create_task(self._consume())
        logger.info("Coordinator started")

    async def dispatch(self, signal: Signal) -> None:
        """
        Handle a control signal from the host application.

        Args:
            signal: BlocksListening, BlocksPolling, AppReady or StopBlocks
        """
        match signal:
            case BlocksListening():
                await self._replace_producer(
                    SourceKind.SUBSCRIPTION,
                    ChainEventSource(self.provider).open,
                )
            case BlocksPolling(interval=interval):
                source = ChainPollSource(
                    self.provider,
                    interval if interval is not None else self.polling_interval,
                    tracker_factory=self.tracker_factory,
                    max_catchup_blocks=self.max_catchup_blocks,
                )
                await self._replace_producer(SourceKind.POLLING, source.open)
            case AppReady():
                await self._update_balance()
            case StopBlocks(kind=None):
                async with self._lifecycle_lock:
                    for kind in list(self._producers):
                        await self._stop_producer(kind)
            case StopBlocks(kind=kind):
                async with self._lifecycle_lock:
                    await self._stop_producer(kind)
            case _:
                raise ValueError(f"Unknown signal: {signal!r}")

    async def _replace_producer(
        self,
        kind: SourceKind,
        open_stream: Callable[[], Awaitable[BlockStream]]
    ) -> None:
        """Stop any producer of this kind, then open and pump a new one."""
        async with self._lifecycle_lock:
            await self._stop_producer(kind)

            stream = await open_stream()
            producer = _Producer(kind=kind, stream=stream)
            producer.task = asyncio.create_task(self._pump(producer))
            self._producers[kind] = producer
            logger.info(f"Started {kind.value} block producer")

    async def _stop_producer(self, kind: SourceKind) -> None:
        producer = self._producers.pop(kind, None)
        if producer is None:
            return

        logger.info(f"Stopping {kind.value} block producer")
        producer.stopped = True
        await producer.stream.close()
        if producer.task and not producer.task.done():
            producer.task.cancel()
            try:
                await producer.task
            except asyncio.CancelledError:
                pass  # Expected when cancelling

    async def _pump(self, producer: _Producer) -> None:
        """Forward a producer's events into the shared channel."""
        kind = producer.kind
        try:
            async for event in producer.stream:
                await self._channel.put((producer, event))
        finally:
            await producer.stream.close()
            # Drop the registration only if it still points at this producer
            if self._producers.get(kind) is producer:
                del self._producers[kind]
                logger.info(f"{kind.value} block producer ended")

    async def _consume(self) -> None:
        """Sequentially deliver and handle channel events."""
        while self.running:
            producer, event = await self._channel.get()
            if producer.stopped:
                logger.debug(f"Dropping {event.type.value} from stopped {producer.kind.value} producer")
                self._channel.task_done()
                continue
            try:
                await self.sink(event)
                await self._handle(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error handling {event.type.value} event: {e}", exc_info=True)
            finally:
                self._channel.task_done()

    async def _handle(self, event: ChainEvent) -> None:
        match event:
            case BlockReceived(header=header):
                try:
                    await self.processor.process_header(
                        header,
                        sync_always=self.sync_always,
                        account=self.subscriptions.current_account(),
                        subscriptions=self.subscriptions.current_subscriptions(),
                    )
                except Exception as e:
                    logger.error(f"Error processing block {header.number}: {e}", exc_info=True)
                await self._update_balance()
            case BlockFound(block=block):
                try:
                    await self.processor.process(
                        block,
                        sync_always=self.sync_always,
                        account=self.subscriptions.current_account(),
                        subscriptions=self.subscriptions.current_subscriptions(),
                    )
                except Exception as e:
                    logger.error(f"Error processing block {block.number}: {e}", exc_info=True)
                if self.refresh_balance_on_poll:
                    await self._update_balance()
            case _:
                pass  # BlocksFailed only needs to reach the sink

    async def _update_balance(self) -> None:
        try:
            await self.balance_updater.update(self.subscriptions.current_account())
        except Exception as e:
            logger.error(f"Error updating account balance: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait until every event queued so far has been handled."""
        await self._channel.join()

    def active_producers(self) -> list[SourceKind]:
        """Kinds of producers currently live."""
        return [kind for kind, producer in self._producers.items() if producer.task and not producer.task.done()]

    def get_status(self) -> dict[str, Any]:
        """
        Get current coordinator status.

        Returns:
            Dictionary with status information
        """
        return {
            "running": self.running,
            "producers": [kind.value for kind in self.active_producers()],
            "queued_events": self._channel.qsize(),
            "sync_always": self.sync_always,
            **self.processor.get_metrics(),
        }

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            self.processor.log_metrics()

    async def run(self) -> None:
        """Run until stop() is called or the consumer task dies."""
        await self.start()
        status_task = asyncio.create_task(self._periodic_status_logger())
        try:
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Continue running

                if self._consumer_task and self._consumer_task.done():
                    logger.error("Event consumer stopped unexpectedly, shutting down")
                    break
        finally:
            status_task.cancel()
            try:
                await status_task
            except asyncio.CancelledError:
                pass
            await self.shutdown()

    def stop(self) -> None:
        """Request shutdown of a running coordinator."""
        self.running = False
        self.shutdown_event.set()

    async def shutdown(self) -> None:
        """Stop all producers and the consumer task."""
        logger.info("Shutting down coordinator...")
        self.running = False
        async with self._lifecycle_lock:
            for kind in list(self._producers):
                await self._stop_producer(kind)

        task, self._consumer_task = self._consumer_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Coordinator stopped")
