#!/usr/bin/env python3
"""Block processing module for block-sync.

This module decides which tracked contracts a block touched and turns that
into a batch-sync request. For each block it:

- Announces the block (BlockProcessing) before any sync decision
- Short-circuits to per-contract ContractSyncing events in sync-always mode
- Scans Transfer logs for the current account and transactions for tracked
  contract addresses
- Intersects the touched addresses with every subscription and emits the
  narrowed subscriptions as one BatchCallRequest
"""

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from .events import BatchCallRequest, BlockFailed, BlockProcessing, ContractSyncing
from .exceptions import ProcessingError
from .models import BatchSyncRequest, Block, BlockHeader, ContractsPendingSync, LogEntry, Subscription
from .utils.address_utility import normalize_address, topic_matches_address

if TYPE_CHECKING:
    from .interfaces import ChainProvider, ContractRegistry, EventSink

# Get logger for this module
logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = '0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef'
WATCHED_TOPICS: tuple[str, ...] = (TRANSFER_TOPIC,)


class BlockProcessor:
    """Relevance engine turning blocks into batch-sync requests.

    Every block is handled independently: a failure while building the
    request for one block is reported as BlockFailed and never affects the
    next one.
    """

    def __init__(
        self,
        provider: "ChainProvider",
        registry: "ContractRegistry",
        emit: "EventSink",
        watched_topics: Sequence[str] = WATCHED_TOPICS
    ) -> None:
        """Initialize the BlockProcessor.

        Args:
            provider: Chain provider for block and log queries
            registry: Contract registry used to resolve addresses
            emit: Async sink receiving every event this processor produces
            watched_topics: Log topics to query (Transfer by default)
        """
        self.provider = provider
        self.registry = registry
        self.emit = emit
        self.watched_topics = tuple(watched_topics)

        # Metrics tracking
        self.blocks_processed = 0
        self.blocks_skipped = 0
        self.blocks_failed = 0
        self.requests_emitted = 0

    async def process_header(
        self,
        header: BlockHeader,
        *,
        sync_always: bool,
        account: str | None,
        subscriptions: Sequence[Subscription]
    ) -> BatchSyncRequest | None:
        """Fetch the full block for a header, then process it.

        Args:
            header: Header received from the push subscription
            sync_always: Sync every registered contract instead of filtering
            account: Current account address, or None
            subscriptions: Snapshot of the subscription registry

        Returns:
            The emitted request, or None on no-op or failure
        """
        try:
            block = await self.provider.get_block(header.number, full_transactions=True)
        except Exception as e:
            logger.error(f"Error fetching block {header.number}: {e}", exc_info=True)
            await self._fail(e, header.number)
            return None

        return await self.process(
            block,
            sync_always=sync_always,
            account=account,
            subscriptions=subscriptions,
        )

    async def process(
        self,
        block: Block,
        *,
        sync_always: bool,
        account: str | None,
        subscriptions: Sequence[Subscription]
    ) -> BatchSyncRequest | None:
        """Decide which subscriptions a block requires to be resynchronized.

        Args:
            block: Full block including transaction bodies
            sync_always: Sync every registered contract instead of filtering
            account: Current account address, or None
            subscriptions: Snapshot of the subscription registry

        Returns:
            The emitted request; None when there is no account, in
            sync-always mode, or on failure
        """
        if not account:
            self.blocks_skipped += 1
            logger.debug(f"No current account, skipping block {block.number}")
            return None

        try:
            # Regardless of syncing success or failure, this is still the latest block
            await self.emit(BlockProcessing(block=block))

            if sync_always:
                contracts = list(self.registry.contracts())
                logger.debug(f"Sync-always: syncing {len(contracts)} contracts for block {block.number}")
                for contract in contracts:
                    await self.emit(ContractSyncing(contract=contract))
                self.blocks_processed += 1
                return None

            pending = await self.find_contracts_pending_sync(block, account)
            request = build_batch_sync_request(subscriptions, pending)

            await self.emit(BatchCallRequest(request=request))
            self.blocks_processed += 1
            self.requests_emitted += 1
            logger.info(
                f"Block {block.number}: {len(pending)} touched addresses, "
                f"{len(request)} subscriptions to sync"
            )
            return request

        except Exception as e:
            logger.error(f"Error in block processing for block {block.number}: {e}", exc_info=True)
            await self._fail(e, block.number)
            return None

    async def find_contracts_pending_sync(self, block: Block, account: str) -> ContractsPendingSync:
        """Collect the tracked contracts touched by a block.

        Transfer logs naming the account as sender or recipient record the
        log's contract keyed by its checksummed address. Transaction senders
        and recipients that resolve to a registered contract are recorded
        keyed by the address as it appears on the transaction.

        Raises:
            Exception: Provider errors from the log query
        """
        pending = ContractsPendingSync()

        logs = await self.provider.get_past_logs(
            from_block=block.number,
            to_block=block.number,
            topics=list(self.watched_topics),
        )
        for log in logs:
            self._check_log(log, account, pending)

        for tx in block.transactions:
            from_address = tx.from_address or ''
            from_contract = self.registry.find_contract_by_address(from_address.lower())
            if from_contract:
                pending.record(from_address, from_contract)

            to_address = tx.to_address or ''
            to_contract = self.registry.find_contract_by_address(to_address.lower())
            if to_contract:
                pending.record(to_address, to_contract)

        return pending

    def _check_log(self, log: LogEntry, account: str, pending: ContractsPendingSync) -> None:
        """Record the log's contract if the Transfer involves the account."""
        if not isinstance(log, LogEntry):
            log = LogEntry.from_web3(log)

        topics = log.topics
        from_topic = topics[1] if len(topics) > 1 else None
        to_topic = topics[2] if len(topics) > 2 else None
        if not from_topic or not to_topic:
            return

        if topic_matches_address(from_topic, account) or topic_matches_address(to_topic, account):
            contract = self.registry.find_contract_by_address(log.address.lower())
            checksum_address = self.provider.checksum_address(log.address)
            pending.record(checksum_address, contract)

    async def _fail(self, error: BaseException, block_number: int | None) -> None:
        self.blocks_failed += 1
        if not isinstance(error, ProcessingError):
            wrapped = ProcessingError(f"Block processing failed: {error}", block_number=block_number)
            wrapped.__cause__ = error
            error = wrapped
        await self.emit(BlockFailed(error=error))

    def get_metrics(self) -> dict[str, int]:
        """Get current processing metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "blocks_processed": self.blocks_processed,
            "blocks_skipped": self.blocks_skipped,
            "blocks_failed": self.blocks_failed,
            "requests_emitted": self.requests_emitted,
        }

    def log_metrics(self) -> None:
        """Log current processing metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"BlockProcessor Metrics: "
            f"Processed={metrics['blocks_processed']}, "
            f"Skipped={metrics['blocks_skipped']}, "
            f"Failed={metrics['blocks_failed']}, "
            f"Requests={metrics['requests_emitted']}"
        )


def build_batch_sync_request(
    subscriptions: Sequence[Subscription],
    pending: ContractsPendingSync | Sequence[str]
) -> BatchSyncRequest:
    """Narrow each subscription to the addresses pending sync.

    Subscriptions with an empty intersection are omitted. The output keeps
    subscription order, and each copy keeps the subscription's own address
    spelling and order; all other fields pass through unchanged.

    Args:
        subscriptions: Subscription snapshot, in registry order
        pending: Touched addresses (any spelling)

    Returns:
        Tuple of narrowed subscription copies
    """
    if not isinstance(pending, ContractsPendingSync):
        table = ContractsPendingSync()
        for address in pending:
            table.record(address, None)
        pending = table

    request: list[Subscription] = []
    for subscription in subscriptions:
        matched: list[str] = []
        seen: set[str] = set()
        for address in subscription.addresses:
            canonical = normalize_address(address)
            if canonical in seen or address not in pending:
                continue
            seen.add(canonical)
            matched.append(address)
        if matched:
            request.append(replace(subscription, addresses=tuple(matched)))
    return tuple(request)

