#!/usr/bin/env python3
"""Events and control signals for block-sync.

Every event delivered to the host application is one of the frozen
dataclasses below. Failures travel on the same channel as successes, so
consumers discriminate by ``event.type`` (or by pattern matching on the
class).

Control signals (``BlocksListening``, ``BlocksPolling``, ``AppReady``,
``StopBlocks``) flow the other way: the host dispatches them into the
Coordinator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from .models import BatchSyncRequest, Block, BlockHeader


class EventType(Enum):
    """Discriminator for events emitted by block-sync."""
    BLOCKS_FAILED = "BLOCKS_FAILED"
    BLOCK_RECEIVED = "BLOCK_RECEIVED"
    BLOCK_FOUND = "BLOCK_FOUND"
    BLOCK_PROCESSING = "BLOCK_PROCESSING"
    BLOCK_FAILED = "BLOCK_FAILED"
    CONTRACT_SYNCING = "CONTRACT_SYNCING"
    BATCH_CALL_REQUEST = "BATCH_CALL_REQUEST"
    ACCOUNT_BALANCES_FETCHING = "ACCOUNT_BALANCES_FETCHING"
    BALANCE_UPDATED = "BALANCE_UPDATED"


class SourceKind(Enum):
    """Kinds of block producers; at most one of each is live."""
    SUBSCRIPTION = "subscription"
    POLLING = "polling"


@dataclass(frozen=True, slots=True)
class BlocksFailed:
    """A producer failed; its stream ends after this event."""
    type: ClassVar[EventType] = EventType.BLOCKS_FAILED
    error: BaseException


@dataclass(frozen=True, slots=True)
class BlockReceived:
    """A new header arrived on the push subscription."""
    type: ClassVar[EventType] = EventType.BLOCK_RECEIVED
    header: BlockHeader


@dataclass(frozen=True, slots=True)
class BlockFound:
    """The poller found a new block (full block, no secondary fetch)."""
    type: ClassVar[EventType] = EventType.BLOCK_FOUND
    block: Block


@dataclass(frozen=True, slots=True)
class BlockProcessing:
    """Latest block, emitted before any sync decision is made."""
    type: ClassVar[EventType] = EventType.BLOCK_PROCESSING
    block: Block


@dataclass(frozen=True, slots=True)
class BlockFailed:
    """Deriving the sync request for one block failed."""
    type: ClassVar[EventType] = EventType.BLOCK_FAILED
    error: BaseException


@dataclass(frozen=True, slots=True)
class ContractSyncing:
    """A registered contract must be synced (sync-always mode)."""
    type: ClassVar[EventType] = EventType.CONTRACT_SYNCING
    contract: Any


@dataclass(frozen=True, slots=True)
class BatchCallRequest:
    """Subscriptions narrowed to the addresses touched by a block."""
    type: ClassVar[EventType] = EventType.BATCH_CALL_REQUEST
    request: BatchSyncRequest


@dataclass(frozen=True, slots=True)
class AccountBalancesFetching:
    """A native balance refresh started."""
    type: ClassVar[EventType] = EventType.ACCOUNT_BALANCES_FETCHING


@dataclass(frozen=True, slots=True)
class BalanceUpdated:
    """Native balance of the current account, in wei."""
    type: ClassVar[EventType] = EventType.BALANCE_UPDATED
    balance: int


ChainEvent = (
    BlocksFailed
    | BlockReceived
    | BlockFound
    | BlockProcessing
    | BlockFailed
    | ContractSyncing
    | BatchCallRequest
    | AccountBalancesFetching
    | BalanceUpdated
)

# Events produced by block streams (before processing)
RawBlockEvent = BlocksFailed | BlockReceived | BlockFound


@dataclass(frozen=True, slots=True)
class BlocksListening:
    """Start (or restart) the push-subscription producer."""


@dataclass(frozen=True, slots=True)
class BlocksPolling:
    """Start (or restart) the polling producer.

    Attributes:
        interval: Polling interval in seconds (None uses the configured one)
    """
    interval: float | None = None


@dataclass(frozen=True, slots=True)
class AppReady:
    """The host application finished starting up."""


@dataclass(frozen=True, slots=True)
class StopBlocks:
    """Stop the producer of one kind, or all producers when kind is None."""
    kind: SourceKind | None = None


Signal = BlocksListening | BlocksPolling | AppReady | StopBlocks
