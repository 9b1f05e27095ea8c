"""
block-sync package.

Watches a chain for new blocks and emits batch-sync requests for the tracked
contracts each block touched.
"""

from .balance_updater import AccountBalanceUpdater
from .block_processor import TRANSFER_TOPIC, BlockProcessor, build_batch_sync_request
from .config import WatcherConfig
from .coordinator import Coordinator
from .event_source import ChainEventSource
from .models import Block, BlockHeader, ContractHandle, LogEntry, Subscription, Transaction
from .poll_source import ChainPollSource
from .stream import BlockStream

__all__ = [
    "AccountBalanceUpdater",
    "Block",
    "BlockHeader",
    "BlockProcessor",
    "BlockStream",
    "ChainEventSource",
    "ChainPollSource",
    "ContractHandle",
    "Coordinator",
    "LogEntry",
    "Subscription",
    "Transaction",
    "TRANSFER_TOPIC",
    "WatcherConfig",
    "build_batch_sync_request",
]
__version__ = "0.1.0"
