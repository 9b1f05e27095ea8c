#!/usr/bin/env python3
"""Data models for block-sync.

This module provides immutable data classes for the block headers, blocks,
transactions and logs read from the chain provider, plus the subscription
entries and the per-block pending-sync table used to build batch-sync
requests.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from web3 import Web3

from .exceptions import MalformedDataError
from .utils.address_utility import normalize_address


def _get(data: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a dict-like payload or an attribute object."""
    if hasattr(data, 'get') and callable(data.get):
        return data.get(key, default)
    return getattr(data, key, default)


def _to_hex(value: Any) -> str | None:
    """Convert bytes/HexBytes to a 0x-prefixed hex string."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


def _to_int(value: Any, default: int = 0) -> int:
    """Accept ints as well as hex-encoded quantities ('0x1a')."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith('0x') else int(value)
    return int(value)


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """Minimal header fields delivered by a newHeads subscription.

    Attributes:
        number: Block number
        hash: Block hash (with 0x prefix)
        parent_hash: Parent block hash (with 0x prefix)
        timestamp: Block timestamp (Unix timestamp)
    """

    number: int
    hash: str | None = None
    parent_hash: str | None = None
    timestamp: int = 0

    def __str__(self) -> str:
        return f"BlockHeader(number={self.number}, hash={(self.hash or '')[:10]}...)"

    @classmethod
    def from_web3(cls, data: Any) -> "BlockHeader":
        """Build a header from a web3 BlockData/AttributeDict or a plain dict.

        Raises:
            MalformedDataError: If the payload has no block number
        """
        number = _get(data, 'number')
        if number is None:
            raise MalformedDataError("Block header is missing its number")
        return cls(
            number=_to_int(number),
            hash=_to_hex(_get(data, 'hash')),
            parent_hash=_to_hex(_get(data, 'parentHash')),
            timestamp=_to_int(_get(data, 'timestamp')),
        )


@dataclass(frozen=True, slots=True)
class Transaction:
    """A transaction body inside a full block.

    ``to_address`` is None for contract-creation transactions.
    """

    hash: str | None
    from_address: str
    to_address: str | None = None

    @classmethod
    def from_web3(cls, data: Any) -> "Transaction":
        # Blocks fetched without full transactions only carry hashes
        if isinstance(data, (bytes, bytearray, str)):
            return cls(hash=_to_hex(data), from_address='', to_address=None)
        return cls(
            hash=_to_hex(_get(data, 'hash')),
            from_address=_get(data, 'from') or '',
            to_address=_get(data, 'to'),
        )


@dataclass(frozen=True, slots=True)
class Block:
    """A full block including transaction bodies.

    Attributes:
        number: Block number
        hash: Block hash (with 0x prefix)
        parent_hash: Parent block hash (with 0x prefix)
        timestamp: Block timestamp (Unix timestamp)
        transactions: Transactions in block order
    """

    number: int
    hash: str | None = None
    parent_hash: str | None = None
    timestamp: int = 0
    transactions: tuple[Transaction, ...] = ()

    def __str__(self) -> str:
        return (
            f"Block(number={self.number}, "
            f"hash={(self.hash or '')[:10]}..., "
            f"txs={len(self.transactions)})"
        )

    @classmethod
    def from_web3(cls, data: Any) -> "Block":
        """Build a block from a web3 BlockData/AttributeDict or a plain dict.

        Raises:
            MalformedDataError: If the payload has no block number
        """
        number = _get(data, 'number')
        if number is None:
            raise MalformedDataError("Block is missing its number")
        transactions = _get(data, 'transactions') or []
        return cls(
            number=_to_int(number),
            hash=_to_hex(_get(data, 'hash')),
            parent_hash=_to_hex(_get(data, 'parentHash')),
            timestamp=_to_int(_get(data, 'timestamp')),
            transactions=tuple(Transaction.from_web3(tx) for tx in transactions),
        )


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A log entry returned by eth_getLogs.

    The first topic identifies the event type. For the watched Transfer topic
    ``topics[1]`` and ``topics[2]`` hold the 32-byte padded from/to addresses.
    """

    address: str
    topics: tuple[str, ...] = ()
    data: str = '0x'
    block_number: int | None = None
    transaction_hash: str | None = None
    log_index: int | None = None

    @classmethod
    def from_web3(cls, data: Any) -> "LogEntry":
        """Build a log entry from a web3 LogReceipt or a plain dict.

        Raises:
            MalformedDataError: If the payload has no contract address
        """
        address = _get(data, 'address')
        if not address:
            raise MalformedDataError("Log entry is missing its address")
        topics = _get(data, 'topics') or []
        block_number = _get(data, 'blockNumber')
        log_index = _get(data, 'logIndex')
        return cls(
            address=address,
            topics=tuple(_to_hex(topic) for topic in topics),
            data=_to_hex(_get(data, 'data')) or '0x',
            block_number=_to_int(block_number) if block_number is not None else None,
            transaction_hash=_to_hex(_get(data, 'transactionHash')),
            log_index=_to_int(log_index) if log_index is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ContractHandle:
    """A locally tracked contract as known to the contract registry."""

    name: str
    address: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"ContractHandle({self.name}@{self.address[:10]}...)"


@dataclass(frozen=True, slots=True)
class Subscription:
    """A group of addresses a consumer wants synchronized together.

    Attributes:
        addresses: Contract addresses covered by this subscription
        key: Identifier of the subscription in its registry
        params: Opaque sync parameters passed through untouched
    """

    addresses: tuple[str, ...]
    key: str = ''
    params: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "key": self.key,
            "addresses": list(self.addresses),
            "params": dict(self.params),
        }


# Ordered subscription copies restricted to the addresses that matched a block
BatchSyncRequest = tuple[Subscription, ...]


class ContractsPendingSync:
    """Contracts touched by one block, keyed by address.

    Keys are stored as recorded (checksummed for log hits, raw for
    transaction hits) and looked up through ``normalize_address``, so two
    spellings of one address share a single entry. The first spelling
    recorded is kept.
    """

    __slots__ = ('_entries',)

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, Any]] = {}

    def record(self, address: str, contract: Any) -> None:
        canonical = normalize_address(address)
        if canonical in self._entries:
            recorded, existing = self._entries[canonical]
            # A later hit may resolve a contract an earlier one did not
            if existing is None and contract is not None:
                self._entries[canonical] = (recorded, contract)
            return
        self._entries[canonical] = (address, contract)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and normalize_address(address) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return (recorded for recorded, _ in self._entries.values())

    def get(self, address: str) -> Any:
        entry = self._entries.get(normalize_address(address))
        return entry[1] if entry else None

    def addresses(self) -> list[str]:
        """Recorded addresses in insertion order."""
        return list(self)

    def __repr__(self) -> str:
        return f"ContractsPendingSync({self.addresses()!r})"
