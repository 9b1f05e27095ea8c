"""Shared fixtures for block-sync tests."""

import asyncio
from collections.abc import Sequence

import pytest
from web3 import Web3

from block_sync.block_processor import TRANSFER_TOPIC
from block_sync.models import Block, BlockHeader, ContractHandle, LogEntry, Subscription, Transaction
from block_sync.registry import ContractStore, SubscriptionStore

ACCOUNT = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
TOKEN_A = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
TOKEN_B = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
TOKEN_C = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
OTHER = "0xdAC17F958D2ee523a2206206994597C13D831ec7"


def pad_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic, as emitted by Transfer logs."""
    return "0x" + "0" * 24 + address.lower().replace("0x", "")


class FakeProvider:
    """In-memory ChainProvider with controllable blocks, logs and failures."""

    def __init__(self) -> None:
        self.blocks: dict[int, Block] = {}
        self.logs: dict[int, list[LogEntry]] = {}
        self.balances: dict[str, int] = {}
        self.head = 0

        self.log_errors: dict[int, Exception] = {}
        self.block_errors: dict[int, Exception] = {}
        self.subscribe_error: Exception | None = None
        self.log_gate: asyncio.Event | None = None

        self.log_queries: list[tuple[int, int, list]] = []
        self.balance_queries: list[str] = []
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.history: list[str] = []
        self.on_data = None
        self.on_error = None

    def add_block(self, block: Block, logs: Sequence[LogEntry] = ()) -> Block:
        self.blocks[block.number] = block
        self.logs[block.number] = list(logs)
        self.head = max(self.head, block.number)
        return block

    async def subscribe_new_headers(self, on_data, on_error):
        self.subscribe_calls += 1
        self.history.append("subscribe")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.on_data = on_data
        self.on_error = on_error

        async def unsubscribe() -> None:
            self.unsubscribe_calls += 1
            self.history.append("unsubscribe")
            self.on_data = None
            self.on_error = None

        return unsubscribe

    def push_header(self, number: int) -> None:
        assert self.on_data is not None, "no active subscription"
        self.on_data(BlockHeader(number=number, hash=f"0x{number:064x}"))

    async def get_block(self, number, full_transactions=True):
        if number == 'latest':
            number = self.head
        if number in self.block_errors:
            raise self.block_errors[number]
        if number not in self.blocks:
            self.blocks[number] = Block(number=number, hash=f"0x{number:064x}")
        return self.blocks[number]

    async def get_block_number(self) -> int:
        return self.head

    async def get_past_logs(self, from_block, to_block, topics):
        self.log_queries.append((from_block, to_block, list(topics)))
        if self.log_gate is not None:
            await self.log_gate.wait()
        if from_block in self.log_errors:
            raise self.log_errors[from_block]
        return list(self.logs.get(from_block, []))

    async def get_balance(self, address: str) -> int:
        self.balance_queries.append(address)
        return self.balances.get(address.lower(), 0)

    def checksum_address(self, address: str) -> str:
        return Web3.to_checksum_address(address)


class EventRecorder:
    """Async event sink that records everything it receives."""

    def __init__(self) -> None:
        self.events: list = []
        self._changed = asyncio.Event()

    async def __call__(self, event) -> None:
        self.events.append(event)
        self._changed.set()

    def of_type(self, cls) -> list:
        return [event for event in self.events if isinstance(event, cls)]

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]

    async def wait_for(self, cls, count: int = 1, timeout: float = 2.0) -> list:
        """Wait until at least ``count`` events of ``cls`` were recorded."""
        async def _wait() -> None:
            while len(self.of_type(cls)) < count:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self.of_type(cls)


@pytest.fixture
def provider():
    """Create an empty FakeProvider."""
    return FakeProvider()


@pytest.fixture
def recorder():
    """Create an EventRecorder sink."""
    return EventRecorder()


@pytest.fixture
def contracts():
    """Registry with three token contracts, in registration order."""
    return ContractStore([
        ContractHandle(name="TokenA", address=TOKEN_A),
        ContractHandle(name="TokenB", address=TOKEN_B),
        ContractHandle(name="TokenC", address=TOKEN_C),
    ])


@pytest.fixture
def subscriptions():
    """Subscription store watching ACCOUNT with two subscriptions."""
    return SubscriptionStore(
        [
            Subscription(addresses=(TOKEN_A, TOKEN_B), key="balances", params={"method": "balanceOf"}),
            Subscription(addresses=(TOKEN_C,), key="allowances", params={"method": "allowance"}),
        ],
        account=ACCOUNT,
    )


def transfer_log(token: str, sender: str, recipient: str, block_number: int = 1) -> LogEntry:
    """Build a Transfer log entry."""
    return LogEntry(
        address=token,
        topics=(TRANSFER_TOPIC, pad_topic(sender), pad_topic(recipient)),
        data="0x" + "0" * 63 + "1",
        block_number=block_number,
    )


def make_block(number: int, transactions: Sequence[Transaction] = ()) -> Block:
    return Block(number=number, hash=f"0x{number:064x}", transactions=tuple(transactions))
