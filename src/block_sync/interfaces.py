"""Collaborator protocols consumed by block-sync.

The chain provider, contract registry and subscription source are owned by
the host application. block-sync only talks to them through these narrow
interfaces, passed in at construction time.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from .events import ChainEvent
from .models import Block, BlockHeader, LogEntry, Subscription

Unsubscribe = Callable[[], Awaitable[None]]
EventSink = Callable[[ChainEvent], Awaitable[None]]


class ChainProvider(Protocol):
    """Chain-data provider (RPC node access)."""

    async def subscribe_new_headers(
        self,
        on_data: Callable[[BlockHeader], None],
        on_error: Callable[[BaseException], None],
    ) -> Unsubscribe:
        """Open a persistent newHeads subscription.

        Returns a coroutine function that tears the subscription down.
        """
        ...

    async def get_block(self, number: int | str, full_transactions: bool = True) -> Block:
        ...

    async def get_block_number(self) -> int:
        ...

    async def get_past_logs(
        self,
        from_block: int,
        to_block: int,
        topics: Sequence[str | None],
    ) -> list[LogEntry]:
        ...

    async def get_balance(self, address: str) -> int:
        ...

    def checksum_address(self, address: str) -> str:
        ...


class ContractRegistry(Protocol):
    """Lookup of locally tracked contracts."""

    def find_contract_by_address(self, address: str) -> Any | None:
        ...

    def contracts(self) -> Sequence[Any]:
        """All registered contracts, in registration order."""
        ...


class SubscriptionSource(Protocol):
    """Read-only view of the subscription registry and current account."""

    def current_subscriptions(self) -> Sequence[Subscription]:
        ...

    def current_account(self) -> str | None:
        ...
