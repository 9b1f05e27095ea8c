"""Native balance refresh for the watched account."""

import logging
from typing import TYPE_CHECKING

from .events import AccountBalancesFetching, BalanceUpdated

if TYPE_CHECKING:
    from .interfaces import ChainProvider, EventSink

logger = logging.getLogger(__name__)


class AccountBalanceUpdater:
    """Fetches and publishes the current account's native balance."""

    def __init__(self, provider: "ChainProvider | None", emit: "EventSink") -> None:
        self.provider = provider
        self.emit = emit

    async def update(self, account: str | None) -> int | None:
        """
        Refresh the native balance of ``account``.

        AccountBalancesFetching is always emitted first. Without an account
        or a provider nothing else happens.

        Returns:
            The balance in wei, or None on no-op
        """
        await self.emit(AccountBalancesFetching())
        if not account or self.provider is None:
            return None

        balance = await self.provider.get_balance(account)
        logger.debug(f"Balance of {account}: {balance} wei")
        await self.emit(BalanceUpdated(balance=balance))
        return balance
