"""
In-memory contract registry and subscription store.

Host applications normally back these with their own state; these
implementations serve the command-line runner and tests. A registry file can
be loaded with ``load_registry_file``:

    {
      "account": "0x...",
      "contracts": [{"name": "DAI", "address": "0x...", "metadata": {}}],
      "subscriptions": [{"key": "balances", "addresses": ["0x..."], "params": {}}]
    }
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from web3 import Web3

from .models import ContractHandle, Subscription
from .utils.address_utility import normalize_address

logger = logging.getLogger(__name__)


class ContractStore:
    """Ordered contract registry with case-insensitive address lookup."""

    def __init__(self, contracts: Iterable[ContractHandle] = ()) -> None:
        self._by_address: dict[str, ContractHandle] = {}
        for contract in contracts:
            self.add(contract)

    def add(self, contract: ContractHandle) -> None:
        """Register a contract; re-registering an address replaces it in place."""
        self._by_address[normalize_address(contract.address)] = contract

    def find_contract_by_address(self, address: str) -> ContractHandle | None:
        if not address:
            return None
        return self._by_address.get(normalize_address(address))

    def contracts(self) -> list[ContractHandle]:
        return list(self._by_address.values())

    def __len__(self) -> int:
        return len(self._by_address)


class SubscriptionStore:
    """Subscription registry plus the current account."""

    def __init__(
        self,
        subscriptions: Iterable[Subscription] = (),
        account: str | None = None
    ) -> None:
        self._subscriptions: list[Subscription] = list(subscriptions)
        self._account = account

    def add(self, subscription: Subscription) -> None:
        self._subscriptions.append(subscription)

    def current_subscriptions(self) -> tuple[Subscription, ...]:
        """Snapshot of the subscriptions; later changes do not affect it."""
        return tuple(self._subscriptions)

    def current_account(self) -> str | None:
        return self._account

    def set_account(self, account: str | None) -> None:
        self._account = account


def load_registry_file(path: str | Path) -> tuple[ContractStore, SubscriptionStore]:
    """
    Load contracts, subscriptions and the account from a JSON file.

    Args:
        path: Path of the registry file

    Returns:
        Tuple of (contract store, subscription store)

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file is invalid JSON
        ValueError: If an entry has an invalid address
    """
    registry_path = Path(path).resolve()
    with registry_path.open() as file:
        data: dict[str, Any] = json.load(file)

    contracts = ContractStore()
    for entry in data.get("contracts", []):
        address = _checked_address(entry.get("address", ""), "contract")
        contracts.add(ContractHandle(
            name=entry.get("name") or address,
            address=address,
            metadata=entry.get("metadata", {}),
        ))

    subscriptions = SubscriptionStore()
    for index, entry in enumerate(data.get("subscriptions", [])):
        subscriptions.add(Subscription(
            addresses=tuple(_checked_address(a, "subscription") for a in entry.get("addresses", [])),
            key=entry.get("key") or f"subscription-{index}",
            params=entry.get("params", {}),
        ))

    if account := data.get("account"):
        subscriptions.set_account(_checked_address(account, "account"))

    logger.info(
        f"Loaded registry {registry_path.name}: {len(contracts)} contracts, "
        f"{len(subscriptions.current_subscriptions())} subscriptions"
    )
    return contracts, subscriptions


def _checked_address(address: str, kind: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {kind} address in registry file: {address!r}")
    return Web3.to_checksum_address(address)
