#!/usr/bin/env python3
"""Configuration management for block-sync.

This module provides type-safe configuration dataclasses with validation
for the block watcher. Configuration is loaded from environment variables
with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass
from typing import ClassVar
from urllib.parse import urlparse

from web3 import Web3

from .utils.web3_provider import convert_to_websocket_url

# Get logger for this module
logger = logging.getLogger(__name__)

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the watched chain.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint used for block, log and balance reads
        websocket_url: WS(S) endpoint for newHeads (derived from rpc_url if unset)
        request_timeout: HTTP request timeout in seconds
    """

    rpc_url: str
    websocket_url: str | None = None
    request_timeout: int = 30

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.websocket_url is None:
            object.__setattr__(self, 'websocket_url', convert_to_websocket_url(self.rpc_url))
        elif urlparse(self.websocket_url).scheme not in ('ws', 'wss'):
            raise ValueError(
                f"Invalid WebSocket URL scheme: {urlparse(self.websocket_url).scheme}. "
                "Expected ws or wss"
            )

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class WatchConfig:
    """Configuration for block watching and processing."""

    mode: str = 'subscribe'  # 'subscribe' (newHeads) or 'poll'
    polling_interval: float = 4  # seconds between head polls
    sync_always: bool = False  # sync every contract on every block
    refresh_balance_on_poll: bool = False  # balance refresh on polled blocks too
    max_catchup_blocks: int = 10  # blocks emitted per poll cycle at most

    SUPPORTED_MODES: ClassVar[set[str]] = {'subscribe', 'poll'}

    def __post_init__(self) -> None:
        """Validate watch configuration."""
        if self.mode not in self.SUPPORTED_MODES:
            raise ValueError(
                f"Unsupported watch mode: {self.mode}. "
                f"Supported modes: {', '.join(sorted(self.SUPPORTED_MODES))}"
            )

        # Validate polling interval
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.max_catchup_blocks <= 0:
            raise ValueError(f"Max catch-up blocks must be positive, got {self.max_catchup_blocks}")
        if self.max_catchup_blocks > 1000:
            raise ValueError(f"Max catch-up blocks too high (max 1000), got {self.max_catchup_blocks}")


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    """Main configuration for the block watcher.

    Attributes:
        chain: Configuration for the watched chain
        watch: Configuration for block watching
        account: Checksummed address of the watched account (optional)
        registry_file: Path of the JSON contract/subscription registry (optional)
    """

    chain: ChainConfig
    watch: WatchConfig
    account: str | None = None
    registry_file: str | None = None

    def __post_init__(self) -> None:
        """Validate watcher configuration."""
        if self.account:
            if not Web3.is_address(self.account):
                raise ValueError(f"Invalid account address: {self.account}")

            checksummed = Web3.to_checksum_address(self.account)
            if checksummed != self.account:
                # Use object.__setattr__ since dataclass is frozen
                object.__setattr__(self, 'account', checksummed)

    @classmethod
    def from_env(cls, mode: str | None = None, sync_always: bool | None = None) -> "WatcherConfig":
        """Load configuration from environment variables.

        Args:
            mode: Overrides WATCH_MODE when given
            sync_always: Overrides SYNC_ALWAYS when given

        Returns:
            WatcherConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_url = os.environ.get("RPC_URL", "")
        if not rpc_url:
            raise ValueError(
                "RPC_URL environment variable is required. "
                "Example: https://ethereum-sepolia.publicnode.com"
            )

        chain_config = ChainConfig(
            rpc_url=rpc_url,
            websocket_url=os.environ.get("WS_URL") or None,
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
        )

        watch_config = WatchConfig(
            mode=mode or os.environ.get("WATCH_MODE", "subscribe"),
            polling_interval=float(os.environ.get("POLLING_INTERVAL", "4")),
            sync_always=sync_always if sync_always is not None else _env_flag("SYNC_ALWAYS"),
            refresh_balance_on_poll=_env_flag("REFRESH_BALANCE_ON_POLL"),
            max_catchup_blocks=int(os.environ.get("MAX_CATCHUP_BLOCKS", "10")),
        )

        return cls(
            chain=chain_config,
            watch=watch_config,
            account=os.environ.get("ACCOUNT_ADDRESS") or None,
            registry_file=os.environ.get("REGISTRY_FILE") or None,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Block Sync Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  WebSocket URL: {self.chain.websocket_url}")
        logger.info(f"  Request Timeout: {self.chain.request_timeout} seconds")

        logger.info("Watch Settings:")
        logger.info(f"  Mode: {self.watch.mode.upper()}")
        logger.info(f"  Polling Interval: {self.watch.polling_interval} seconds")
        logger.info(f"  Sync Always: {self.watch.sync_always}")
        logger.info(f"  Balance Refresh On Poll: {self.watch.refresh_balance_on_poll}")
        logger.info(f"  Max Catch-up Blocks: {self.watch.max_catchup_blocks}")

        logger.info(f"Account: {self.account or '[NOT SET]'}")
        logger.info(f"Registry File: {self.registry_file or '[NOT SET]'}")
        logger.info("=" * 60)
