#!/usr/bin/env python3
"""Tests for the configuration module."""

import logging
import os
from unittest.mock import patch

import pytest

from block_sync.config import ChainConfig, WatchConfig, WatcherConfig

from conftest import ACCOUNT


class TestChainConfig:
    """Tests for ChainConfig."""

    def test_valid_chain_config(self):
        """Test creating a valid chain configuration."""
        config = ChainConfig(rpc_url="https://ethereum.publicnode.com")

        assert config.rpc_url == "https://ethereum.publicnode.com"
        assert config.websocket_url == "wss://ethereum.publicnode.com"
        assert config.request_timeout == 30

    def test_http_derives_ws(self):
        """Plain HTTP endpoints derive a ws:// subscription endpoint."""
        config = ChainConfig(rpc_url="http://localhost:8545")

        assert config.websocket_url == "ws://localhost:8545"

    def test_explicit_websocket_url(self):
        config = ChainConfig(rpc_url="https://rpc.example", websocket_url="wss://ws.example")

        assert config.websocket_url == "wss://ws.example"

    def test_invalid_rpc_url_scheme(self):
        """Test that invalid RPC URL schemes are rejected."""
        with pytest.raises(ValueError, match="Invalid RPC URL scheme"):
            ChainConfig(rpc_url="ftp://invalid.scheme")

    def test_invalid_websocket_url_scheme(self):
        with pytest.raises(ValueError, match="Invalid WebSocket URL scheme"):
            ChainConfig(rpc_url="https://rpc.example", websocket_url="https://ws.example")

    def test_missing_rpc_url(self):
        """Test that missing RPC URL raises an error."""
        with pytest.raises(ValueError, match="RPC URL is required"):
            ChainConfig(rpc_url="")

    @pytest.mark.parametrize("timeout", [0, -1, 121])
    def test_request_timeout_bounds(self, timeout):
        with pytest.raises(ValueError, match="Request timeout"):
            ChainConfig(rpc_url="https://rpc.example", request_timeout=timeout)


class TestWatchConfig:
    """Tests for WatchConfig."""

    def test_defaults(self):
        """Test default watch settings."""
        config = WatchConfig()

        assert config.mode == "subscribe"
        assert config.polling_interval == 4
        assert config.sync_always is False
        assert config.refresh_balance_on_poll is False
        assert config.max_catchup_blocks == 10

    def test_unsupported_mode(self):
        with pytest.raises(ValueError, match="Unsupported watch mode"):
            WatchConfig(mode="stream")

    @pytest.mark.parametrize("interval", [0, -2, 301])
    def test_polling_interval_bounds(self, interval):
        with pytest.raises(ValueError, match="Polling interval"):
            WatchConfig(polling_interval=interval)

    @pytest.mark.parametrize("blocks", [0, 1001])
    def test_max_catchup_bounds(self, blocks):
        with pytest.raises(ValueError, match="Max catch-up blocks"):
            WatchConfig(max_catchup_blocks=blocks)


class TestWatcherConfig:
    """Tests for WatcherConfig."""

    def test_checksum_account_conversion(self):
        """Test that the account is converted to checksum format."""
        config = WatcherConfig(
            chain=ChainConfig(rpc_url="https://test.rpc"),
            watch=WatchConfig(),
            account=ACCOUNT.lower(),
        )

        assert config.account == ACCOUNT

    def test_invalid_account(self):
        with pytest.raises(ValueError, match="Invalid account address"):
            WatcherConfig(
                chain=ChainConfig(rpc_url="https://test.rpc"),
                watch=WatchConfig(),
                account="0xnot-an-address",
            )

    @patch.dict(os.environ, {
        "RPC_URL": "https://ethereum.publicnode.com",
        "WATCH_MODE": "poll",
        "POLLING_INTERVAL": "2.5",
        "SYNC_ALWAYS": "true",
        "REFRESH_BALANCE_ON_POLL": "1",
        "MAX_CATCHUP_BLOCKS": "25",
        "REQUEST_TIMEOUT": "15",
        "ACCOUNT_ADDRESS": ACCOUNT.lower(),
        "REGISTRY_FILE": "registry.json",
    }, clear=True)
    def test_from_env_complete(self):
        """Test loading a complete configuration from environment."""
        config = WatcherConfig.from_env()

        assert config.chain.rpc_url == "https://ethereum.publicnode.com"
        assert config.chain.websocket_url == "wss://ethereum.publicnode.com"
        assert config.chain.request_timeout == 15
        assert config.watch.mode == "poll"
        assert config.watch.polling_interval == 2.5
        assert config.watch.sync_always is True
        assert config.watch.refresh_balance_on_poll is True
        assert config.watch.max_catchup_blocks == 25
        assert config.account == ACCOUNT
        assert config.registry_file == "registry.json"

    @patch.dict(os.environ, {"RPC_URL": "https://rpc.example"}, clear=True)
    def test_from_env_minimal(self):
        """Only RPC_URL is required."""
        config = WatcherConfig.from_env()

        assert config.watch.mode == "subscribe"
        assert config.watch.sync_always is False
        assert config.account is None
        assert config.registry_file is None

    @patch.dict(os.environ, {"RPC_URL": "https://rpc.example", "WATCH_MODE": "poll", "SYNC_ALWAYS": "no"}, clear=True)
    def test_from_env_overrides(self):
        """Explicit arguments win over the environment."""
        config = WatcherConfig.from_env(mode="subscribe", sync_always=True)

        assert config.watch.mode == "subscribe"
        assert config.watch.sync_always is True

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_missing_rpc_url(self):
        """Test that missing RPC_URL raises an error."""
        with pytest.raises(ValueError, match="RPC_URL environment variable is required"):
            WatcherConfig.from_env()

    def test_log_config(self, caplog):
        """Test that config can be logged without errors."""
        config = WatcherConfig(
            chain=ChainConfig(rpc_url="https://test.rpc"),
            watch=WatchConfig(mode="poll"),
        )

        with caplog.at_level(logging.INFO):
            config.log_config()

        assert "Block Sync Configuration" in caplog.text
        assert "Mode: POLL" in caplog.text
        assert "Account: [NOT SET]" in caplog.text
