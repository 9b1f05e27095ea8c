#!/usr/bin/env python3
"""Entry point for the block-sync watcher.

Watches the configured chain for new blocks and logs every batch-sync
request, balance update and failure. Host applications embed
``block_sync.Coordinator`` directly; this runner is for operating and
debugging a registry file against a live node.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from block_sync.config import WatcherConfig
from block_sync.coordinator import Coordinator
from block_sync.events import (
    AppReady,
    BalanceUpdated,
    BatchCallRequest,
    BlockFailed,
    BlocksFailed,
    BlocksListening,
    BlocksPolling,
    ChainEvent,
    ContractSyncing,
)
from block_sync.registry import ContractStore, SubscriptionStore, load_registry_file
from block_sync.utils.web3_provider import Web3ChainProvider


async def log_event(event: ChainEvent) -> None:
    """Event sink that reports block-sync events through logging."""
    match event:
        case BatchCallRequest(request=request) if request:
            for subscription in request:
                logger.info(f"Sync {subscription.key}: {', '.join(subscription.addresses)}")
        case ContractSyncing(contract=contract):
            logger.info(f"Sync contract: {contract}")
        case BalanceUpdated(balance=balance):
            logger.info(f"Account balance: {balance} wei")
        case BlocksFailed(error=error):
            logger.error(f"Block producer failed: {error}")
        case BlockFailed(error=error):
            logger.error(f"Block processing failed: {error}")
        case _:
            logger.debug(f"Event: {event.type.value}")


async def main() -> None:
    """Main entry point for the block-sync watcher.

    Parses startup arguments, loads configuration from environment,
    and runs the coordinator until interrupted.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()

    # Parse startup arguments
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Block-sync watcher - detect which tracked contracts each new block touched",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_URL                 - HTTP RPC endpoint of the watched chain
  WS_URL                  - WebSocket endpoint (default: derived from RPC_URL)
  ACCOUNT_ADDRESS         - Watched account (overrides the registry file)
  REGISTRY_FILE           - JSON file with contracts and subscriptions
  WATCH_MODE              - subscribe or poll (default: subscribe)
  POLLING_INTERVAL        - Block polling interval in seconds (default: 4)
  SYNC_ALWAYS             - Sync every contract on every block (default: false)
  REFRESH_BALANCE_ON_POLL - Refresh balance on polled blocks (default: false)
  MAX_CATCHUP_BLOCKS      - Blocks emitted per poll cycle at most (default: 10)
  REQUEST_TIMEOUT         - RPC request timeout in seconds (default: 30)
  LOG_LEVEL               - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--mode",
        choices=["subscribe", "poll"],
        default=None,
        help="Watch blocks via newHeads subscription or polling (default: WATCH_MODE)"
    )
    parser.add_argument(
        "--sync-always",
        action="store_true",
        default=None,
        help="Sync every registered contract on every block"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)
    logger.info("=== Block Sync Watcher Starting ===")

    provider: Web3ChainProvider | None = None
    coordinator: Coordinator | None = None
    try:
        config: WatcherConfig = WatcherConfig.from_env(mode=args.mode, sync_always=args.sync_always)
        config.log_config()

        if config.registry_file:
            contracts, subscriptions = load_registry_file(config.registry_file)
        else:
            logger.warning("No REGISTRY_FILE set; watching with an empty registry")
            contracts, subscriptions = ContractStore(), SubscriptionStore()
        if config.account:
            subscriptions.set_account(config.account)

        provider = Web3ChainProvider(
            rpc_url=config.chain.rpc_url,
            websocket_url=config.chain.websocket_url,
            request_timeout=config.chain.request_timeout,
        )
        coordinator = Coordinator(
            provider,
            contracts,
            subscriptions,
            log_event,
            sync_always=config.watch.sync_always,
            polling_interval=config.watch.polling_interval,
            refresh_balance_on_poll=config.watch.refresh_balance_on_poll,
            max_catchup_blocks=config.watch.max_catchup_blocks,
        )

        await coordinator.start()
        await coordinator.dispatch(AppReady())
        if config.watch.mode == "poll":
            await coordinator.dispatch(BlocksPolling())
        else:
            await coordinator.dispatch(BlocksListening())

        logger.info("Watching for blocks...")
        await coordinator.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RPC_URL: HTTP RPC endpoint of the watched chain")
        logger.error("  - ACCOUNT_ADDRESS: Watched account address")
        logger.error("  - REGISTRY_FILE: JSON file with contracts and subscriptions")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)

    finally:
        if coordinator is not None:
            await coordinator.shutdown()
        if provider is not None:
            await provider.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)
