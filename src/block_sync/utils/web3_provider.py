"""
web3.py chain provider.

Implements the ChainProvider protocol on top of AsyncWeb3: HTTP for block,
log and balance reads, WebSocket (subscription manager) for newHeads.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from aiohttp import ClientTimeout
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.providers import WebSocketProvider
from web3.utils.subscriptions import NewHeadsSubscription, NewHeadsSubscriptionContext

from ..exceptions import MalformedDataError, ProducerError
from ..models import Block, BlockHeader, LogEntry


def convert_to_websocket_url(http_url: str) -> str:
    """Convert HTTP RPC URL to WebSocket URL."""
    if http_url.startswith("https://"):
        return http_url.replace("https://", "wss://", 1)
    if http_url.startswith("http://"):
        return http_url.replace("http://", "ws://", 1)
    return http_url


class Web3ChainProvider:
    """
    Chain provider backed by web3.py.

    Every newHeads subscription gets its own WebSocket connection, so closing
    one subscription never disturbs another.
    """

    def __init__(
        self,
        rpc_url: str,
        websocket_url: str | None = None,
        request_timeout: int = 30
    ) -> None:
        """
        Initialize the provider.

        Args:
            rpc_url: HTTP RPC endpoint URL
            websocket_url: WebSocket RPC endpoint URL (derived from rpc_url if not provided)
            request_timeout: Request timeout in seconds for HTTP and WebSocket calls
        """
        self.rpc_url = rpc_url
        self.websocket_url = websocket_url or convert_to_websocket_url(rpc_url)
        self.request_timeout = request_timeout

        self.w3 = AsyncWeb3(AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': ClientTimeout(total=request_timeout)},
        ))

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def subscribe_new_headers(
        self,
        on_data: Callable[[BlockHeader], None],
        on_error: Callable[[BaseException], None],
    ) -> Callable[[], Any]:
        """
        Open a newHeads subscription on a dedicated WebSocket connection.

        Args:
            on_data: Called with every header received
            on_error: Called once if the subscription fails after being set up

        Returns:
            Coroutine function that unsubscribes and disconnects

        Raises:
            Exception: Connection or subscribe errors during setup
        """
        self.logger.info(f"Connecting to WebSocket: {self.websocket_url}")
        w3 = AsyncWeb3(
            WebSocketProvider(
                self.websocket_url,
                request_timeout=self.request_timeout,
                subscription_response_queue_size=10000,
            )
        )
        await w3.provider.connect()

        async def handler(handler_context: NewHeadsSubscriptionContext) -> None:
            try:
                header = BlockHeader.from_web3(handler_context.result)
            except MalformedDataError as e:
                self.logger.warning(f"Ignoring malformed block header: {e}")
                return
            on_data(header)

        subscription = NewHeadsSubscription(label="new-heads", handler=handler)
        try:
            await w3.subscription_manager.subscribe([subscription])
        except (Exception, asyncio.CancelledError):
            await w3.provider.disconnect()
            raise
        self.logger.info("Subscribed to new block headers")

        closing = False

        def on_done(task: asyncio.Task) -> None:
            if closing or task.cancelled():
                return
            error = task.exception()
            if error is None:
                error = ProducerError("Block header subscription ended unexpectedly")
            on_error(error)

        listen_task = asyncio.create_task(w3.subscription_manager.handle_subscriptions())
        listen_task.add_done_callback(on_done)

        async def unsubscribe() -> None:
            nonlocal closing
            closing = True
            self.logger.info("Unsubscribing from new block headers")
            listen_task.cancel()
            try:
                await listen_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.logger.debug(f"Subscription task ended with error: {e}")
            try:
                await w3.subscription_manager.unsubscribe(subscription)
            except Exception as e:
                self.logger.warning(f"Error during unsubscribe: {e}")
            finally:
                await w3.provider.disconnect()

        return unsubscribe

    async def get_block(self, number: int | str, full_transactions: bool = True) -> Block:
        data = await self.w3.eth.get_block(number, full_transactions=full_transactions)
        return Block.from_web3(data)

    async def get_block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_past_logs(
        self,
        from_block: int,
        to_block: int,
        topics: Sequence[str | None],
    ) -> list[LogEntry]:
        logs = await self.w3.eth.get_logs({
            'fromBlock': from_block,
            'toBlock': to_block,
            'topics': list(topics),
        })
        return [LogEntry.from_web3(log) for log in logs]

    async def get_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    def checksum_address(self, address: str) -> str:
        return Web3.to_checksum_address(address)

    async def close(self) -> None:
        """Release the HTTP session."""
        try:
            if hasattr(self.w3.provider, 'disconnect'):
                await self.w3.provider.disconnect()
        except Exception as e:
            self.logger.warning(f"Error during cleanup: {e}")
