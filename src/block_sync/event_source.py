"""
Push-subscription block source.

Wraps the provider's newHeads subscription in a BlockStream of
BlockReceived events. The consumer fetches the full block for each header.
"""

import logging
from typing import TYPE_CHECKING

from .events import BlockReceived
from .exceptions import ProducerError
from .models import BlockHeader
from .stream import BlockStream

if TYPE_CHECKING:
    from .interfaces import ChainProvider

logger = logging.getLogger(__name__)


class ChainEventSource:
    """Producer of BlockReceived events from a newHeads subscription."""

    LABEL = "new-heads"

    def __init__(self, provider: "ChainProvider") -> None:
        self.provider = provider

    async def open(self) -> BlockStream:
        """
        Subscribe to new block headers.

        A subscription error, whether raised while subscribing or reported
        later by the provider, is emitted once as BlocksFailed and ends the
        stream. Closing the stream unsubscribes exactly once.

        Returns:
            The stream handle; the caller must close it when done
        """
        stream = BlockStream(self.LABEL)

        def on_data(header: BlockHeader) -> None:
            stream.emit(BlockReceived(header=header))

        def on_error(error: BaseException) -> None:
            logger.error(f"Error in block header subscription: {error}")
            stream.fail(_as_producer_error(error))

        logger.info("Subscribing to new block headers")
        try:
            unsubscribe = await self.provider.subscribe_new_headers(on_data, on_error)
        except Exception as e:
            logger.error(f"Block header subscription failed: {e}", exc_info=True)
            stream.fail(_as_producer_error(e))
            return stream

        stream.on_close(unsubscribe)
        return stream


def _as_producer_error(error: BaseException) -> ProducerError:
    if isinstance(error, ProducerError):
        return error
    producer_error = ProducerError(
        f"Block header subscription failed: {error}",
        details={"cause": type(error).__name__},
    )
    producer_error.__cause__ = error
    return producer_error
