"""
Exception hierarchy for block-sync.

Producer failures end a single block stream, processing failures affect a
single block, and stop failures are swallowed by the poll source. None of
these escape the Coordinator; they reach consumers as failure events:

  ProducerError     -> BlocksFailed (stream is closed afterwards)
  ProcessingError   -> BlockFailed  (next block is processed normally)
  TrackerStopError  -> never surfaced
"""

from typing import Any


class BlockSyncError(Exception):
    """Base exception for all block-sync errors."""

    error_code: str = "block_sync_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ProducerError(BlockSyncError):
    """A block subscription or poller could not be set up or lost its transport."""

    error_code = "producer_error"


class ProcessingError(BlockSyncError):
    """Deriving the sync request for one block failed."""

    error_code = "processing_error"

    def __init__(
        self,
        message: str,
        block_number: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if block_number is not None:
            details["block_number"] = block_number
        super().__init__(message, details)
        self.block_number = block_number


class MalformedDataError(ProcessingError):
    """A provider payload is missing a required field."""

    error_code = "malformed_data"


class TrackerStopError(BlockSyncError):
    """Stopping a block tracker that has no outstanding poll loop."""

    error_code = "tracker_not_running"
