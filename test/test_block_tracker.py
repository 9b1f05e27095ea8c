#!/usr/bin/env python3
"""Tests for the polling BlockTracker."""

import asyncio

import pytest

from block_sync.exceptions import TrackerStopError
from block_sync.utils.block_tracker import BlockTracker

from conftest import make_block


@pytest.fixture
def tracker(provider):
    """Tracker with a long interval so only explicit polls emit blocks."""
    return BlockTracker(provider, polling_interval=60, max_catchup_blocks=3)


def record_numbers(tracker: BlockTracker) -> list[int]:
    numbers: list[int] = []
    tracker.on_block(lambda block: numbers.append(block.number))
    return numbers


class TestBlockTracker:
    """Tests for tracker start, polling and stop."""

    def test_invalid_arguments(self, provider):
        """Non-positive interval or catch-up bound is rejected."""
        with pytest.raises(ValueError, match="Polling interval must be positive"):
            BlockTracker(provider, polling_interval=0)
        with pytest.raises(ValueError, match="Max catch-up blocks must be positive"):
            BlockTracker(provider, max_catchup_blocks=0)

    @pytest.mark.asyncio
    async def test_start_emits_latest_block(self, provider, tracker):
        """The head block at start is emitted once."""
        provider.add_block(make_block(5))
        numbers = record_numbers(tracker)

        await tracker.start()
        try:
            assert numbers == [5]
            status = tracker.get_status()
            assert status["is_running"] is True
            assert status["last_block_number"] == 5
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self, provider, tracker):
        """A failed first fetch raises and leaves the tracker stopped."""
        provider.block_errors[0] = ConnectionError("rpc down")

        with pytest.raises(ConnectionError):
            await tracker.start()

        assert tracker.is_running is False
        with pytest.raises(TrackerStopError):
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_double_start_rejected(self, provider, tracker):
        """Starting a running tracker is an error."""
        await tracker.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                await tracker.start()
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_poll_without_new_blocks(self, provider, tracker):
        """No head movement emits nothing."""
        provider.add_block(make_block(5))
        numbers = record_numbers(tracker)
        await tracker.start()
        try:
            assert await tracker.poll_once() == 0
            assert numbers == [5]
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_poll_catches_up_every_block(self, provider, tracker):
        """All blocks between the last seen head and the new head are emitted in order."""
        provider.add_block(make_block(5))
        numbers = record_numbers(tracker)
        await tracker.start()
        try:
            provider.head = 7
            assert await tracker.poll_once() == 2
            assert numbers == [5, 6, 7]
            assert tracker.last_block_number == 7
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_poll_catch_up_is_bounded(self, provider, tracker, caplog):
        """Large gaps only emit the most recent max_catchup_blocks blocks."""
        provider.add_block(make_block(5))
        numbers = record_numbers(tracker)
        await tracker.start()
        try:
            provider.head = 20
            assert await tracker.poll_once() == 3
            assert numbers == [5, 18, 19, 20]
            assert "skipping blocks 6-17" in caplog.text
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_failed_fetch_resumes_from_that_block(self, provider, tracker):
        """A block fetch error keeps the blocks emitted so far and retries the rest."""
        provider.add_block(make_block(5))
        numbers = record_numbers(tracker)
        await tracker.start()
        try:
            provider.head = 7
            provider.block_errors[7] = TimeoutError("timed out")
            with pytest.raises(TimeoutError):
                await tracker.poll_once()
            assert numbers == [5, 6]

            del provider.block_errors[7]
            assert await tracker.poll_once() == 1
            assert numbers == [5, 6, 7]
        finally:
            await tracker.stop()

    @pytest.mark.asyncio
    async def test_no_blocks_after_stop(self, provider, tracker):
        """A stopped tracker never calls its listeners again."""
        numbers = record_numbers(tracker)
        await tracker.start()
        await tracker.stop()

        provider.head = 4
        assert await tracker.poll_once() == 0
        assert numbers == [0]

    @pytest.mark.asyncio
    async def test_stop_twice_raises_tracker_stop_error(self, tracker):
        """Only the first stop succeeds."""
        await tracker.start()
        await tracker.stop()

        with pytest.raises(TrackerStopError):
            await tracker.stop()

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_poll_loop_emits_new_blocks(self, provider):
        """The background loop picks up head changes on its own."""
        tracker = BlockTracker(provider, polling_interval=0.01)
        seen = asyncio.Event()
        tracker.on_block(lambda block: seen.set() if block.number == 3 else None)

        await tracker.start()
        try:
            provider.head = 3
            await asyncio.wait_for(seen.wait(), timeout=2.0)
        finally:
            await tracker.stop()
