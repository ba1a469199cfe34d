"""
Unit tests for core/event_queue.py.

Tests verify batch draining, in-flight tracking, retry with attempt
counting, and dead-lettering.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest


def _make_queue(max_attempts: int = 3):
    """Create an InMemoryEventQueue with patched logger."""
    with patch("core.event_queue.setup_module_logger") as mock_logger:
        mock_logger.return_value = MagicMock()
        from core.event_queue import InMemoryEventQueue

        return InMemoryEventQueue(max_attempts=max_attempts)


class TestReceiveBatch:

    @pytest.mark.asyncio
    async def test_empty_queue_times_out_with_empty_batch(self):
        events = _make_queue()
        assert await events.receive_batch(10, wait_seconds=0.01) == []

    @pytest.mark.asyncio
    async def test_batch_capped_at_max_size(self):
        events = _make_queue()
        for i in range(5):
            await events.publish({"n": i})

        batch = await events.receive_batch(3, wait_seconds=0.01)
        assert [m.body["n"] for m in batch] == [0, 1, 2]
        assert events.qsize() == 2
        assert events.in_flight == 3

    @pytest.mark.asyncio
    async def test_new_messages_start_at_first_attempt(self):
        events = _make_queue()
        message = await events.publish({"n": 1})
        assert message.attempts == 1
        assert message.message_id


class TestAcknowledgement:

    @pytest.mark.asyncio
    async def test_ack_clears_in_flight(self):
        events = _make_queue()
        await events.publish({"n": 1})
        [message] = await events.receive_batch(10, wait_seconds=0.01)

        events.ack(message)
        assert events.in_flight == 0
        assert events.qsize() == 0

    @pytest.mark.asyncio
    async def test_retry_requeues_with_incremented_attempts(self):
        events = _make_queue()
        await events.publish({"n": 1})
        [message] = await events.receive_batch(10, wait_seconds=0.01)

        events.retry(message)
        [again] = await events.receive_batch(10, wait_seconds=0.01)
        assert again.message_id == message.message_id
        assert again.attempts == 2

    @pytest.mark.asyncio
    async def test_retry_dead_letters_after_max_attempts(self):
        events = _make_queue(max_attempts=2)
        await events.publish({"n": 1})

        [message] = await events.receive_batch(10, wait_seconds=0.01)
        events.retry(message)
        [message] = await events.receive_batch(10, wait_seconds=0.01)
        events.retry(message)

        assert events.qsize() == 0
        assert events.in_flight == 0
        [(dead, reason)] = events.dead_letters
        assert dead.message_id == message.message_id
        assert "2 delivery attempts" in reason

    @pytest.mark.asyncio
    async def test_dead_letter_records_reason(self):
        events = _make_queue()
        await events.publish({"bad": True})
        [message] = await events.receive_batch(10, wait_seconds=0.01)

        events.dead_letter(message, "invalid position event")
        assert events.dead_letters == [(message, "invalid position event")]
        assert events.in_flight == 0
        events._logger.warning.assert_called_once()
