"""
In-process batch transport for position events.

asyncio.Queue-backed, at-least-once delivery with per-message ack/retry,
mirroring a hosted batch queue: a retried message goes back on the queue
with its attempt counter incremented and is dead-lettered once it exceeds
max_attempts.

Usage:
    events = InMemoryEventQueue(max_attempts=5)
    await events.publish({"type": "position_update", "data": {...}})
    batch = await events.receive_batch(max_batch_size=10, wait_seconds=5)
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Protocol

from bot_logging.logger_manager import setup_module_logger
from shared.constants import DEFAULT_MAX_DELIVERY_ATTEMPTS
from shared.types import QueueMessage


class BatchTransport(Protocol):
    async def receive_batch(
        self, max_batch_size: int, wait_seconds: float
    ) -> list[QueueMessage]: ...

    def ack(self, message: QueueMessage) -> None: ...

    def retry(self, message: QueueMessage) -> None: ...

    def dead_letter(self, message: QueueMessage, reason: str) -> None: ...


class InMemoryEventQueue:
    """Batch transport over asyncio.Queue with a dead-letter list."""

    def __init__(self, max_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS) -> None:
        self._queue: asyncio.Queue[QueueMessage] = asyncio.Queue()
        self._max_attempts = max_attempts
        self._in_flight: dict[str, QueueMessage] = {}
        self.dead_letters: list[tuple[QueueMessage, str]] = []

        self._logger = setup_module_logger(
            "event_queue", "event_queue.log", module_folder="Event_Queue_Logs"
        )

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def publish(self, body: dict[str, Any]) -> QueueMessage:
        message = QueueMessage(message_id=str(uuid.uuid4()), body=body)
        await self._queue.put(message)
        return message

    async def receive_batch(self, max_batch_size: int, wait_seconds: float) -> list[QueueMessage]:
        """
        Wait up to wait_seconds for the first message, then drain whatever
        else is immediately available up to max_batch_size.
        """
        batch: list[QueueMessage] = []
        try:
            first = await asyncio.wait_for(self._queue.get(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            return batch
        batch.append(first)

        while len(batch) < max_batch_size:
            try:
                batch.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break

        for message in batch:
            self._in_flight[message.message_id] = message
        return batch

    def ack(self, message: QueueMessage) -> None:
        self._in_flight.pop(message.message_id, None)

    def retry(self, message: QueueMessage) -> None:
        self._in_flight.pop(message.message_id, None)
        if message.attempts >= self._max_attempts:
            self.dead_letter(message, f"exceeded {self._max_attempts} delivery attempts")
            return
        message.attempts += 1
        self._queue.put_nowait(message)
        self._logger.debug(
            "Message %s requeued (attempt %d)", message.message_id, message.attempts
        )

    def dead_letter(self, message: QueueMessage, reason: str) -> None:
        self._in_flight.pop(message.message_id, None)
        self.dead_letters.append((message, reason))
        self._logger.warning("Message %s dead-lettered: %s", message.message_id, reason)
