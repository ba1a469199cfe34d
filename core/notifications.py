"""
New-signal notification rendering and publishing.

The rendered message is the complete human-readable alert; the chat_id is a
placeholder the downstream notifier replaces with its configured destination.

Publishers:
    QueueNotificationPublisher  -- in-process asyncio.Queue (default)
    HttpNotificationPublisher   -- POSTs the JSON payload to a notifier endpoint

Usage:
    event = build_signal_notification(signal, levels, wallet_count)
    await publisher.publish(event)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

import aiohttp

from bot_logging.logger_manager import setup_module_logger
from shared.constants import (
    LONG_INDICATOR,
    NOTIFICATION_CHAT_PLACEHOLDER,
    NOTIFICATION_TYPE_NEW_SIGNAL,
    SHORT_INDICATOR,
)
from shared.errors import NotificationError
from shared.serialization_utils import dumps
from shared.types import NotificationEvent, PositionDirection, Signal, TargetLevels


def _money(value: Decimal) -> str:
    return f"${value:.2f}"


def _pct(value: Decimal) -> str:
    return f"{value:.1f}%"


def render_signal_message(
    signal: Signal,
    levels: TargetLevels,
    wallet_count: int,
    rendered_at: datetime | None = None,
) -> str:
    indicator = LONG_INDICATOR if signal.direction is PositionDirection.LONG else SHORT_INDICATOR
    rendered_at = rendered_at or datetime.now(timezone.utc)

    lines = [
        f"{indicator} **NEW SIGNAL DETECTED** {indicator}",
        "",
        f"**Pair:** {signal.pair}",
        f"**Direction:** {signal.direction.value}",
        f"**Entry Price:** {_money(signal.entry_price)}",
        f"**Wallets:** {wallet_count}",
        "",
        f"**Stop Loss:** {_money(levels.stop_loss_price)} ({_pct(levels.stop_loss_percent)})",
        "**Take Profits:**",
    ]
    for target in levels.targets:
        lines.append(
            f"  TP{target.target_index + 1}: {_money(target.target_price)} "
            f"({_pct(target.target_percent)})"
        )
    lines += [
        "",
        f"**Signal ID:** {signal.signal_id}",
        f"**Time:** {rendered_at.isoformat()}",
    ]
    return "\n".join(lines)


def build_signal_notification(
    signal: Signal,
    levels: TargetLevels,
    wallet_count: int,
    rendered_at: datetime | None = None,
) -> NotificationEvent:
    return NotificationEvent(
        type=NOTIFICATION_TYPE_NEW_SIGNAL,
        message=render_signal_message(signal, levels, wallet_count, rendered_at),
        chat_id=NOTIFICATION_CHAT_PLACEHOLDER,
        signal_id=signal.signal_id,
    )


# ---------------------------------------------------------------------------
# Publishers
# ---------------------------------------------------------------------------


class NotificationPublisher(Protocol):
    async def publish(self, event: NotificationEvent) -> None: ...


class QueueNotificationPublisher:
    """Hands notification events to an asyncio.Queue consumed by the notifier."""

    def __init__(self, queue: asyncio.Queue[NotificationEvent] | None = None) -> None:
        self.queue: asyncio.Queue[NotificationEvent] = (
            queue if queue is not None else asyncio.Queue()
        )

    async def publish(self, event: NotificationEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull as exc:
            raise NotificationError(
                f"Notification queue full, dropped signal {event.signal_id}"
            ) from exc


class HttpNotificationPublisher:
    """POSTs notification payloads as JSON to a notifier endpoint."""

    def __init__(
        self,
        url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Args:
            url: Notifier endpoint receiving the JSON payload.
            session: Shared aiohttp session (created internally if None).
            timeout_seconds: Total request timeout.
        """
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        self._logger = setup_module_logger(
            "notifications", "notifications.log", module_folder="Notification_Logs"
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def publish(self, event: NotificationEvent) -> None:
        session = await self._get_session()
        try:
            async with session.post(
                self._url,
                data=dumps(event.to_payload()),
                headers={"Content-Type": "application/json"},
            ) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise NotificationError(
                        f"Notifier returned HTTP {resp.status} for signal "
                        f"{event.signal_id}: {body[:200]}"
                    )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise NotificationError(
                f"Notifier request failed for signal {event.signal_id}: {exc}"
            ) from exc
        self._logger.debug("Notification delivered to notifier: %s", event.signal_id)
