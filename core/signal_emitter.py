"""
Signal creation and hand-off.

Builds the Signal with its contributing wallets and target levels, persists
all three as one unit of work, then publishes the new-signal notification.
The stored signal is the source of truth: a notification failure is logged
and never undoes or retries the persisted record.

Usage:
    emitter = SignalEmitter(store, publisher)
    signal = await emitter.emit(pair, direction, aggregate.positions, config, now_ms)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from bot_logging.logger_manager import setup_module_logger
from core.metrics import calculate_signal_metrics
from core.notifications import build_signal_notification
from core.targets import calculate_target_levels
from shared.errors import DuplicateSignalError
from shared.types import (
    DetectionConfig,
    PositionDirection,
    Signal,
    SignalStatus,
    SignalWallet,
    TargetLevels,
    WalletPosition,
)

if TYPE_CHECKING:
    from core.notifications import NotificationPublisher
    from core.signal_store import SignalStore


def _new_signal_id() -> str:
    return str(uuid.uuid4())


class SignalEmitter:
    """Persists signals atomically and publishes best-effort notifications."""

    def __init__(
        self,
        store: SignalStore,
        publisher: NotificationPublisher,
        id_factory: Callable[[], str] = _new_signal_id,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._id_factory = id_factory

        self._logger = setup_module_logger(
            "signal_emitter", "signal_emitter.log", module_folder="Signal_Emitter_Logs"
        )

    async def emit(
        self,
        pair: str,
        direction: PositionDirection,
        positions: Sequence[WalletPosition],
        config: DetectionConfig,
        now_ms: int,
    ) -> Signal | None:
        """
        Create, persist and announce a signal.

        Returns the stored Signal, or None if the storage-level cooldown
        check found a signal created concurrently for the same pair/direction.
        Storage errors propagate so the triggering event is retried.
        """
        metrics = calculate_signal_metrics(positions)
        levels = calculate_target_levels(
            direction,
            metrics.avg_entry_price,
            config.stop_loss_percent,
            config.take_profit_percents,
        )

        created = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
        signal = Signal(
            signal_id=self._id_factory(),
            pair=pair,
            direction=direction,
            entry_timestamp=created.isoformat(),
            entry_price=metrics.avg_entry_price,
            avg_trade_size=metrics.avg_trade_size,
            stop_loss_percent=levels.stop_loss_percent,
            take_profit_percents=tuple(t.target_percent for t in levels.targets),
            status=SignalStatus.OPEN,
            created_at=now_ms,
        )
        wallets = [
            SignalWallet(
                wallet_address=pos.wallet_address,
                entry_price=pos.entry_price,
                trade_size=pos.trade_size,
                leverage=pos.leverage,
            )
            for pos in positions
        ]

        try:
            await self._store.save_signal_bundle(
                signal, wallets, levels.targets, config.cooldown_ms
            )
        except DuplicateSignalError as exc:
            self._logger.info(
                "Signal cooldown active for %s %s at persist time, skipping duplicate: %s",
                pair,
                direction.value,
                exc,
            )
            return None

        self._logger.info(
            "Generated signal %s: %s %s with %d wallets at %.2f "
            "(avg size %s, avg leverage %.2fx, notional %.2f)",
            signal.signal_id,
            pair,
            direction.value,
            len(wallets),
            metrics.avg_entry_price,
            metrics.avg_trade_size,
            metrics.avg_leverage,
            metrics.total_notional,
        )

        await self._notify(signal, levels, len(wallets), created)
        return signal

    async def _notify(
        self, signal: Signal, levels: TargetLevels, wallet_count: int, created: datetime
    ) -> None:
        try:
            event = build_signal_notification(signal, levels, wallet_count, created)
            await self._publisher.publish(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error(
                "Failed to send notification for signal %s: %s",
                signal.signal_id,
                exc,
                exc_info=True,
            )
            return
        self._logger.debug("Notification queued for signal %s", signal.signal_id)
