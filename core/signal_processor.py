"""
Coordinated-position signal processor.

Consumes batches of position-update events and, for each one, decides
whether enough distinct wallets opened the same pair/direction recently to
raise a signal:

    1. Position Source   -- recent positions for pair/direction in the window
    2. Eligibility       -- minimum trade size and leverage
    3. Wallet Aggregator -- latest position per wallet, distinct wallet count
    4. Threshold         -- wallet_count >= configured minimum
    5. Cooldown          -- no signal for pair/direction in the last 5 minutes
    6-8. Emit            -- metrics, targets, atomic persist, notification

Every message gets an explicit ProcessingOutcome. Detection config is loaded
once per batch; if that fails no message is processed and all are retried.

Usage:
    processor = SignalProcessor(store, emitter)
    asyncio.create_task(processor.run(event_queue))
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from bot_logging.logger_manager import (
    log_data_entry,
    log_data_output,
    log_data_processing,
    setup_module_logger,
)
from config.validate import load_detection_config
from core.cooldown import CooldownGuard
from core.correlation import aggregate_by_wallet, filter_eligible_positions, meets_wallet_threshold
from shared.constants import DEFAULT_BATCH_WAIT_SECONDS, DEFAULT_MAX_BATCH_SIZE
from shared.errors import PositionValidationError, SignalInvariantError
from shared.types import (
    DetectionConfig,
    PositionDirection,
    ProcessingOutcome,
    QueueMessage,
    Signal,
    WalletPosition,
)

if TYPE_CHECKING:
    from core.event_queue import BatchTransport
    from core.signal_emitter import SignalEmitter
    from core.signal_store import SignalStore

_REQUIRED_FIELDS = (
    "wallet_address",
    "pair",
    "entry_price",
    "trade_size",
    "leverage",
    "entry_timestamp",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Inbound event parsing
# ---------------------------------------------------------------------------


def _parse_decimal(data: Mapping[str, Any], key: str) -> Decimal:
    value = data[key]
    if isinstance(value, bool):
        raise PositionValidationError(f"{key}: expected number, got bool")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise PositionValidationError(f"{key}: not a number: {value!r}") from exc
    if not result.is_finite():
        raise PositionValidationError(f"{key}: must be finite, got {value!r}")
    return result


def _parse_timestamp_ms(value: Any) -> int:
    if isinstance(value, bool):
        raise PositionValidationError("entry_timestamp: expected epoch ms, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise PositionValidationError(f"entry_timestamp: must be finite, got {value!r}")
        return int(value)
    if isinstance(value, str):
        if value.isascii() and value.isdigit():
            return int(value)
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise PositionValidationError(f"entry_timestamp: unparsable {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    raise PositionValidationError(f"entry_timestamp: unsupported type {type(value).__name__}")


def parse_position_event(body: Mapping[str, Any]) -> WalletPosition:
    """
    Parse an inbound event into a WalletPosition.

    Accepts {"type": ..., "data": {...}} envelopes or a bare position mapping.
    Direction may be given as "position_type" or "direction".
    """
    if not isinstance(body, Mapping):
        raise PositionValidationError(f"event body must be a mapping, got {type(body).__name__}")
    data = body.get("data", body)
    if not isinstance(data, Mapping):
        raise PositionValidationError("event data must be a mapping")

    missing = [key for key in _REQUIRED_FIELDS if data.get(key) is None]
    raw_direction = data.get("position_type", data.get("direction"))
    if raw_direction is None:
        missing.append("position_type")
    if missing:
        raise PositionValidationError("missing fields: " + ", ".join(missing))

    wallet_address = data["wallet_address"]
    pair = data["pair"]
    if not isinstance(wallet_address, str) or not wallet_address.strip():
        raise PositionValidationError("wallet_address: must be a non-empty string")
    if not isinstance(pair, str) or not pair.strip():
        raise PositionValidationError("pair: must be a non-empty string")

    try:
        direction = PositionDirection(str(raw_direction).upper())
    except ValueError as exc:
        raise PositionValidationError(f"position_type: unknown direction {raw_direction!r}") from exc

    entry_price = _parse_decimal(data, "entry_price")
    trade_size = _parse_decimal(data, "trade_size")
    leverage = _parse_decimal(data, "leverage")
    if entry_price <= 0:
        raise PositionValidationError("entry_price: must be > 0")
    if trade_size < 0:
        raise PositionValidationError("trade_size: must be >= 0")
    if leverage < 0:
        raise PositionValidationError("leverage: must be >= 0")

    entry_timestamp = _parse_timestamp_ms(data["entry_timestamp"])
    if entry_timestamp < 0:
        raise PositionValidationError("entry_timestamp: must be >= 0")

    return WalletPosition(
        wallet_address=wallet_address.strip(),
        pair=pair.strip(),
        direction=direction,
        entry_price=entry_price,
        trade_size=trade_size,
        leverage=leverage,
        entry_timestamp=entry_timestamp,
    )


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class SignalProcessor:
    """
    Per-event correlation pipeline with explicit per-message outcomes.

    Safe to run one instance per batch stream; state lives in the store and
    is partitioned by (pair, direction).
    """

    def __init__(
        self,
        store: SignalStore,
        emitter: SignalEmitter,
        cooldown_guard: CooldownGuard | None = None,
        config_provider: Callable[[], DetectionConfig] = load_detection_config,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._emitter = emitter
        self._cooldown = cooldown_guard or CooldownGuard(store)
        self._config_provider = config_provider
        self._clock = clock
        self._running = False

        self._logger = setup_module_logger(
            "signal_processor", "signal_processor.log", module_folder="Signal_Processor_Logs"
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(
        self,
        transport: BatchTransport,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        wait_seconds: float = DEFAULT_BATCH_WAIT_SECONDS,
    ) -> None:
        """Pull batches from the transport and report each message's outcome."""
        self._running = True
        self._logger.info("Signal processor started")

        try:
            while self._running:
                batch = await transport.receive_batch(max_batch_size, wait_seconds)
                if not batch:
                    continue

                results = await self.process_batch(batch)
                for message, outcome in results:
                    if outcome is ProcessingOutcome.ACK:
                        transport.ack(message)
                    elif outcome is ProcessingOutcome.POISON:
                        transport.dead_letter(message, "unprocessable event")
                    else:
                        transport.retry(message)

        except asyncio.CancelledError:
            self._logger.info("Signal processor cancelled")
        finally:
            self._running = False

    def stop(self) -> None:
        """Signal the run loop to stop."""
        self._running = False

    # ------------------------------------------------------------------
    # Batch handling
    # ------------------------------------------------------------------

    async def process_batch(
        self, messages: Sequence[QueueMessage]
    ) -> list[tuple[QueueMessage, ProcessingOutcome]]:
        self._logger.info("Processing %d signal events", len(messages))

        try:
            config = self._config_provider()
        except Exception as exc:
            self._logger.error("Signal processor batch failed, retrying all: %s", exc, exc_info=True)
            return [(message, ProcessingOutcome.RETRY) for message in messages]

        results = []
        for message in messages:
            outcome = await self.handle_message(message, config)
            results.append((message, outcome))

        self._logger.info(
            "Signal event processing completed: %s",
            ", ".join(
                f"{o.value}={sum(1 for _, r in results if r is o)}" for o in ProcessingOutcome
            ),
        )
        return results

    async def handle_message(
        self, message: QueueMessage, config: DetectionConfig
    ) -> ProcessingOutcome:
        try:
            position = parse_position_event(message.body)
        except PositionValidationError as exc:
            self._logger.warning("Rejecting invalid event %s: %s", message.message_id, exc)
            return ProcessingOutcome.POISON

        try:
            await self.process_event(position, config, trace_id=message.message_id)
        except asyncio.CancelledError:
            raise
        except SignalInvariantError as exc:
            self._logger.critical(
                "Invariant violated processing signal event %s, dead-lettering: %s",
                message.message_id,
                exc,
                exc_info=True,
            )
            return ProcessingOutcome.POISON
        except Exception as exc:
            self._logger.error(
                "Failed to process signal event %s (attempt %d): %s",
                message.message_id,
                message.attempts,
                exc,
                exc_info=True,
            )
            return ProcessingOutcome.RETRY
        return ProcessingOutcome.ACK

    # ------------------------------------------------------------------
    # Per-event pipeline
    # ------------------------------------------------------------------

    async def process_event(
        self,
        position: WalletPosition,
        config: DetectionConfig,
        trace_id: str = "",
    ) -> Signal | None:
        """Run the correlation pipeline for one position event."""
        pair = position.pair
        direction = position.direction
        now_ms = self._clock()

        log_data_entry(
            trace_id,
            "signal_processor",
            "position event",
            {
                "wallet_address": position.wallet_address,
                "pair": pair,
                "direction": direction.value,
                "entry_timestamp": position.entry_timestamp,
            },
        )
        self._logger.debug(
            "Processing signal event: %s %s %s", position.wallet_address, pair, direction.value
        )

        recent = await self._store.recent_positions(pair, direction, config.time_window_ms, now_ms)
        eligible = filter_eligible_positions(recent, config, now_ms)
        aggregate = aggregate_by_wallet(eligible)

        log_data_processing(
            trace_id,
            "signal_processor",
            "wallet aggregation",
            {"recent": len(recent), "eligible": len(eligible)},
            {"wallet_count": aggregate.wallet_count, "threshold": config.wallet_count},
        )
        self._logger.debug(
            "Found %d unique wallets for %s %s", aggregate.wallet_count, pair, direction.value
        )

        if not meets_wallet_threshold(aggregate.wallet_count, config.wallet_count):
            self._logger.debug(
                "Signal threshold not met: %d/%d wallets",
                aggregate.wallet_count,
                config.wallet_count,
            )
            return None

        check = await self._cooldown.check(pair, direction, now_ms)
        if check.suppresses:
            self._logger.info(
                "Signal cooldown active for %s %s, skipping duplicate (%s)",
                pair,
                direction.value,
                check.reason,
            )
            return None

        signal = await self._emitter.emit(pair, direction, aggregate.positions, config, now_ms)
        if signal is not None:
            log_data_output(
                trace_id,
                "signal_processor",
                "signal emitted",
                {
                    "signal_id": signal.signal_id,
                    "pair": pair,
                    "direction": direction.value,
                    "wallet_count": aggregate.wallet_count,
                    "cooldown_state": check.state.value,
                },
                next_stage="notifier",
            )
        return signal
