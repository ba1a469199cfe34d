"""
Duplicate-signal cooldown guard.

Suppresses a new signal when one for the same (pair, direction) was created
within the fixed cooldown window. The guard fails open: when the lookup
itself fails the result is INDETERMINATE and the caller proceeds as if no
recent signal exists. The storage layer re-checks the cooldown atomically
at insert time, so a missed suppression here cannot produce a duplicate row
on a reachable store.

Usage:
    guard = CooldownGuard(store)
    check = await guard.check("BTC-PERP", PositionDirection.LONG, now_ms)
    if check.suppresses:
        return
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from bot_logging.logger_manager import setup_module_logger
from shared.constants import SIGNAL_COOLDOWN_SECONDS
from shared.types import CooldownCheck, CooldownState, PositionDirection

if TYPE_CHECKING:
    from core.signal_store import SignalStore


class CooldownGuard:
    """Per (pair, direction) cooldown check against stored signals."""

    def __init__(
        self,
        store: SignalStore,
        cooldown_seconds: int = SIGNAL_COOLDOWN_SECONDS,
    ) -> None:
        self._store = store
        self._cooldown_ms = cooldown_seconds * 1000

        self._logger = setup_module_logger(
            "cooldown", "cooldown.log", module_folder="Cooldown_Logs"
        )

    @property
    def cooldown_ms(self) -> int:
        return self._cooldown_ms

    async def check(self, pair: str, direction: PositionDirection, now_ms: int) -> CooldownCheck:
        """Look up the most recent signal inside (now - cooldown, now]."""
        cutoff_ms = now_ms - self._cooldown_ms
        try:
            signal_id = await self._store.most_recent_signal_id(pair, direction, cutoff_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.warning(
                "Cooldown lookup failed for %s %s, allowing signal: %s",
                pair,
                direction.value,
                exc,
                exc_info=True,
            )
            return CooldownCheck(
                state=CooldownState.INDETERMINATE,
                reason=f"cooldown lookup failed: {exc}",
            )

        if signal_id is not None:
            return CooldownCheck(
                state=CooldownState.ACTIVE,
                signal_id=signal_id,
                reason=f"signal {signal_id} created within {self._cooldown_ms // 1000}s",
            )
        return CooldownCheck(state=CooldownState.CLEAR)
