"""
Direction-aware stop-loss and take-profit price levels.

Percentages follow the sign convention of the config: a negative stop-loss
percent lowers the exit for LONG and raises it for SHORT.

    LONG:  price = entry * (1 + pct / 100)
    SHORT: price = entry * (1 - pct / 100)
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from shared.constants import DEFAULT_STOP_LOSS_PERCENT, DEFAULT_TAKE_PROFIT_PERCENTS
from shared.types import PositionDirection, SignalTarget, TargetLevels

_HUNDRED = Decimal("100")
_ONE = Decimal("1")


def price_at_percent(
    direction: PositionDirection, entry_price: Decimal, percent: Decimal
) -> Decimal:
    """Absolute price offset from entry by percent, mirrored for SHORT."""
    offset = percent / _HUNDRED
    if direction is PositionDirection.LONG:
        return entry_price * (_ONE + offset)
    return entry_price * (_ONE - offset)


def calculate_target_levels(
    direction: PositionDirection,
    entry_price: Decimal,
    stop_loss_percent: Decimal | None = None,
    take_profit_percents: Sequence[Decimal] | None = None,
) -> TargetLevels:
    """
    Convert percentage exits into absolute prices.

    Target order and target_index follow the take-profit list order.
    None falls back to -2.5% stop-loss and [2.0, 3.5, 5.0] take-profits.
    """
    if stop_loss_percent is None:
        stop_loss_percent = DEFAULT_STOP_LOSS_PERCENT
    if take_profit_percents is None:
        take_profit_percents = DEFAULT_TAKE_PROFIT_PERCENTS

    targets = [
        SignalTarget(
            target_index=index,
            target_percent=tp_percent,
            target_price=price_at_percent(direction, entry_price, tp_percent),
        )
        for index, tp_percent in enumerate(take_profit_percents)
    ]

    return TargetLevels(
        stop_loss_percent=stop_loss_percent,
        stop_loss_price=price_at_percent(direction, entry_price, stop_loss_percent),
        targets=targets,
    )
