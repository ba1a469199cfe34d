"""
Aggregate statistics over the wallets contributing to a signal.

All means are simple arithmetic means over the same deduplicated set used
for the threshold decision (not size-weighted).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from shared.errors import SignalInvariantError
from shared.types import SignalMetrics, WalletPosition


def calculate_signal_metrics(positions: Sequence[WalletPosition]) -> SignalMetrics:
    """
    Compute average entry price, average trade size, total notional and
    average leverage.

    Raises SignalInvariantError on an empty set: the threshold check must
    have admitted at least one wallet before metrics are requested.
    """
    count = len(positions)
    if count == 0:
        raise SignalInvariantError("calculate_signal_metrics called with no contributing wallets")

    total_entry_price = Decimal("0")
    total_trade_size = Decimal("0")
    total_notional = Decimal("0")
    total_leverage = Decimal("0")

    for pos in positions:
        total_entry_price += pos.entry_price
        total_trade_size += pos.trade_size
        total_notional += pos.entry_price * pos.trade_size
        total_leverage += pos.leverage

    divisor = Decimal(count)
    return SignalMetrics(
        avg_entry_price=total_entry_price / divisor,
        avg_trade_size=total_trade_size / divisor,
        total_notional=total_notional,
        avg_leverage=total_leverage / divisor,
    )
