"""
Unit tests for core/metrics.py and core/targets.py.

Tests verify simple (unweighted) means, total notional, the empty-set
invariant, and direction-aware stop-loss / take-profit levels.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import make_position

from core.metrics import calculate_signal_metrics
from core.targets import calculate_target_levels, price_at_percent
from shared.errors import SignalInvariantError
from shared.types import PositionDirection


def _d(v) -> Decimal:
    return Decimal(str(v))


TAKE_PROFITS = (_d("2.0"), _d("3.5"), _d("5.0"))


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestCalculateSignalMetrics:

    def test_reference_values(self):
        positions = [
            make_position("0xa", entry_price="100", trade_size="1", leverage="5"),
            make_position("0xb", entry_price="102", trade_size="2", leverage="10"),
            make_position("0xc", entry_price="98", trade_size="3", leverage="3"),
        ]
        metrics = calculate_signal_metrics(positions)
        assert metrics.avg_entry_price == _d("100")
        assert metrics.avg_trade_size == _d("2")
        assert metrics.total_notional == _d("598")
        assert metrics.avg_leverage == _d("6")

    def test_means_are_not_size_weighted(self):
        positions = [
            make_position("0xa", entry_price="100", trade_size="100"),
            make_position("0xb", entry_price="200", trade_size="1"),
        ]
        metrics = calculate_signal_metrics(positions)
        assert metrics.avg_entry_price == _d("150")

    def test_single_position(self):
        metrics = calculate_signal_metrics([make_position(entry_price="42.5", trade_size="2")])
        assert metrics.avg_entry_price == _d("42.5")
        assert metrics.total_notional == _d("85.0")

    def test_empty_set_is_invariant_violation(self):
        with pytest.raises(SignalInvariantError):
            calculate_signal_metrics([])


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TestCalculateTargetLevels:

    def test_long_levels(self):
        levels = calculate_target_levels(
            PositionDirection.LONG, _d("100"), _d("-2.5"), TAKE_PROFITS
        )
        assert levels.stop_loss_price == _d("97.5")
        assert [t.target_price for t in levels.targets] == [_d("102"), _d("103.5"), _d("105")]
        assert [t.target_index for t in levels.targets] == [0, 1, 2]
        assert [t.target_percent for t in levels.targets] == list(TAKE_PROFITS)

    def test_short_levels(self):
        levels = calculate_target_levels(
            PositionDirection.SHORT, _d("100"), _d("-2.5"), TAKE_PROFITS
        )
        assert levels.stop_loss_price == _d("102.5")
        assert [t.target_price for t in levels.targets] == [_d("98"), _d("96.5"), _d("95")]
        assert [t.target_index for t in levels.targets] == [0, 1, 2]

    def test_order_follows_input_list(self):
        levels = calculate_target_levels(
            PositionDirection.LONG, _d("100"), _d("-1"), (_d("5"), _d("1"), _d("3"))
        )
        assert [t.target_percent for t in levels.targets] == [_d("5"), _d("1"), _d("3")]
        assert [t.target_index for t in levels.targets] == [0, 1, 2]
        assert [t.target_price for t in levels.targets] == [_d("105"), _d("101"), _d("103")]

    def test_defaults_when_not_supplied(self):
        levels = calculate_target_levels(PositionDirection.LONG, _d("100"))
        assert levels.stop_loss_percent == _d("-2.5")
        assert levels.stop_loss_price == _d("97.5")
        assert [t.target_percent for t in levels.targets] == list(TAKE_PROFITS)

    def test_empty_take_profit_list(self):
        levels = calculate_target_levels(PositionDirection.SHORT, _d("100"), _d("-2.5"), ())
        assert levels.targets == []
        assert levels.stop_loss_price == _d("102.5")

    def test_price_at_percent_mirrors_for_short(self):
        entry = _d("250")
        long_price = price_at_percent(PositionDirection.LONG, entry, _d("4"))
        short_price = price_at_percent(PositionDirection.SHORT, entry, _d("4"))
        assert long_price == _d("260")
        assert short_price == _d("240")
        assert long_price - entry == entry - short_price
