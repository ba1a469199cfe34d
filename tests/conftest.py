"""
Shared pytest configuration and fixtures for wallet signal processor tests.

Provides common helpers used across the unit test suite.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from decimal import Decimal

import pytest

import bot_logging.logger_manager as logger_manager
from shared.constants import SIGNAL_COOLDOWN_SECONDS
from shared.types import (
    DetectionConfig,
    PositionDirection,
    Signal,
    SignalStatus,
    WalletPosition,
)

# ---------------------------------------------------------------------------
# Decimal helper
# ---------------------------------------------------------------------------


def _d(v) -> Decimal:
    """Shorthand Decimal factory."""
    return Decimal(str(v))


# ---------------------------------------------------------------------------
# Standard values
# ---------------------------------------------------------------------------

# 2024-01-01T00:00:00Z in epoch ms
BASE_TIME_MS = 1_704_067_200_000
MINUTE_MS = 60_000

SAMPLE_PAIR = "BTC-PERP"

STANDARD_DETECTION_CONFIG = DetectionConfig(
    time_window_min=15,
    min_trade_size=_d("0.5"),
    min_leverage=_d("2"),
    wallet_count=3,
    stop_loss_percent=_d("-2.5"),
    take_profit_percents=(_d("2.0"), _d("3.5"), _d("5.0")),
    cooldown_seconds=SIGNAL_COOLDOWN_SECONDS,
)

STANDARD_SIGNALS_CONFIG = {
    "detection": {
        "time_window_min": 15,
        "min_trade_size": "0.5",
        "required_leverage_min": "2",
        "wallet_count": 3,
    }
}


def make_position(
    wallet_address: str = "0xwallet1",
    pair: str = SAMPLE_PAIR,
    direction: PositionDirection = PositionDirection.LONG,
    entry_price="100",
    trade_size="1",
    leverage="5",
    entry_timestamp: int = BASE_TIME_MS,
) -> WalletPosition:
    return WalletPosition(
        wallet_address=wallet_address,
        pair=pair,
        direction=direction,
        entry_price=_d(entry_price),
        trade_size=_d(trade_size),
        leverage=_d(leverage),
        entry_timestamp=entry_timestamp,
    )


def make_event_body(position: WalletPosition) -> dict:
    """Inbound queue body for a position, in the ingestion envelope."""
    return {
        "type": "position_update",
        "data": {
            "wallet_address": position.wallet_address,
            "pair": position.pair,
            "position_type": position.direction.value,
            "entry_price": str(position.entry_price),
            "trade_size": str(position.trade_size),
            "leverage": str(position.leverage),
            "entry_timestamp": position.entry_timestamp,
        },
    }


# ---------------------------------------------------------------------------
# Logging: keep module log files out of the project tree
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def isolated_log_dir(tmp_path_factory):
    log_dir = tmp_path_factory.mktemp("logs")
    original = logger_manager._LOG_DIR
    logger_manager._LOG_DIR = str(log_dir)
    yield log_dir
    logger_manager._LOG_DIR = original


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def detection_config() -> DetectionConfig:
    return STANDARD_DETECTION_CONFIG


@pytest.fixture
def db_path():
    """Create a temporary database file."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    with contextlib.suppress(OSError):
        os.unlink(path)


@pytest.fixture
def store(db_path):
    """SqliteSignalStore backed by a temp database."""
    from core.signal_store import SqliteSignalStore

    s = SqliteSignalStore(db_path=db_path)
    yield s
    s.close()


def make_signal(
    signal_id: str = "sig-1",
    created_at: int = BASE_TIME_MS,
    direction: PositionDirection = PositionDirection.LONG,
    pair: str = SAMPLE_PAIR,
) -> Signal:
    return Signal(
        signal_id=signal_id,
        pair=pair,
        direction=direction,
        entry_timestamp="2024-01-01T00:00:00+00:00",
        entry_price=_d("100"),
        avg_trade_size=_d("2"),
        stop_loss_percent=_d("-2.5"),
        take_profit_percents=(_d("2.0"), _d("3.5")),
        status=SignalStatus.OPEN,
        created_at=created_at,
    )
