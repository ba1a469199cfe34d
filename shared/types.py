"""
Shared data types for the wallet signal processor.

Centralized dataclasses and enums used across all modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PositionDirection(Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SignalStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"  # Owned by the signal tracker, never written here
    STOPPED = "STOPPED"


class CooldownState(Enum):
    CLEAR = "clear"  # Confirmed no recent signal
    ACTIVE = "active"  # Confirmed recent signal -> suppress
    INDETERMINATE = "indeterminate"  # Lookup failed -> fail open


class ProcessingOutcome(Enum):
    ACK = "ack"
    RETRY = "retry"
    POISON = "poison"


# ---------------------------------------------------------------------------
# Position Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletPosition:
    """Single wallet's open trade snapshot, as written by ingestion."""

    wallet_address: str
    pair: str
    direction: PositionDirection
    entry_price: Decimal
    trade_size: Decimal  # base units
    leverage: Decimal
    entry_timestamp: int  # epoch milliseconds


@dataclass
class WalletAggregate:
    """Latest eligible position per wallet."""

    positions_by_wallet: dict[str, WalletPosition] = field(default_factory=dict)

    @property
    def wallet_count(self) -> int:
        return len(self.positions_by_wallet)

    @property
    def positions(self) -> list[WalletPosition]:
        return list(self.positions_by_wallet.values())


# ---------------------------------------------------------------------------
# Config Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectionConfig:
    time_window_min: int
    min_trade_size: Decimal
    min_leverage: Decimal
    wallet_count: int
    stop_loss_percent: Decimal
    take_profit_percents: tuple[Decimal, ...]
    cooldown_seconds: int

    @property
    def time_window_ms(self) -> int:
        return self.time_window_min * 60 * 1000

    @property
    def cooldown_ms(self) -> int:
        return self.cooldown_seconds * 1000


# ---------------------------------------------------------------------------
# Signal Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Signal:
    signal_id: str
    pair: str
    direction: PositionDirection
    entry_timestamp: str  # ISO-8601 UTC
    entry_price: Decimal
    avg_trade_size: Decimal
    stop_loss_percent: Decimal
    take_profit_percents: tuple[Decimal, ...]
    status: SignalStatus
    created_at: int  # epoch milliseconds, compared against cooldown cutoff


@dataclass(frozen=True)
class SignalWallet:
    wallet_address: str
    entry_price: Decimal
    trade_size: Decimal
    leverage: Decimal


@dataclass(frozen=True)
class SignalTarget:
    target_index: int
    target_percent: Decimal
    target_price: Decimal


@dataclass(frozen=True)
class SignalMetrics:
    avg_entry_price: Decimal
    avg_trade_size: Decimal
    total_notional: Decimal
    avg_leverage: Decimal


@dataclass(frozen=True)
class TargetLevels:
    stop_loss_percent: Decimal
    stop_loss_price: Decimal
    targets: list[SignalTarget]


@dataclass(frozen=True)
class CooldownCheck:
    state: CooldownState
    signal_id: str | None = None
    reason: str = ""

    @property
    def suppresses(self) -> bool:
        return self.state is CooldownState.ACTIVE


# ---------------------------------------------------------------------------
# Transport Types
# ---------------------------------------------------------------------------


@dataclass
class QueueMessage:
    message_id: str
    body: dict[str, Any]
    attempts: int = 1


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    message: str
    chat_id: str
    signal_id: str

    def to_payload(self) -> dict[str, str]:
        return {
            "type": self.type,
            "message": self.message,
            "chat_id": self.chat_id,
            "signal_id": self.signal_id,
        }
