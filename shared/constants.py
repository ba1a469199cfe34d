"""
Shared constants for the wallet signal processor.

Numeric constants and default values used across all modules.
"""

from decimal import Decimal

# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60_000

# ---------------------------------------------------------------------------
# Cooldown
# ---------------------------------------------------------------------------

SIGNAL_COOLDOWN_SECONDS = 300  # Fixed; not configurable per deployment

# ---------------------------------------------------------------------------
# Default detection values
# ---------------------------------------------------------------------------

DEFAULT_TIME_WINDOW_MIN = 15
DEFAULT_MIN_TRADE_SIZE = Decimal("0")
DEFAULT_MIN_LEVERAGE = Decimal("1")
DEFAULT_WALLET_COUNT = 3
DEFAULT_STOP_LOSS_PERCENT = Decimal("-2.5")
DEFAULT_TAKE_PROFIT_PERCENTS: tuple[Decimal, ...] = (
    Decimal("2.0"),
    Decimal("3.5"),
    Decimal("5.0"),
)

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

NOTIFICATION_TYPE_NEW_SIGNAL = "new_signal"
NOTIFICATION_CHAT_PLACEHOLDER = "CONFIGURED_IN_NOTIFIER"  # Resolved by the notifier
LONG_INDICATOR = "\U0001f7e2"  # green circle
SHORT_INDICATOR = "\U0001f534"  # red circle

# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_BATCH_WAIT_SECONDS = 5.0
DEFAULT_MAX_DELIVERY_ATTEMPTS = 5
