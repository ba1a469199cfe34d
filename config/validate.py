"""
Configuration schema validation for the wallet signal processor.

Validates that all required config files exist and contain required keys.
Run at startup to fail fast on misconfiguration. load_detection_config()
turns the loosely-typed signals.json into a DetectionConfig once per batch.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from config.loader import ConfigLoader, get_config, get_env_var
from shared.constants import (
    DEFAULT_STOP_LOSS_PERCENT,
    DEFAULT_TAKE_PROFIT_PERCENTS,
    SIGNAL_COOLDOWN_SECONDS,
)
from shared.types import DetectionConfig


class ConfigValidationError(ValueError):
    """Raised when a required config key is missing or invalid."""

    pass


def _check_keys(config: dict[str, Any], required_keys: list[str], config_name: str) -> list[str]:
    """Check that all required keys exist in a config dict. Returns list of missing keys."""
    missing = []
    for key in required_keys:
        parts = key.split(".")
        current = config
        for part in parts:
            if not isinstance(current, dict) or part not in current:
                missing.append(key)
                break
            current = current[part]
    return missing


def validate_signals_config(config: dict[str, Any]) -> list[str]:
    """Validate signals.json has required fields."""
    return _check_keys(
        config,
        [
            "detection.time_window_min",
            "detection.min_trade_size",
            "detection.required_leverage_min",
            "detection.wallet_count",
        ],
        "signals.json",
    )


def validate_storage_config(config: dict[str, Any]) -> list[str]:
    """Validate storage.json has required fields."""
    return _check_keys(config, ["db_path"], "storage.json")


def validate_notifications_config(config: dict[str, Any]) -> list[str]:
    """Validate notifications.json has required fields."""
    errors = _check_keys(config, ["mode"], "notifications.json")
    if not errors:
        mode = config.get("mode")
        if mode not in ("queue", "http"):
            errors.append(f"mode: must be 'queue' or 'http', got {mode!r}")
        elif mode == "http" and not config.get("http", {}).get("url"):
            errors.append("http.url: required when mode is 'http'")
    return errors


def validate_transport_config(config: dict[str, Any]) -> list[str]:
    """Validate transport.json has required fields."""
    return _check_keys(
        config,
        [
            "max_batch_size",
            "batch_wait_seconds",
            "max_attempts",
        ],
        "transport.json",
    )


def validate_all_configs() -> None:
    """
    Validate all config files. Raises ConfigValidationError with details
    if any required keys are missing.
    """
    loader = get_config()
    all_errors: dict[str, list[str]] = {}

    validators = {
        "signals.json": (loader.get_signals_config, validate_signals_config),
        "storage.json": (loader.get_storage_config, validate_storage_config),
        "notifications.json": (loader.get_notifications_config, validate_notifications_config),
        "transport.json": (loader.get_transport_config, validate_transport_config),
    }

    for config_name, (loader_fn, validator_fn) in validators.items():
        config = loader_fn()
        if not config:
            all_errors[config_name] = ["Config file is empty or not found"]
            continue
        errors = validator_fn(config)
        if errors:
            all_errors[config_name] = errors

    if all_errors:
        lines = ["Configuration validation failed:"]
        for config_name, errors in all_errors.items():
            lines.append(f"\n  {config_name}:")
            for error in errors:
                lines.append(f"    - missing: {error}")
        raise ConfigValidationError("\n".join(lines))


# ---------------------------------------------------------------------------
# Typed detection config
# ---------------------------------------------------------------------------


def _to_decimal(value: Any, key: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigValidationError(f"detection.{key}: not a number: {value!r}") from exc
    if not result.is_finite():
        raise ConfigValidationError(f"detection.{key}: must be finite, got {value!r}")
    return result


def _to_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigValidationError(f"detection.{key}: expected integer, got bool")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"detection.{key}: not an integer: {value!r}") from exc


def build_detection_config(raw: dict[str, Any]) -> DetectionConfig:
    """
    Build a DetectionConfig from the "detection" section of signals.json.

    Recognized keys:
        time_window_min        (required, > 0)
        min_trade_size         (required, >= 0)
        required_leverage_min  (required, >= 0)
        wallet_count           (required, >= 1)
        default_sl_percent     (optional, default -2.5)
        tps_percent            (optional list, default [2.0, 3.5, 5.0])

    Environment overrides: SIGNAL_TIME_WINDOW_MIN, SIGNAL_MIN_TRADE_SIZE,
    SIGNAL_MIN_LEVERAGE, SIGNAL_WALLET_COUNT.
    """
    missing = _check_keys(
        raw,
        ["time_window_min", "min_trade_size", "required_leverage_min", "wallet_count"],
        "signals.json",
    )
    if missing:
        raise ConfigValidationError(
            "Missing detection config keys: " + ", ".join(f"detection.{k}" for k in missing)
        )

    time_window_min = _to_int(
        get_env_var("SIGNAL_TIME_WINDOW_MIN", raw["time_window_min"], int), "time_window_min"
    )
    min_trade_size = _to_decimal(
        get_env_var("SIGNAL_MIN_TRADE_SIZE", raw["min_trade_size"], Decimal), "min_trade_size"
    )
    min_leverage = _to_decimal(
        get_env_var("SIGNAL_MIN_LEVERAGE", raw["required_leverage_min"], Decimal),
        "required_leverage_min",
    )
    wallet_count = _to_int(
        get_env_var("SIGNAL_WALLET_COUNT", raw["wallet_count"], int), "wallet_count"
    )

    if time_window_min <= 0:
        raise ConfigValidationError("detection.time_window_min: must be > 0")
    if min_trade_size < 0:
        raise ConfigValidationError("detection.min_trade_size: must be >= 0")
    if min_leverage < 0:
        raise ConfigValidationError("detection.required_leverage_min: must be >= 0")
    if wallet_count < 1:
        raise ConfigValidationError("detection.wallet_count: must be >= 1")

    sl_raw = raw.get("default_sl_percent")
    stop_loss = DEFAULT_STOP_LOSS_PERCENT if sl_raw is None else _to_decimal(
        sl_raw, "default_sl_percent"
    )

    tps_raw = raw.get("tps_percent")
    if tps_raw is None:
        take_profits = DEFAULT_TAKE_PROFIT_PERCENTS
    elif isinstance(tps_raw, list):
        take_profits = tuple(_to_decimal(tp, "tps_percent") for tp in tps_raw)
    else:
        raise ConfigValidationError("detection.tps_percent: must be a list of numbers")

    return DetectionConfig(
        time_window_min=time_window_min,
        min_trade_size=min_trade_size,
        min_leverage=min_leverage,
        wallet_count=wallet_count,
        stop_loss_percent=stop_loss,
        take_profit_percents=take_profits,
        cooldown_seconds=SIGNAL_COOLDOWN_SECONDS,
    )


def load_detection_config(loader: ConfigLoader | None = None) -> DetectionConfig:
    """Read signals.json through the loader and return the typed detection config."""
    loader = loader or get_config()
    signals_cfg = loader.get_signals_config()
    if not signals_cfg:
        raise ConfigValidationError("signals.json: Config file is empty or not found")
    return build_detection_config(signals_cfg.get("detection", {}))
