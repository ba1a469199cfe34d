"""
Configuration loader for the wallet signal processor.

Provides centralized configuration management with .env overrides.

Usage:
    from config.loader import get_config

    config = get_config()
    detection = config.get_signals_config().get("detection", {})
    db_path = config.get_storage_config().get("db_path")
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

# Resolve config directory relative to this file
_CONFIG_DIR = Path(__file__).parent
_PROJECT_ROOT = _CONFIG_DIR.parent


def _load_json(filepath: Path) -> Dict[str, Any]:
    """Load a JSON config file. Returns empty dict if file doesn't exist."""
    try:
        with open(filepath, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        print(f"[CONFIG_WARN] Config file not found: {filepath}")
        return {}
    except json.JSONDecodeError as e:
        print(f"[CONFIG_ERROR] Invalid JSON in {filepath}: {e}")
        return {}


def get_env_var(var_name: str, default_value: Any, var_type: type) -> Any:
    """Get environment variable with type conversion and fallback."""
    value = os.getenv(var_name, None)
    if value is None:
        return default_value
    try:
        if var_type == bool:
            return value.lower() in ("true", "1", "yes")
        return var_type(value)
    except (ValueError, TypeError, ArithmeticError):
        return default_value


class ConfigLoader:
    """
    Central configuration manager for the wallet signal processor.

    Loads configuration from JSON files in the config/ directory with .env overrides.
    All accessor methods are cached via @lru_cache; call clear_cache() to pick up
    edits on the next processing run.
    """

    _instance: Optional["ConfigLoader"] = None

    def __init__(self, config_dir: Path | None = None):
        self._config_dir = config_dir or _CONFIG_DIR
        self._project_root = _PROJECT_ROOT

    @classmethod
    def get_instance(cls) -> "ConfigLoader":
        """Singleton accessor."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    # ------------------------------------------------------------------
    # Core config file loaders (cached)
    # ------------------------------------------------------------------

    @lru_cache(maxsize=1)
    def get_app_config(self) -> Dict[str, Any]:
        """Load general application settings (logging layout)."""
        return _load_json(self._config_dir / "app.json")

    @lru_cache(maxsize=1)
    def get_signals_config(self) -> Dict[str, Any]:
        """Load detection thresholds and signal defaults."""
        return _load_json(self._config_dir / "signals.json")

    @lru_cache(maxsize=1)
    def get_storage_config(self) -> Dict[str, Any]:
        """Load SQLite storage settings."""
        return _load_json(self._config_dir / "storage.json")

    @lru_cache(maxsize=1)
    def get_notifications_config(self) -> Dict[str, Any]:
        """Load notification transport settings."""
        return _load_json(self._config_dir / "notifications.json")

    @lru_cache(maxsize=1)
    def get_transport_config(self) -> Dict[str, Any]:
        """Load inbound batch transport settings."""
        return _load_json(self._config_dir / "transport.json")

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Clear all cached configurations (next run re-reads the files)."""
        for method_name in dir(self):
            method = getattr(self, method_name)
            if hasattr(method, "cache_clear"):
                method.cache_clear()


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------

def get_config() -> ConfigLoader:
    """Get the singleton ConfigLoader instance."""
    return ConfigLoader.get_instance()
