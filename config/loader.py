"""
Configuration loader for the vault deposit alert relay.

Provides centralized configuration management: JSON files in config/ for
tunables (logging, websocket, telegram) and .env / process environment for
deployment settings (endpoint URL, bot credentials, pool list).

Usage:
    from config.loader import get_config, get_env_var

    config = get_config()
    ws_config = config.get_websocket_config()
    port = get_env_var("PORT", 3000, int)
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
    if value is None or value.strip() == "":
        return default_value
    try:
        if var_type == bool:
            return value.strip().lower() in ("true", "1", "yes")
        return var_type(value.strip())
    except (ValueError, TypeError):
        return default_value


def optional_env(var_name: str, default_value: str = "") -> str:
    """Get a trimmed string environment variable ("" when unset)."""
    value = os.getenv(var_name)
    return (value if value is not None else default_value).strip()


class ConfigLoader:
    """
    Central configuration manager for the alert relay.

    Loads configuration from JSON files in the config/ directory.
    All accessor methods are cached via @lru_cache.
    """

    _instance: Optional["ConfigLoader"] = None

    def __init__(self):
        self._config_dir = _CONFIG_DIR
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
    def get_websocket_config(self) -> Dict[str, Any]:
        """Load WebSocket connection settings."""
        return _load_json(self._config_dir / "websocket.json")

    @lru_cache(maxsize=1)
    def get_telegram_config(self) -> Dict[str, Any]:
        """Load Telegram Bot API settings."""
        return _load_json(self._config_dir / "telegram.json")

    def clear_cache(self) -> None:
        """Clear all cached configurations (useful for testing)."""
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
