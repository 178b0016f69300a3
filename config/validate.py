"""
Configuration validation for the vault deposit alert relay.

Validates that the JSON config files contain required keys and that the
environment provides every deployment setting. Run at startup to fail fast
on misconfiguration, before the subscription pipeline starts.
"""

from typing import Any

from config.loader import get_config, get_env_var, optional_env
from core.pool_registry import PoolConfigError, parse_pools
from shared.constants import DEFAULT_HTTP_PORT
from shared.types import Settings


class ConfigValidationError(ValueError):
    """Raised when a required config key or env var is missing or invalid."""

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


def validate_app_config(config: dict[str, Any]) -> list[str]:
    """Validate app.json has required fields."""
    return _check_keys(config, ["logging.log_dir", "logging.module_folders"], "app.json")


def validate_websocket_config(config: dict[str, Any]) -> list[str]:
    """Validate websocket.json has required fields."""
    return _check_keys(
        config,
        [
            "connection.ping_interval_seconds",
            "connection.ping_timeout_seconds",
            "connection.close_timeout_seconds",
            "timeouts.subscription_response_timeout_seconds",
        ],
        "websocket.json",
    )


def validate_telegram_config(config: dict[str, Any]) -> list[str]:
    """Validate telegram.json has required fields."""
    return _check_keys(config, ["api_base", "request_timeout_seconds"], "telegram.json")


def validate_all_configs() -> None:
    """
    Validate all config files. Raises ConfigValidationError with details
    if any required keys are missing.
    """
    loader = get_config()
    all_errors: dict[str, list[str]] = {}

    validators = {
        "app.json": (loader.get_app_config, validate_app_config),
        "websocket.json": (loader.get_websocket_config, validate_websocket_config),
        "telegram.json": (loader.get_telegram_config, validate_telegram_config),
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
# Environment
# ---------------------------------------------------------------------------


def load_settings() -> Settings:
    """
    Read deployment settings from the environment.

    Collects every problem (missing required vars, bad POOLS, bad endpoint
    scheme) into a single ConfigValidationError.
    """
    errors: list[str] = []

    def _require(name: str) -> str:
        value = optional_env(name)
        if not value:
            errors.append(f"Missing required env var: {name}")
        return value

    websocket_url = _require("ALCHEMY_WEBSOCKET_URL")
    bot_token = _require("TELEGRAM_BOT_TOKEN")
    chat_id = _require("TELEGRAM_CHAT_ID")

    if websocket_url and not websocket_url.lower().startswith(("ws://", "wss://")):
        errors.append("ALCHEMY_WEBSOCKET_URL must start with ws:// or wss://")

    pools = ()
    try:
        pools = parse_pools(optional_env("POOLS"))
    except PoolConfigError as e:
        errors.append(str(e))

    if errors:
        raise ConfigValidationError(
            "Environment validation failed:\n" + "\n".join(f"    - {e}" for e in errors)
        )

    return Settings(
        websocket_url=websocket_url,
        telegram_bot_token=bot_token,
        telegram_chat_id=chat_id,
        pools=pools,
        event_abi_json=optional_env("EVENT_ABI_JSON"),
        event_signature=optional_env("EVENT_SIGNATURE"),
        contract_address=optional_env("CONTRACT_ADDRESS").lower(),
        http_port=get_env_var("PORT", DEFAULT_HTTP_PORT, int),
    )
