"""Configuration Registry - Defines all configuration keys with validation rules.

This module provides the ConfigKey dataclass and REGISTRY dictionary that defines
all configuration options available in PolicyBot. Every key is read once at
startup; changing a value requires a restart.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation.

    Attributes:
        value_type: Expected Python type (str, int, float, bool, list)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
        validator: Custom validation function (optional)
        item_type: Expected type of list items (optional, lists only)
        sensitive: Value must never appear in logs
    """
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    validator: Optional[Callable[[Any], bool]] = None
    item_type: Optional[type] = None
    sensitive: bool = False


# Configuration Registry
# =======================
# All configuration keys must be registered here.

REGISTRY: dict[str, ConfigKey] = {
    # ===== TELEGRAM =====
    "telegram.bot_token": ConfigKey(
        value_type=str,
        default="",
        sensitive=True,
    ),
    "telegram.allowed_chat_ids": ConfigKey(
        value_type=list,
        default=[],
        item_type=int,
    ),
    "telegram.poll_timeout_seconds": ConfigKey(
        value_type=int,
        default=30,
        min_value=0,
        max_value=50,
    ),
    "telegram.error_backoff_seconds": ConfigKey(
        value_type=float,
        default=5.0,
        min_value=0.0,
        max_value=300.0,
    ),

    # ===== ROUTER =====
    "router.base_url": ConfigKey(
        value_type=str,
        default="http://192.168.1.1",
        validator=lambda v: v.startswith(("http://", "https://")),
    ),
    "router.login": ConfigKey(
        value_type=str,
        default="admin",
    ),
    "router.password": ConfigKey(
        value_type=str,
        default="",
        sensitive=True,
    ),
    "router.restricted_policy": ConfigKey(
        value_type=str,
        default="Policy0",
        validator=lambda v: bool(v) and v != "default",
    ),
    "router.favorite_macs": ConfigKey(
        value_type=list,
        default=[],
        item_type=str,
    ),
    "router.request_timeout_seconds": ConfigKey(
        value_type=float,
        default=10.0,
        min_value=1.0,
        max_value=120.0,
    ),

    # ===== DATABASE =====
    "database.path": ConfigKey(
        value_type=str,
        default="data/policybot.db",
    ),

    # ===== LOGGING =====
    "logging.level": ConfigKey(
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
    "logging.json": ConfigKey(
        value_type=bool,
        default=False,
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "router.base_url")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    # ints are accepted where floats are expected (TOML "timeout = 10")
    if config_key.value_type is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)

    # Type validation
    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # bool is a subclass of int
    if config_key.value_type in (int, float) and isinstance(value, bool):
        return False, f"Expected type {config_key.value_type.__name__}, got bool"

    if isinstance(value, list) and config_key.item_type is not None:
        for item in value:
            if not isinstance(item, config_key.item_type) or isinstance(item, bool):
                return False, (
                    f"Expected list of {config_key.item_type.__name__}, "
                    f"got item of type {type(item).__name__}"
                )

    # Range validation for numeric types
    if isinstance(value, (int, float)):
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    # Custom validator
    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys.

    Returns:
        Dictionary of key -> default_value
    """
    return {key: config_key.default for key, config_key in REGISTRY.items()}


def get_sensitive_keys() -> set[str]:
    """Keys whose values are redacted in logs."""
    return {key for key, config_key in REGISTRY.items() if config_key.sensitive}
