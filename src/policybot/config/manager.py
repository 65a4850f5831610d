"""Configuration Manager.

This module implements configuration loading for PolicyBot:
1. Code defaults from the registry
2. TOML file overrides (config/default.toml)
3. Environment variable overrides (POLICYBOT_ prefix, .env supported)

All values are validated against the registry before use. Configuration is
read once at startup; changes require a restart.
"""

import os
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv
import structlog

from .registry import (
    REGISTRY,
    get_config_key,
    get_default_values,
    get_sensitive_keys,
    validate_config_value,
)

logger = structlog.get_logger(__name__)

ENV_PREFIX = "POLICYBOT_"


def _redact_sensitive_value(key: str, value: Any) -> Any:
    """Redact sensitive configuration values for logging.

    Args:
        key: Configuration key
        value: Configuration value

    Returns:
        Original value if not sensitive, otherwise "[REDACTED]"
    """
    if key in get_sensitive_keys() and value:
        return "[REDACTED]"
    return value


def env_var_name(key: str) -> str:
    """Environment variable that overrides a dotted key.

    Example: "router.base_url" -> "POLICYBOT_ROUTER_BASE_URL"
    """
    return ENV_PREFIX + key.replace(".", "_").upper()


class ConfigManager:
    """Loads and validates PolicyBot configuration.

    Attributes:
        config: Loaded configuration (dotted key -> value)
        config_file: TOML file path
        env_file: .env file path
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file (default: config/default.toml)
            env_file: Path to .env file (default: .env in working directory)
        """
        self.config: dict[str, Any] = {}

        if config_file is None:
            config_file = Path("config/default.toml")
        if env_file is None:
            env_file = Path(".env")

        self.config_file = Path(config_file)
        self.env_file = Path(env_file)

    def load(self) -> dict[str, Any]:
        """Load configuration from defaults, TOML and environment variables.

        Precedence: code defaults < TOML file < environment variables

        Returns:
            Dictionary of configuration key-value pairs

        Raises:
            ValueError: If configuration validation fails

        Note:
            If the config file doesn't exist, defaults are used with a warning.
        """
        logger.info("loading_config", config_file=str(self.config_file))

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))

        # Step 1: Defaults
        config = get_default_values()

        # Step 2: TOML file
        if self.config_file.exists():
            with open(self.config_file, "rb") as f:
                toml_data = tomllib.load(f)

            flattened = self._flatten_toml(toml_data)
            unknown = sorted(set(flattened) - set(REGISTRY))
            if unknown:
                logger.warning("unknown_config_keys_ignored", keys=unknown)

            for key in REGISTRY:
                if key in flattened:
                    config[key] = flattened[key]

            logger.info("toml_config_loaded", keys_count=len(flattened))
        else:
            logger.warning("config_file_not_found",
                           config_file=str(self.config_file),
                           using_defaults=True)

        # Step 3: Environment variable overrides
        # Example: POLICYBOT_ROUTER_PASSWORD overrides router.password
        for key in REGISTRY:
            env_key = env_var_name(key)
            env_value = os.getenv(env_key)
            if env_value is not None:
                config_key_def = get_config_key(key)
                try:
                    config[key] = self._parse_env_value(
                        env_value, config_key_def.value_type, config_key_def.item_type
                    )
                    logger.info("env_override_applied", key=key, env_key=env_key)
                except ValueError as e:
                    logger.error("env_parse_error", key=key, env_key=env_key, error=str(e))
                    raise ValueError(f"Failed to parse env var {env_key}: {e}")

        # Step 4: Validate
        for key, value in config.items():
            is_valid, error_msg = validate_config_value(key, value)
            if not is_valid:
                logger.error("config_validation_failed",
                             key=key,
                             value=_redact_sensitive_value(key, value),
                             error=error_msg)
                raise ValueError(f"Config validation failed for '{key}': {error_msg}")
            if get_config_key(key).value_type is float:
                config[key] = float(value)

        self.config = config
        logger.info("config_loaded", keys_count=len(config))
        return config

    def get(self, key: str) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key path

        Returns:
            Configuration value

        Raises:
            KeyError: If key not found
        """
        config_key_def = get_config_key(key)
        return self.config.get(key, config_key_def.default)

    def redacted(self) -> dict[str, Any]:
        """Loaded configuration safe for logging."""
        return {key: _redact_sensitive_value(key, value) for key, value in self.config.items()}

    def _flatten_toml(self, data: dict) -> dict[str, Any]:
        """Flatten nested TOML structure to dotted keys.

        Example: {"router": {"base_url": "..."}} -> {"router.base_url": "..."}

        Args:
            data: Nested dictionary from TOML file

        Returns:
            Flattened dictionary with dotted keys
        """
        result = {}

        def _flatten(d: dict, prefix: str = ""):
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _flatten(value, full_key)
                else:
                    result[full_key] = value

        _flatten(data)
        return result

    def _parse_env_value(self, value: str, target_type: type, item_type: Optional[type] = None) -> Any:
        """Parse environment variable string to target type.

        Args:
            value: String value from environment variable
            target_type: Target Python type
            item_type: Item type for lists

        Returns:
            Parsed value in target type

        Raises:
            ValueError: If parsing fails
        """
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        elif target_type == int:
            return int(value)
        elif target_type == float:
            return float(value)
        elif target_type == list:
            # Comma-separated, empty string means empty list
            items = [item.strip() for item in value.split(",") if item.strip()]
            if item_type is not None and item_type is not str:
                return [item_type(item) for item in items]
            return items
        elif target_type == str:
            return value
        else:
            raise ValueError(f"Unsupported type for env parsing: {target_type}")


def load_config(config_file: Optional[Path] = None,
                env_file: Optional[Path] = None) -> ConfigManager:
    """Create a ConfigManager and load it.

    Args:
        config_file: Path to TOML config file
        env_file: Path to .env file

    Returns:
        Loaded ConfigManager instance
    """
    manager = ConfigManager(config_file, env_file)
    manager.load()
    return manager
