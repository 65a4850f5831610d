# Configuration - registry of keys and TOML/env loading

from .manager import ConfigManager, load_config
from .registry import REGISTRY, ConfigKey, get_config_key, validate_config_value

__all__ = [
    "ConfigManager",
    "load_config",
    "REGISTRY",
    "ConfigKey",
    "get_config_key",
    "validate_config_value",
]
