# Configuration - two-tier (static/dynamic) settings registry and loader

from .manager import ConfigManager, get_config_manager, initialize_config
from .registry import REGISTRY, ConfigKey, get_config_key, validate_config_value

__all__ = [
    "REGISTRY",
    "ConfigKey",
    "ConfigManager",
    "get_config_key",
    "get_config_manager",
    "initialize_config",
    "validate_config_value",
]
