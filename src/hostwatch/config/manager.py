"""Layered settings for hostwatch.

Values resolve as registry defaults, then the TOML file, then environment
variables named HOSTWATCH_<SECTION>_<KEY> (HOSTWATCH_MONITORING_DISK_PATH
overrides monitoring.disk_path). A .env file, if present, is loaded into
the environment first.

Static keys are read once at startup. Dynamic keys can change while the
process runs, either through update_dynamic_config() or by re-reading the
TOML file with reload_dynamic_config(); every accepted change is pushed to
subscribers as callback(key, value).
"""

import copy
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

import structlog
from dotenv import load_dotenv

from .registry import (
    coerce_config_value,
    get_config_key,
    get_default_values,
    get_dynamic_keys,
    get_static_keys,
    validate_config_value,
)

logger = structlog.get_logger(__name__)

ENV_PREFIX = "HOSTWATCH_"
DEFAULT_CONFIG_FILE = Path("config/default.toml")
DEFAULT_ENV_FILE = Path(".env")

Subscriber = Callable[[str, Any], None]

_TRUE_WORDS = ("true", "1", "yes", "on")


def env_var_name(key: str) -> str:
    """Environment variable that overrides `key`, e.g. HOSTWATCH_MONITORING_DISK_PATH."""
    return ENV_PREFIX + key.replace(".", "_").upper()


def flatten_toml(data: dict[str, Any]) -> dict[str, Any]:
    """{"monitoring": {"disk_path": "/"}} -> {"monitoring.disk_path": "/"}."""
    flat: dict[str, Any] = {}
    pending: list[tuple[str, dict[str, Any]]] = [("", data)]
    while pending:
        prefix, table = pending.pop()
        for name, value in table.items():
            dotted = f"{prefix}.{name}" if prefix else name
            if isinstance(value, dict):
                pending.append((dotted, value))
            else:
                flat[dotted] = value
    return flat


def parse_env_value(raw: str, value_type: type) -> Any:
    """Convert an environment string to the key's registered type.

    Lists are comma separated; blank items are dropped.

    Raises:
        ValueError: The string does not parse as value_type
    """
    if value_type is bool:
        return raw.strip().lower() in _TRUE_WORDS
    if value_type is int:
        return int(raw)
    if value_type is float:
        return float(raw)
    if value_type is list:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if value_type is str:
        return raw
    raise ValueError(f"no env parser for {value_type.__name__}")


class ConfigManager:
    """Resolves, validates and hot-updates hostwatch settings.

    Attributes:
        config_file: TOML file read on every load
        env_file: Optional .env file loaded before static keys
        static_config: Resolved static keys
        dynamic_config: Current dynamic keys
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        self.config_file = config_file if config_file is not None else DEFAULT_CONFIG_FILE
        self.env_file = env_file if env_file is not None else DEFAULT_ENV_FILE
        self.static_config: dict[str, Any] = {}
        self.dynamic_config: dict[str, Any] = {}
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        logger.debug("config_manager_created", config_file=str(self.config_file), env_file=str(self.env_file))

    # -- loading --------------------------------------------------------------

    def _file_values(self) -> dict[str, Any]:
        if not self.config_file.exists():
            logger.warning("config_file_missing", config_file=str(self.config_file), using_defaults=True)
            return {}
        with open(self.config_file, "rb") as f:
            values = flatten_toml(tomllib.load(f))
        logger.debug("config_file_read", config_file=str(self.config_file), keys=len(values))
        return values

    def _env_value(self, key: str) -> tuple[bool, Any]:
        name = env_var_name(key)
        raw = os.getenv(name)
        if raw is None:
            return False, None
        try:
            value = parse_env_value(raw, get_config_key(key).value_type)
        except ValueError as e:
            logger.error("config_env_invalid", key=key, env_var=name, error=str(e))
            raise ValueError(f"Failed to parse env var {name}: {e}") from e
        logger.info("config_env_override", key=key, env_var=name)
        return True, value

    def _resolve(self, keys: list[str], tier: str) -> dict[str, Any]:
        """Defaults < file < environment for `keys`, validated as a whole."""
        defaults = get_default_values()
        from_file = self._file_values()
        resolved: dict[str, Any] = {}
        for key in keys:
            value = copy.deepcopy(defaults[key])
            if key in from_file:
                value = coerce_config_value(key, from_file[key])
            found, env_value = self._env_value(key)
            if found:
                value = env_value

            ok, problem = validate_config_value(key, value)
            if not ok:
                logger.error("config_value_rejected", tier=tier, key=key, error=problem)
                raise ValueError(f"{tier.capitalize()} config validation failed for '{key}': {problem}")
            resolved[key] = value
        return resolved

    def load_static_config(self) -> dict[str, Any]:
        """Resolve the static keys (loads the .env file first).

        Raises:
            ValueError: A value fails to parse or validate
        """
        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))
        self.static_config = self._resolve(get_static_keys(), "static")
        logger.info("static_config_loaded", keys=len(self.static_config))
        return self.static_config

    def load_dynamic_config(self) -> dict[str, Any]:
        """Resolve the initial dynamic keys.

        Raises:
            ValueError: A value fails to parse or validate
        """
        resolved = self._resolve(get_dynamic_keys(), "dynamic")
        with self._lock:
            self.dynamic_config = resolved
        logger.info("dynamic_config_loaded", keys=len(resolved))
        return resolved

    def reload_dynamic_config(self) -> list[str]:
        """Re-read the file and environment and apply changed dynamic keys.

        The whole dynamic tier is validated before anything is applied, so
        a bad edit leaves the running values untouched.

        Returns:
            Keys whose value changed, in registry order

        Raises:
            ValueError: A value fails to parse or validate
        """
        resolved = self._resolve(get_dynamic_keys(), "dynamic")
        with self._lock:
            changed = [key for key, value in resolved.items() if self.dynamic_config.get(key) != value]
        for key in changed:
            self._apply(key, resolved[key])
        logger.info("dynamic_config_reloaded", changed=changed)
        return changed

    # -- runtime updates ------------------------------------------------------

    def update_dynamic_config(self, key: str, value: Any) -> None:
        """Set one dynamic key and notify subscribers.

        Raises:
            KeyError: Unknown key, or a static key
            ValueError: The value fails validation
        """
        if get_config_key(key).tier != "dynamic":
            raise KeyError(f"Cannot hot-update static config key '{key}' - restart required")
        value = coerce_config_value(key, value)
        ok, problem = validate_config_value(key, value)
        if not ok:
            raise ValueError(f"Config validation failed for '{key}': {problem}")
        self._apply(key, value)

    def _apply(self, key: str, value: Any) -> None:
        with self._lock:
            previous = self.dynamic_config.get(key)
            self.dynamic_config[key] = value
            subscribers = list(self._subscribers)
        logger.info("dynamic_config_updated", key=key, old_value=previous, new_value=value)

        # Subscriber failures are logged, never propagated
        for callback in subscribers:
            try:
                callback(key, value)
            except Exception as e:
                logger.error(
                    "config_subscriber_failed",
                    key=key,
                    subscriber=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                )

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def get(self, key: str) -> Any:
        """Current value of any registered key.

        Raises:
            KeyError: Unknown key
        """
        definition = get_config_key(key)
        if definition.tier == "static":
            return self.static_config.get(key, definition.default)
        with self._lock:
            return self.dynamic_config.get(key, definition.default)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Process-wide manager set up by initialize_config().

    Raises:
        RuntimeError: initialize_config() has not run
    """
    if _config_manager is None:
        raise RuntimeError("ConfigManager not initialized. Call initialize_config() first.")
    return _config_manager


def initialize_config(config_file: Optional[Path] = None, env_file: Optional[Path] = None) -> ConfigManager:
    """Create the process-wide manager and load both tiers."""
    global _config_manager
    manager = ConfigManager(config_file, env_file)
    manager.load_static_config()
    manager.load_dynamic_config()
    _config_manager = manager
    return manager
