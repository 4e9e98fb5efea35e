"""Every setting hostwatch understands, with its type, bounds and tier.

Static keys (disk path, recent-request capacity, log sinks) are fixed for
the life of the process. Dynamic keys (cache refresh interval, collection
timeout, health thresholds, log level, excluded paths) may be changed while
it runs; see ConfigManager.update_dynamic_config.
"""

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional


@dataclass(frozen=True)
class ConfigKey:
    """Definition of one setting.

    `min_value`/`max_value` apply to numeric keys only; `validator` is an
    extra predicate run after the type and range checks.
    """

    tier: Literal["static", "dynamic"]
    value_type: type
    default: Any
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    validator: Optional[Callable[[Any], bool]] = None

    @property
    def restart_required(self) -> bool:
        return self.tier == "static"


REGISTRY: dict[str, ConfigKey] = {
    # ===== MONITORING CORE =====
    "monitoring.refresh_interval_seconds": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=2.0,
        min_value=0.1,
        max_value=300.0,
    ),
    "monitoring.collect_timeout_seconds": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=5.0,
        min_value=0.1,
        max_value=60.0,
    ),
    "monitoring.disk_path": ConfigKey(
        tier="static",
        value_type=str,
        default="/",
        validator=lambda v: len(v) > 0,
    ),
    "monitoring.recent_requests_capacity": ConfigKey(
        tier="static",
        value_type=int,
        default=100,
        min_value=1,
        max_value=100_000,
    ),
    "monitoring.request_rate_window_seconds": ConfigKey(
        tier="static",
        value_type=float,
        default=5.0,
        min_value=0.1,
        max_value=3600.0,
    ),
    "monitoring.excluded_paths": ConfigKey(
        tier="dynamic",
        value_type=list,
        default=["/favicon.ico", "/service-worker.js", "/manifest.json"],
        validator=lambda v: all(isinstance(p, str) and p.startswith("/") for p in v),
    ),

    # ===== OBSERVABILITY (Dynamic - health thresholds) =====
    "observability.refresh_loop_interval_seconds": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=30.0,
        min_value=1.0,
        max_value=3600.0,
    ),
    "observability.memory_warn_percent": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=90.0,
        min_value=1.0,
        max_value=100.0,
    ),
    "observability.disk_warn_percent": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=90.0,
        min_value=1.0,
        max_value=100.0,
    ),
    "observability.error_rate_warn_percent": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=25.0,
        min_value=0.0,
        max_value=100.0,
    ),
    "observability.cpu_temp_warn_celsius": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=85.0,
        min_value=30.0,
        max_value=150.0,
    ),

    # ===== LOGGING (Static sinks, Dynamic verbosity) =====
    "logging.level": ConfigKey(
        tier="dynamic",
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
    "logging.format": ConfigKey(
        tier="static",
        value_type=str,
        default="console",
        validator=lambda v: v in ("console", "json"),
    ),
    "logging.file_path": ConfigKey(
        tier="static",
        value_type=str,
        default="",
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Look up a key definition.

    Raises:
        KeyError: The key is not registered
    """
    try:
        return REGISTRY[key]
    except KeyError:
        raise KeyError(f"Configuration key '{key}' not found in registry") from None


def coerce_config_value(key: str, value: Any) -> Any:
    """Widen TOML integers to float for float-typed keys."""
    if get_config_key(key).value_type is float and type(value) is int:
        return float(value)
    return value


def _type_problem(definition: ConfigKey, value: Any) -> Optional[str]:
    expected = definition.value_type
    # bool subclasses int; only a bool key accepts True/False
    if isinstance(value, bool) and expected is not bool:
        return f"Expected type {expected.__name__}, got bool"
    if not isinstance(value, expected):
        return f"Expected type {expected.__name__}, got {type(value).__name__}"
    return None


def _range_problem(definition: ConfigKey, value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if definition.min_value is not None and value < definition.min_value:
        return f"Value {value} below minimum {definition.min_value}"
    if definition.max_value is not None and value > definition.max_value:
        return f"Value {value} above maximum {definition.max_value}"
    return None


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Check `value` against the definition of `key`.

    Returns:
        (True, None) when valid, else (False, reason)
    """
    try:
        definition = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    problem = _type_problem(definition, value) or _range_problem(definition, value)
    if problem is None and definition.validator is not None:
        try:
            if not definition.validator(value):
                problem = f"Rejected value: {value!r}"
        except Exception as e:
            problem = f"Validator error: {e}"
    return problem is None, problem


def get_default_values() -> dict[str, Any]:
    return {key: definition.default for key, definition in REGISTRY.items()}


def keys_for_tier(tier: str) -> list[str]:
    return [key for key, definition in REGISTRY.items() if definition.tier == tier]


def get_static_keys() -> list[str]:
    return keys_for_tier("static")


def get_dynamic_keys() -> list[str]:
    return keys_for_tier("dynamic")
