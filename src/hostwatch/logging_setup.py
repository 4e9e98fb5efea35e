"""structlog configuration.

structlog renders each event and hands it to the standard library
"hostwatch" logger, whose handlers decide where it goes (stderr, plus an
optional file). Call configure_logging() once at startup; calling it again
replaces the handlers.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

_LOGGER_NAME = "hostwatch"


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    file_path: Optional[str] = None,
) -> None:
    """Configure structlog and the stdlib handlers behind it.

    Args:
        level: Minimum level name ("DEBUG", "INFO", ...)
        fmt: "console" for human-readable lines, "json" for one JSON object per line
        file_path: Optional log file, written in addition to stderr
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    elif fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        raise ValueError(f"Unknown log format: {fmt}")

    root = logging.getLogger(_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    structlog.get_logger(__name__).debug("logging_configured", level=level, format=fmt, file_path=file_path)


def set_log_level(level: str) -> None:
    """Apply a new level to the stdlib handlers (hot-reload of logging.level)."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.getLogger(_LOGGER_NAME).setLevel(numeric_level)
