"""
Logging setup for the server monitor.

Application logs go to stdout as one JSON object per line (or plain text for
interactive runs). Module loggers hang below the ``server_monitor`` logger and
attach structured context with ``extra={...}``. Plain append-only files, such
as the update decision log, get their own non-propagating logger through
``open_file_logger``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from server_monitor.config import LoggingConfig

ROOT_LOGGER_NAME = "server_monitor"

TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    Render a LogRecord as a single JSON line.

    Output keys: ``timestamp`` (record creation time, ISO 8601 UTC),
    ``level``, ``logger``, ``message``, ``exception`` when exc_info is set,
    and every non-None ``extra`` field. Values json cannot encode are
    rendered with ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and value is not None:
                entry[key] = value

        return json.dumps(entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
) -> logging.Logger:
    """
    (Re)configure the ``server_monitor`` logger.

    Existing handlers are replaced, so calling this twice does not duplicate
    output. The logger does not propagate to the root logger.

    Args:
        config: Logging section of the app config; when given, its
            ``level``, ``json_format`` and ``log_to_stdout`` win over the
            keyword arguments.
        level: Level name used without a config.
        json_format: JSON lines instead of the plain text format.
        log_to_stdout: Install the stdout handler at all.

    Returns:
        The ``server_monitor`` logger.
    """
    if config is not None:
        level = config.level
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    logger.propagate = False

    if log_to_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(numeric_level)
        handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(TEXT_LOG_FORMAT)
        )
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name`` below ``server_monitor``."""
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def open_file_logger(name: str, path: Path) -> logging.Logger:
    """
    Return a logger writing bare messages to ``path`` in append mode.

    The logger does not propagate, and its previous handlers are closed and
    replaced.

    Raises:
        OSError: If the file or its directory cannot be created.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))

    file_logger = logging.getLogger(name)
    file_logger.setLevel(logging.INFO)
    file_logger.propagate = False
    close_file_logger(file_logger)
    file_logger.addHandler(handler)
    return file_logger


def close_file_logger(file_logger: logging.Logger) -> None:
    """Close and detach every handler of ``file_logger``."""
    for handler in list(file_logger.handlers):
        handler.close()
        file_logger.removeHandler(handler)
