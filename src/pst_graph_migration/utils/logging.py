"""Logging helpers for console output."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from pst_graph_migration.config.settings import LoggingSettings

_RESERVED_LOG_RECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__,
) | {"message", "asctime"}

_NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "msal": logging.WARNING,
    "urllib3": logging.WARNING,
}


def _safe_json_value(value: object) -> Any:
    """Coerce a value to something JSON-serializable.

    Args:
        value: Value to serialize.

    Returns:
        The original value if JSON-serializable; otherwise, its string representation.
    """
    try:
        json.dumps(value)
        return value
    except TypeError:
        return str(value)


class JsonLogFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record.

    Fields passed through ``extra=`` (``kind``, ``folder``, ``outcome`` ...) are
    copied into the payload next to the standard ones.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON string representation.
        """
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(
                timespec="milliseconds",
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_KEYS or key.startswith("_"):
                continue
            payload[key] = _safe_json_value(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(*, settings: LoggingSettings, console: Console | None = None) -> None:
    """Configure stderr logging for CLI runs.

    Args:
        settings: Logging settings (level and JSON/human output).
        console: Rich console shared with progress output, for human logs.
    """
    level_name = settings.level.strip().upper() if settings.level else "INFO"
    level = getattr(logging, level_name, logging.INFO)

    handler: logging.Handler
    if settings.json_logs:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLogFormatter())
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
            log_time_format="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler.setLevel(level)

    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, noisy_level))
