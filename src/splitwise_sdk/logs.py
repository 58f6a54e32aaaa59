"""Structured request logging on top of the standard ``logging`` module.

Every pipeline event is a LogEntry. Its fields travel as ``extra`` attributes on
the LogRecord (so handlers and formatters can pick them up) and are also rendered
as ``key=value`` pairs in the message text for plain handlers.
"""

import contextlib
import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Union

from .errors import ConfigurationError

LOGGER_NAME = "splitwise_sdk"

STRUCTURED_FIELDS = (
    "correlation_id",
    "method",
    "endpoint",
    "status",
    "duration_ms",
    "retry_count",
    "error_kind",
    "prefix",
    "removed",
)

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger(name: Union[str, None] = None) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def coerce_level(level: Union[int, str, None]) -> Union[int, None]:
    if level is None or isinstance(level, int):
        return level
    try:
        return LEVELS[level.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown log level {level!r}; use one of {sorted(LEVELS)}"
        ) from None


@dataclass
class LogEntry:
    level: int
    message: str
    correlation_id: Union[str, None] = None
    method: Union[str, None] = None
    endpoint: Union[str, None] = None
    status: Union[int, None] = None
    duration_ms: Union[int, None] = None
    retry_count: Union[int, None] = None
    error_kind: Union[str, None] = None
    prefix: Union[str, None] = None
    removed: Union[int, None] = None

    def fields(self) -> dict:
        data = asdict(self)
        return {k: data[k] for k in STRUCTURED_FIELDS if data[k] is not None}


def log_event(logger: logging.Logger, entry: LogEntry) -> None:
    """Emit ``entry``; logging problems never propagate into the request path."""
    with contextlib.suppress(Exception):
        if not logger.isEnabledFor(entry.level):
            return
        fields = entry.fields()
        text = entry.message
        if fields:
            text += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        logger.log(entry.level, text, extra={"event": entry.message, **fields})


class CallbackHandler(logging.Handler):
    """Forward formatted records to a plain ``(message: str) -> None`` callback."""

    def __init__(self, callback: Callable[[str], None], level: int = logging.NOTSET):
        super().__init__(level)
        self.callback = callback

    def emit(self, record):
        try:
            self.callback(self.format(record))
        except Exception:
            self.handleError(record)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: level, message, and whichever structured fields are set."""

    def format(self, record):
        payload = {
            "level": record.levelname.lower(),
            "message": getattr(record, "event", None) or record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)
