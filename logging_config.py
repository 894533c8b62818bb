from __future__ import annotations

import json
import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Iterator, Tuple

from settings import get_settings

# ``extra`` keys the ingestion path and the broker adapters attach to records.
CONTEXT_KEYS = (
    "state",
    "broker",
    "client_id",
    "topic",
    "device_id",
    "reading_id",
    "payload_size",
    "reason",
)

# Third-party loggers that are too chatty at INFO.
_QUIET_LOGGERS = ("sqlalchemy.engine", "paho.mqtt.client")

_LINE_FORMAT = "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s"

_configured = False


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str) and (not value or any(ch.isspace() for ch in value)):
        return json.dumps(value)
    return str(value)


class ContextualFormatter(logging.Formatter):
    """Appends ingestion context as ``key=value`` pairs after the message.

    Broker reasons are free text, so values with whitespace are quoted to keep
    each line splittable on spaces.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Tuple[str, ...] = tuple(extra_keys) if extra_keys is not None else CONTEXT_KEYS

    def _context(self, record: logging.LogRecord) -> Iterator[str]:
        for key in self._context_keys:
            value = record.__dict__.get(key)
            if value is not None:
                yield f"{key}={_render(value)}"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(self._context(record))
        return f"{line} | {context}" if context else line


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": _LINE_FORMAT,
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "extra_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the console handler once per process; later calls are no-ops."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
