"""Pipe-separated console logging with context-bound fields."""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from collections.abc import Iterator, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import IO, Any

TRACE_ID_KEY = "trace_id"
SPAN_ID_KEY = "span_id"
REQUEST_ID_KEY = "request_id"

NORMAL_FORMAT = "%Y-%m-%d %H:%M:%S"

LOGGER_NAME = "svcdemo"

_fields: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "svcdemo_log_fields", default=MappingProxyType({})
)

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


class FieldsFormatter(logging.Formatter):
    """Formats records as ``time|level|file:line|message[|fields-json]``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "fields", None)
        if fields is None:
            fields = current_fields()
        parts = [
            datetime.fromtimestamp(record.created).strftime(NORMAL_FORMAT),
            _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            f"{record.filename}:{record.lineno}",
            record.getMessage(),
        ]
        if fields:
            parts.append(json.dumps(dict(fields), default=str, ensure_ascii=False))
        line = "|".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


@contextlib.contextmanager
def bind_fields(**kwargs: Any) -> Iterator[dict[str, Any]]:
    """Add fields to every record logged inside the block."""
    token = _fields.set(MappingProxyType({**_fields.get(), **kwargs}))
    try:
        yield current_fields()
    finally:
        _fields.reset(token)


def current_fields() -> dict[str, Any]:
    """Return the fields bound in the current context."""
    return dict(_fields.get())


def configure(stream: IO[str]) -> logging.Logger:
    """Send the package logger's output to ``stream``."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(FieldsFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def get_logger() -> logging.Logger:
    """Return the package logger, writing to stdout unless configured."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure(sys.stdout)
    return logger