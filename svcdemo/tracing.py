"""Per-request trace identifiers held in the current context."""

from __future__ import annotations

import contextlib
import contextvars
import uuid
from collections.abc import Iterator
from dataclasses import dataclass

_UUID_NAME = "xxx"


@dataclass(frozen=True)
class TraceContext:
    """Identifiers of the trace, span and request being served."""

    trace_id: str = ""
    span_id: str = ""
    request_id: str = ""
    span_name: str = ""


_trace: contextvars.ContextVar[TraceContext] = contextvars.ContextVar(
    "svcdemo_trace", default=TraceContext()
)


@contextlib.contextmanager
def bind_trace(trace: TraceContext) -> Iterator[TraceContext]:
    """Make ``trace`` the current trace inside the block."""
    token = _trace.set(trace)
    try:
        yield trace
    finally:
        _trace.reset(token)


def current_trace() -> TraceContext:
    """Return the current trace, empty when none is bound."""
    return _trace.get()


def get_trace_id() -> str:
    return _trace.get().trace_id


def get_span_id() -> str:
    return _trace.get().span_id


def get_request_id() -> str:
    return _trace.get().request_id


def new_uuid() -> str:
    """Return a fresh name-based identifier under a random namespace."""
    return str(uuid.uuid5(uuid.uuid4(), _UUID_NAME))