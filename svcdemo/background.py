"""Background threads that log instead of dying on an exception."""

from __future__ import annotations

import contextvars
import threading
import traceback
from collections.abc import Callable
from typing import Any

from .logger import get_logger


def log_panic_stack(exc: object) -> None:
    """Log ``exc`` with its stack at error level."""
    if isinstance(exc, BaseException):
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        stack = "".join(traceback.format_stack())
    get_logger().error("Panic:[%s]\n%s", exc, stack)


def safe_go(target: Callable[..., Any], *args: Any, **kwargs: Any) -> threading.Thread:
    """Run ``target`` in a daemon thread, logging any exception it raises."""
    context = contextvars.copy_context()

    def run() -> None:
        try:
            target(*args, **kwargs)
        except Exception as exc:
            log_panic_stack(exc)

    thread = threading.Thread(target=context.run, args=(run,), daemon=True)
    thread.start()
    return thread