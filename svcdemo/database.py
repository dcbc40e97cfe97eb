"""Labelled database clusters with read/write split and context-bound transactions."""

from __future__ import annotations

import contextlib
import contextvars
import itertools
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

from sqlalchemy import Engine, Select, create_engine, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import DBCluster
from .errors import READ_DB_ERROR, WRITE_DB_ERROR
from .logger import get_logger

T = TypeVar("T")
Option = Callable[[Select], Select]

_START_KEY = "svcdemo_query_start"


class RecordNotFoundError(LookupError):
    """Raised when a query expected one row and found none."""

    def __init__(self, model: type | None = None) -> None:
        name = getattr(model, "__tablename__", None) or getattr(model, "__name__", "")
        super().__init__(f"record not found{f' in {name}' if name else ''}")
        self.model = model


class UnknownDBLabelError(LookupError):
    """Raised when no database is registered under a label."""

    def __init__(self, label: str) -> None:
        super().__init__(f"DB label {label} not exist")
        self.label = label


@dataclass
class _EngineInfo:
    write_engine: Engine
    read_engines: tuple[Engine, ...] = ()
    _counter: Iterator[int] = field(default_factory=lambda: itertools.count(1))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def read_engine(self) -> Engine:
        if not self.read_engines:
            return self.write_engine
        with self._lock:
            index = next(self._counter)
        return self.read_engines[index % len(self.read_engines)]


_lock = threading.Lock()
_engines: dict[str, _EngineInfo] = {}
_transactions: contextvars.ContextVar[Mapping[str, Session]] = contextvars.ContextVar(
    "svcdemo_transactions", default=MappingProxyType({})
)


def _command(statement: str | None) -> str:
    words = (statement or "").split(maxsplit=1)
    return words[0].upper() if words else ""


def _pop_start(conn: Any) -> float | None:
    if conn is None:
        return None
    starts = conn.info.get(_START_KEY)
    return starts.pop() if starts else None


def _elapsed_ms(start: float | None) -> float:
    return 0.0 if start is None else (time.monotonic() - start) * 1000


def _instrument(engine: Engine, label: str, role: str) -> None:
    """Log every statement the engine runs with its duration."""

    def before(conn, cursor, statement, parameters, context, executemany) -> None:
        conn.info.setdefault(_START_KEY, []).append(time.monotonic())

    def after(conn, cursor, statement, parameters, context, executemany) -> None:
        duration = _elapsed_ms(_pop_start(conn))
        get_logger().info(
            "db:[%s],role:[%s],cmd:[%s],rows:[%d],sql:[%s],duration:[%.3fms]",
            label, role, _command(statement), cursor.rowcount, statement, duration,
        )

    def on_error(context) -> None:
        duration = _elapsed_ms(_pop_start(context.connection))
        get_logger().error(
            "db:[%s],role:[%s],cmd:[%s],sql:[%s],duration:[%.3fms],err:[%s]",
            label, role, _command(context.statement), context.statement,
            duration, context.original_exception,
        )

    event.listen(engine, "before_cursor_execute", before)
    event.listen(engine, "after_cursor_execute", after)
    event.listen(engine, "handle_error", on_error)


def register_engines(
    label: str, write_engine: Engine, read_engines: Sequence[Engine] | None = None
) -> None:
    """Register a writer and its read replicas under ``label``, replacing any before."""
    readers = tuple(read_engines or ())
    _instrument(write_engine, label, "master")
    for reader in readers:
        _instrument(reader, label, "slave")
    with _lock:
        _engines[label] = _EngineInfo(write_engine, readers)


def register_cluster(cfg: DBCluster) -> None:
    """Create engines for the master and slaves of ``cfg`` and register them."""
    master = create_engine(cfg.master.dsn)
    slaves = [create_engine(slave.dsn) for slave in cfg.slaves]
    register_engines(cfg.effective_label(), master, slaves)


def _info(label: str) -> _EngineInfo:
    with _lock:
        info = _engines.get(label)
    if info is None:
        raise UnknownDBLabelError(label)
    return info


def _new_session(engine: Engine) -> Session:
    return Session(bind=engine, expire_on_commit=False)


def _current_transaction(label: str) -> Session | None:
    return _transactions.get().get(label)


@contextlib.contextmanager
def write_session(label: str) -> Iterator[Session]:
    """Yield a session on the writer; inside :func:`transaction` the open one."""
    tx = _current_transaction(label)
    if tx is not None:
        yield tx
        return
    session = _new_session(_info(label).write_engine)
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


@contextlib.contextmanager
def read_session(label: str) -> Iterator[Session]:
    """Yield a session on a read replica, round robin; inside a transaction the open one."""
    tx = _current_transaction(label)
    if tx is not None:
        yield tx
        return
    session = _new_session(_info(label).read_engine())
    try:
        yield session
    finally:
        session.close()


@contextlib.contextmanager
def transaction(label: str) -> Iterator[Session]:
    """Run the block in one transaction on ``label``; nested blocks join it."""
    active = _transactions.get()
    if label in active:
        yield active[label]
        return
    session = _new_session(_info(label).write_engine)
    token = _transactions.set(MappingProxyType({**active, label: session}))
    log = get_logger()
    try:
        try:
            yield session
        except BaseException:
            try:
                session.rollback()
            except Exception as exc:
                log.error("Transaction rollback err:[%s]", exc)
            raise
        try:
            session.commit()
        except Exception as exc:
            log.error("Transaction commit err:[%s]", exc)
            raise
    finally:
        _transactions.reset(token)
        session.close()


def _select(model: type[T], options: Sequence[Option]) -> Select:
    stmt = select(model)
    for option in options:
        stmt = option(stmt)
    return stmt


def create(label: str, obj: T) -> T:
    """Insert ``obj`` on the writer and return it with its generated columns."""
    try:
        with write_session(label) as session:
            session.add(obj)
            session.flush()
    except SQLAlchemyError as exc:
        raise WRITE_DB_ERROR.wrap(exc) from exc
    return obj


def find(label: str, model: type[T], *args: Option) -> list[T]:
    """Return every row of ``model`` that the options select."""
    try:
        with read_session(label) as session:
            return list(session.scalars(_select(model, args)).all())
    except SQLAlchemyError as exc:
        raise READ_DB_ERROR.wrap(exc) from exc


def take(label: str, model: type[T], *args: Option) -> T:
    """Return the first row of ``model`` that the options select."""
    try:
        with read_session(label) as session:
            obj = session.scalars(_select(model, args).limit(1)).first()
    except SQLAlchemyError as exc:
        raise READ_DB_ERROR.wrap(exc) from exc
    if obj is None:
        not_found = RecordNotFoundError(model)
        raise READ_DB_ERROR.wrap(not_found) from not_found
    return obj