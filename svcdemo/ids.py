"""Segment-based allocation of unique identifiers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import GENERATE_ID_ERROR, AppError
from .logger import get_logger
from .models import IdCreator, IdType
from .repositories import IdRepo, with_id_type


class PoolFromDBFailError(RuntimeError):
    """Raised when no id segment could be claimed within the allowed tries."""

    def __init__(self) -> None:
        super().__init__("Get id pool from database fail, may try too much times")


class PoolStepIsZeroError(ValueError):
    """Raised when an allocator record has a step of zero."""

    def __init__(self) -> None:
        super().__init__("Id pool step is zero")


class _IdSource(Protocol):
    def get_record(self, *args: Any) -> IdCreator: ...

    def update_offset(self, id_type: Any, old_offset: int, step: int) -> int: ...


@dataclass
class _IdPool:
    lock: threading.Lock = field(default_factory=threading.Lock)
    max: int = 0
    offset: int = 0
    count: int = 0

    def next_id(self) -> int | None:
        value = self.offset + self.count
        if value >= self.max:
            return None
        self.count += 1
        return value


def _generate_error(id_type: IdType | int) -> AppError:
    return GENERATE_ID_ERROR.infof("id_type:%s", id_type)


class IdDomain:
    """Hands out identifiers from segments claimed in the database."""

    def __init__(self, id_repo: _IdSource | None = None) -> None:
        self.id_repo: _IdSource = IdRepo() if id_repo is None else id_repo
        self._pools: dict[int, _IdPool] = {}
        self._lock = threading.Lock()

    def _pool(self, id_type: IdType | int) -> _IdPool:
        with self._lock:
            return self._pools.setdefault(int(id_type), _IdPool())

    def get_id(self, id_type: IdType | int, max_try: int = 1) -> int:
        """Return the next identifier of ``id_type``, claiming a new segment when needed."""
        max_try = max(max_try, 1)
        log = get_logger()
        pool = self._pool(id_type)
        with pool.lock:
            value = pool.next_id()
            if value is not None:
                log.debug("generate idtype:%s, id:%d", id_type, value)
                return value

            log.debug("idtype:%s id used up, try pull", id_type)
            for attempt in range(1, max_try + 1):
                try:
                    record = self.id_repo.get_record(with_id_type(id_type))
                except Exception as exc:
                    raise _generate_error(id_type).wrap(exc) from exc

                if not record.step:
                    log.error("Id pool is invalid, idType:[%s]", id_type)
                    cause = PoolStepIsZeroError()
                    raise _generate_error(id_type).wrap(cause) from cause

                try:
                    rows = self.id_repo.update_offset(id_type, record.offset, record.step)
                except Exception as exc:
                    raise _generate_error(id_type).wrap(exc) from exc

                if rows == 0:
                    log.warning(
                        "UpdateOffset affectRows is zero, id_type:[%s], Offset[%d], step:[%d], "
                        "times[%d], retryTimes[%d]",
                        id_type, record.offset, record.step, attempt, max_try,
                    )
                    continue

                pool.offset = record.offset
                pool.max = record.offset + record.step
                pool.count = 0
                value = pool.next_id()
                if value is not None:
                    return value

        cause = PoolFromDBFailError()
        raise _generate_error(id_type).wrap(cause) from cause


_instance: IdDomain | None = None
_instance_lock = threading.Lock()


def get_id_domain() -> IdDomain:
    """Return the process-wide id domain."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = IdDomain()
        return _instance