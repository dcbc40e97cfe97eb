"""Coded application errors and helpers to inspect error chains."""

from __future__ import annotations

from collections.abc import Iterator

from . import codes


class AppError(Exception):
    """An error carrying a response code and a message."""

    def __init__(self, code: int, message: str, *, origin: AppError | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self._origin = origin

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"AppError({self.code!r}, {self.message!r})"

    def wrap(self, err: BaseException) -> Exception:
        """Return an error that is both this error and ``err``."""
        return _WrappedError(f"{self}, cause:[{err}]", self, err)

    def with_message(self, msg: str) -> Exception:
        """Return this error annotated with a cause message."""
        return _WrappedError(f"{self}, cause:[{msg}]", self)

    def withf(self, fmt: str, *args: object) -> Exception:
        """Like :meth:`with_message` with %-style formatting."""
        return self.with_message(fmt % args if args else fmt)

    def infof(self, fmt: str, *args: object) -> AppError:
        """Return a variant of this error with extra detail in its message."""
        detail = fmt % args if args else fmt
        return AppError(self.code, f"{self.message},{detail}", origin=self)


class _WrappedError(Exception):
    def __init__(self, message: str, *errors: BaseException) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors
        if len(errors) > 1:
            self.__cause__ = errors[-1]

    def __str__(self) -> str:
        return self.message


def _walk(err: BaseException | None) -> Iterator[BaseException]:
    seen: set[int] = set()
    stack = [err] if err is not None else []
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        children: list[BaseException] = []
        if isinstance(node, AppError) and node._origin is not None:
            children.append(node._origin)
        if isinstance(node, _WrappedError):
            children.extend(node.errors)
        if node.__cause__ is not None:
            children.append(node.__cause__)
        stack.extend(reversed(children))


def extract_error(err: BaseException | None) -> AppError | None:
    """Return the first :class:`AppError` in the chain of ``err``, if any."""
    return next((node for node in _walk(err) if isinstance(node, AppError)), None)


def error_is(err: BaseException | None, target: BaseException | type) -> bool:
    """Tell whether ``target`` (an error or an error type) is in the chain of ``err``."""
    if isinstance(target, type):
        return any(isinstance(node, target) for node in _walk(err))
    return any(node is target for node in _walk(err))


DUPLICATE_ERROR = AppError(codes.DUPLICATE, "Duplicate Request")

READ_DB_ERROR = AppError(codes.READ_DB_FAIL, "Read DB Fail")
WRITE_DB_ERROR = AppError(codes.WRITE_DB_FAIL, "Write DB Fail")
GENERATE_ID_ERROR = AppError(codes.GENERATE_ID_FAIL, "Generate Id Fail")
INVALID_JOB_PROTOCOL_ERROR = AppError(codes.INVALID_JOB_PROTOCOL, "Invalid Job Protocol")
SEND_KAFKA_ERROR = AppError(codes.SEND_KAFKA_FAIL, "Send Kafka Fail")

RECORD_EXISTED_ERROR = AppError(codes.RECORD_EXISTED, "Record Is Existed")