"""Request and response messages of the HTTP and job protocols."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

_MAX_UINT64 = 2**64 - 1
_DIGITS = re.compile(r"[0-9]+")
_EMAIL = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def _first(params: Mapping[str, Any], key: str) -> Any:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _field_error(struct: str, name: str, tag: str) -> str:
    return f"Key: '{struct}.{name}' Error:Field validation for '{name}' failed on the '{tag}' tag"


def _parse_uint(raw: Any) -> int:
    if raw is None or raw == "":
        return 0
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    elif isinstance(raw, str) and _DIGITS.fullmatch(raw):
        value = int(raw)
    else:
        raise ValueError(f'strconv.ParseUint: parsing "{raw}": invalid syntax')
    if not 0 <= value <= _MAX_UINT64:
        raise ValueError(f'strconv.ParseUint: parsing "{raw}": value out of range')
    return value


@dataclass
class EmptyReq:
    """A request that carries nothing."""

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> EmptyReq:
        return cls()


@dataclass
class Ping:
    value: str = ""

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> Ping:
        raw = _first(params, "value")
        return cls(value="" if raw is None else str(raw))


@dataclass
class GetUserDetailReq:
    user_id: int = 0

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> GetUserDetailReq:
        user_id = _parse_uint(_first(params, "user_id"))
        if user_id == 0:
            raise ValueError(_field_error(cls.__name__, "UserId", "required"))
        return cls(user_id=user_id)


@dataclass
class CreateUserReq:
    name: str = ""
    email: str = ""

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> CreateUserReq:
        raw_name = _first(params, "name")
        raw_email = _first(params, "email")
        name = "" if raw_name is None else str(raw_name)
        email = "" if raw_email is None else str(raw_email)

        problems = []
        if not name:
            problems.append(_field_error(cls.__name__, "Name", "required"))
        elif len(name) > 16:
            problems.append(_field_error(cls.__name__, "Name", "max"))
        if not email:
            problems.append(_field_error(cls.__name__, "Email", "required"))
        elif not _EMAIL.fullmatch(email):
            problems.append(_field_error(cls.__name__, "Email", "email"))
        if problems:
            raise ValueError("\n".join(problems))
        return cls(name=name, email=email)


@dataclass
class UserInfo:
    user_id: int = 0
    email: str = ""
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "email": self.email, "name": self.name}