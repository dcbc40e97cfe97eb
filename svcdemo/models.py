"""Persistent records: id allocators and users."""

from __future__ import annotations

import enum
import time
from typing import Any

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from .protocol import UserInfo

_ID_COLUMN = BigInteger().with_variant(Integer, "sqlite")


def _now() -> int:
    return int(time.time())


class Base(DeclarativeBase):
    """Declarative base of every table of the service."""


class _Record:
    """Primary key and automatic creation and update timestamps."""

    id: Mapped[int] = mapped_column(_ID_COLUMN, primary_key=True, autoincrement=True)
    create_time: Mapped[int] = mapped_column(Integer, default=_now)
    update_time: Mapped[int] = mapped_column(Integer, default=_now, onupdate=_now)


class IdType(enum.IntEnum):
    """Kinds of identifiers handed out by the id allocator."""

    USER_ID = 1

    def __str__(self) -> str:
        return _ID_TYPE_NAMES.get(self.value, f"IdType({self.value})")


_ID_TYPE_NAMES = {1: "UserIdType"}


class _IdTypeColumn(TypeDecorator):
    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> int | None:
        return None if value is None else int(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> IdType | int | None:
        if value is None:
            return None
        try:
            return IdType(value)
        except ValueError:
            return int(value)


class IdCreator(_Record, Base):
    """The next free segment of identifiers of one type."""

    __tablename__ = "id_creator_tab"

    id_type: Mapped[int] = mapped_column(_IdTypeColumn, default=0)
    offset: Mapped[int] = mapped_column(BigInteger, default=0)
    step: Mapped[int] = mapped_column(Integer, default=0)


class User(_Record, Base):
    __tablename__ = "user_tab"

    user_id: Mapped[int] = mapped_column(BigInteger, default=0)
    email: Mapped[str] = mapped_column(String(255), default="")
    name: Mapped[str] = mapped_column(String(64), default="")

    def to_protocol_user(self) -> UserInfo:
        return UserInfo(user_id=self.user_id, name=self.name, email=self.email)