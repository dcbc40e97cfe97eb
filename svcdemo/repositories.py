"""Data access for id allocators and users."""

from __future__ import annotations

from sqlalchemy import Select, update
from sqlalchemy.exc import SQLAlchemyError

from . import config
from .database import Option, create, take, write_session
from .errors import WRITE_DB_ERROR
from .logger import get_logger
from .models import IdCreator, IdType, User


def _default_label() -> str:
    return config.dynamic_cfg.default_db.effective_label()


def with_id_type(id_type: IdType | int) -> Option:
    def option(stmt: Select) -> Select:
        return stmt.where(IdCreator.id_type == id_type)

    return option


class IdRepo:
    @property
    def db_label(self) -> str:
        return _default_label()

    def get_record(self, *args: Option) -> IdCreator:
        return take(self.db_label, IdCreator, *args)

    def update_offset(self, id_type: IdType | int, old_offset: int, step: int) -> int:
        """Move the offset of ``id_type`` on by ``step`` if it is still ``old_offset``.

        Returns the number of rows changed.
        """
        stmt = (
            update(IdCreator)
            .where(IdCreator.id_type == id_type, IdCreator.offset == old_offset)
            .values(offset=old_offset + step)
            .execution_options(synchronize_session=False)
        )
        try:
            with write_session(self.db_label) as session:
                rows = session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            get_logger().error(
                "UpdateOffset fail, id_type:[%s], old_offset:[%d], step:[%d] case:[%s]",
                id_type, old_offset, step, exc,
            )
            raise WRITE_DB_ERROR.wrap(exc) from exc
        return rows


def with_user_id(user_id: int) -> Option:
    def option(stmt: Select) -> Select:
        return stmt.where(User.user_id == user_id)

    return option


def with_email(email: str) -> Option:
    def option(stmt: Select) -> Select:
        return stmt.where(User.email == email)

    return option


class UserRepo:
    @property
    def db_label(self) -> str:
        return _default_label()

    def get_user(self, *args: Option) -> User:
        get_logger().info("get user")
        return take(self.db_label, User, *args)

    def create_user(self, user: User) -> User:
        get_logger().info("create user")
        return create(self.db_label, user)


def sample_user_j() -> User:
    """A fresh copy of the sample user used in fixtures."""
    return User(
        id=1,
        create_time=1680000000,
        update_time=1680000000,
        user_id=166,
        email="j@example.com",
        name="J",
    )