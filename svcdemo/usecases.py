"""User, ping and fault-injection use cases served by the API and job workers."""

from __future__ import annotations

from typing import Any, Protocol

from .database import RecordNotFoundError
from .errors import RECORD_EXISTED_ERROR, error_is
from .ids import get_id_domain
from .logger import get_logger
from .models import IdType, User
from .protocol import CreateUserReq, EmptyReq, GetUserDetailReq, Ping, UserInfo
from .repositories import UserRepo, with_email, with_user_id

_MAX_ID_TRY = 5


class _IdSource(Protocol):
    def get_id(self, id_type: Any, max_try: int) -> int: ...


class UserDomain:
    """Rules for creating users."""

    def __init__(self, user_repo: UserRepo | None = None, id_domain: _IdSource | None = None) -> None:
        self.user_repo = UserRepo() if user_repo is None else user_repo
        self.id_domain: _IdSource = get_id_domain() if id_domain is None else id_domain

    def create_user(self, user: User) -> User:
        """Store ``user`` under a fresh user id unless its e-mail is taken."""
        try:
            self.user_repo.get_user(with_email(user.email))
        except Exception as exc:
            if not error_is(exc, RecordNotFoundError):
                raise
        else:
            raise RECORD_EXISTED_ERROR.withf("email:[%s]", user.email)

        user.user_id = self.id_domain.get_id(IdType.USER_ID, _MAX_ID_TRY)
        return self.user_repo.create_user(user)


class UserUsecase:
    def __init__(self, user_repo: UserRepo | None = None, user_domain: UserDomain | None = None) -> None:
        self.user_repo = UserRepo() if user_repo is None else user_repo
        self.user_domain = UserDomain() if user_domain is None else user_domain

    def get_user_detail(self, request: GetUserDetailReq) -> UserInfo:
        user = self.user_repo.get_user(with_user_id(request.user_id))
        return user.to_protocol_user()

    def create_user(self, request: CreateUserReq) -> UserInfo:
        user = User(name=request.name, email=request.email)
        return self.user_domain.create_user(user).to_protocol_user()


class PingUsecase:
    def ping(self, proto: Ping) -> None:
        """Log the value carried by a ping job."""
        get_logger().info("%s", proto.value)


class UnexpectUsecase:
    def panic(self, request: EmptyReq) -> None:
        """Fail on purpose, to exercise the recovery path."""
        raise RuntimeError("panic api")