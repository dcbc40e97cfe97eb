import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from svcdemo.database import RecordNotFoundError, register_engines
from svcdemo.errors import READ_DB_ERROR, WRITE_DB_ERROR, error_is
from svcdemo.models import Base, IdCreator, IdType, User
from svcdemo.repositories import (
    IdRepo,
    UserRepo,
    sample_user_j,
    with_email,
    with_id_type,
    with_user_id,
)


def _user_fields(user):
    return (user.id, user.create_time, user.update_time, user.user_id, user.email, user.name)


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'repo.db'}")
    Base.metadata.create_all(eng)
    register_engines(IdRepo().db_label, eng)
    yield eng
    eng.dispose()


@pytest.fixture
def broken_engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'broken.db'}")
    register_engines(IdRepo().db_label, eng)
    yield eng
    eng.dispose()


def _seed(engine, *objs):
    with Session(engine) as session:
        session.add_all(objs)
        session.commit()


def _id_creator():
    return IdCreator(
        id=1,
        create_time=1680000000,
        update_time=1680000000,
        id_type=IdType.USER_ID,
        offset=1000,
        step=10,
    )


def test_labels_default():
    assert IdRepo().db_label == "default"
    assert UserRepo().db_label == "default"


def test_get_record_success(engine):
    _seed(engine, _id_creator())
    record = IdRepo().get_record(with_id_type(IdType.USER_ID))
    assert (record.id, record.create_time, record.update_time) == (1, 1680000000, 1680000000)
    assert record.id_type is IdType.USER_ID
    assert (record.offset, record.step) == (1000, 10)


def test_get_record_not_found(engine):
    with pytest.raises(Exception) as info:
        IdRepo().get_record(with_id_type(IdType.USER_ID))
    assert error_is(info.value, RecordNotFoundError)
    assert error_is(info.value, READ_DB_ERROR)


def test_update_offset_success(engine):
    _seed(engine, _id_creator())
    assert IdRepo().update_offset(IdType.USER_ID, 1000, 500) == 1
    with Session(engine) as session:
        record = session.get(IdCreator, 1)
        assert record.offset == 1500
        assert record.update_time > 1680000000


def test_update_offset_zero_rows(engine):
    _seed(engine, _id_creator())
    assert IdRepo().update_offset(IdType.USER_ID, 999, 500) == 0
    with Session(engine) as session:
        assert session.scalar(select(IdCreator.offset)) == 1000


def test_update_offset_io_error(broken_engine):
    with pytest.raises(Exception) as info:
        IdRepo().update_offset(IdType.USER_ID, 1000, 500)
    assert error_is(info.value, OperationalError)
    assert error_is(info.value, WRITE_DB_ERROR)


def test_get_user_by_user_id(engine):
    _seed(engine, sample_user_j())
    user = UserRepo().get_user(with_user_id(166))
    assert _user_fields(user) == _user_fields(sample_user_j())


def test_get_user_by_email(engine):
    _seed(engine, sample_user_j())
    user = UserRepo().get_user(with_email("j@example.com"))
    assert _user_fields(user) == _user_fields(sample_user_j())


@pytest.mark.parametrize("option", [with_user_id(166), with_email("j@example.com")])
def test_get_user_not_found(engine, option):
    with pytest.raises(Exception) as info:
        UserRepo().get_user(option)
    assert error_is(info.value, RecordNotFoundError)


@pytest.mark.parametrize("option", [with_user_id(166), with_email("j@example.com")])
def test_get_user_io_error(broken_engine, option):
    with pytest.raises(Exception) as info:
        UserRepo().get_user(option)
    assert error_is(info.value, OperationalError)
    assert error_is(info.value, READ_DB_ERROR)


def test_create_user_success(engine):
    user = UserRepo().create_user(User(name="test_name", user_id=167, email="t@example.com"))
    assert user.id > 0
    assert user.create_time > 0
    assert user.update_time > 0
    stored = UserRepo().get_user(with_user_id(167))
    assert (stored.id, stored.name, stored.email) == (user.id, "test_name", "t@example.com")


def test_create_user_fail(engine):
    _seed(engine, sample_user_j())
    duplicate = User(id=1, name="test_name", user_id=167, email="t@example.com")
    with pytest.raises(Exception) as info:
        UserRepo().create_user(duplicate)
    assert error_is(info.value, IntegrityError)
    assert error_is(info.value, WRITE_DB_ERROR)