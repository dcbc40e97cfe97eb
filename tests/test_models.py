import pytest
from sqlalchemy import create_engine, inspect, select, text
from sqlalchemy.orm import Session

from svcdemo.models import Base, IdCreator, IdType, User
from svcdemo.protocol import UserInfo


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'models.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


def test_table_names(engine):
    with Session(engine) as session:
        session.add(User(id=1, user_id=166, email="j@example.com", name="J"))
        session.add(IdCreator(id=2, id_type=IdType.USER_ID, offset=10, step=1))
        session.commit()
    assert sorted(inspect(engine).get_table_names()) == ["id_creator_tab", "user_tab"]
    with engine.connect() as conn:
        assert conn.execute(text("SELECT name FROM user_tab")).scalar_one() == "J"
        assert conn.execute(text("SELECT offset FROM id_creator_tab")).scalar_one() == 10


def test_id_type_name_and_value():
    user_type = IdType(1)
    assert user_type is IdType.USER_ID
    assert str(user_type) == "UserIdType"
    assert int(user_type) == 1


def test_to_protocol_user():
    user = User(user_id=166, email="j@example.com", name="J")
    info = user.to_protocol_user()
    assert info == UserInfo(user_id=166, email="j@example.com", name="J")
    assert info.to_dict() == {"user_id": 166, "email": "j@example.com", "name": "J"}


def test_insert_sets_id_and_timestamps(engine):
    with Session(engine, expire_on_commit=False) as session:
        user = User(user_id=167, email="t@example.com", name="test_j")
        session.add(user)
        session.commit()
    assert user.id >= 1
    assert user.create_time > 0
    assert user.update_time == user.create_time or user.update_time > 0


def test_explicit_timestamps_are_kept(engine):
    with Session(engine, expire_on_commit=False) as session:
        user = User(id=1, create_time=1680000000, update_time=1680000000, user_id=166)
        session.add(user)
        session.commit()
    with Session(engine) as session:
        loaded = session.get(User, 1)
        assert (loaded.create_time, loaded.update_time) == (1680000000, 1680000000)


def test_update_refreshes_update_time(engine):
    with Session(engine) as session:
        session.add(User(id=1, create_time=1680000000, update_time=1680000000, name="J"))
        session.commit()
        user = session.get(User, 1)
        user.name = "K"
        session.commit()
        assert user.update_time > 1680000000
        assert user.create_time == 1680000000


def test_id_type_round_trip(engine):
    with Session(engine) as session:
        session.add(IdCreator(id=2, id_type=IdType.USER_ID, offset=10, step=1))
        session.add(IdCreator(id=3, id_type=0, offset=0, step=0))
        session.commit()
    with Session(engine) as session:
        types = session.scalars(select(IdCreator.id_type).order_by(IdCreator.id)).all()
    assert types[0] is IdType.USER_ID
    assert types[1] == 0