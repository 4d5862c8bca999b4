from sqlalchemy import select

from modelmaker.database import Database, build_database_url, connect_database
from modelmaker.models import User


def test_auto_migrate_and_reset():
    db = connect_database("sqlite://")
    with db.session() as s:
        s.add(User(firebase_uid="u1", email="a@example.com"))
    db.reset()
    with db.session() as s:
        assert s.scalars(select(User)).all() == []
        s.add(User(firebase_uid="u2"))
    with db.session() as s:
        assert s.scalars(select(User.id)).one() == 1


def test_session_rolls_back_on_error():
    db = Database("sqlite://")
    db.create_schema()
    try:
        with db.session() as s:
            s.add(User(firebase_uid="x"))
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    with db.session() as s:
        assert s.scalars(select(User)).all() == []


def test_build_database_url():
    url = build_database_url(
        {"DB_HOST": "localhost", "DB_PORT": "5432", "DB_USER": "user", "DB_NAME": "mm", "DB_TIMEZONE": "UTC"}
    )
    assert url.host == "localhost"
    assert url.port == 5432
    assert url.database == "mm"
    assert url.query["sslmode"] == "disable"