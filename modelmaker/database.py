"""Database connection and schema management."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import URL
from sqlalchemy.orm import Session, sessionmaker

from modelmaker.models import Base

log = logging.getLogger(__name__)


class Database:
    """An engine plus a session factory."""

    def __init__(self, url: str | URL) -> None:
        self.url = url
        self.engine = create_engine(url)
        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """A session that commits on success and rolls back on error."""
        session = self._factory()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def reset(self) -> None:
        """Empty every table and restart identities."""
        log.info("Resetting database...")
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)


def build_database_url(environ: Mapping[str, str] | None = None) -> URL:
    environ = os.environ if environ is None else environ
    port = environ.get("DB_PORT") or None
    query = {"sslmode": "disable"}
    timezone = environ.get("DB_TIMEZONE")
    if timezone:
        query["options"] = f"-c timezone={timezone}"
    return URL.create(
        "postgresql",
        username=environ.get("DB_USER") or None,
        password=environ.get("DB_PASSWORD") or None,
        host=environ.get("DB_HOST") or None,
        port=int(port) if port else None,
        database=environ.get("DB_NAME") or None,
        query=query,
    )


def connect_database(url: str | URL | None = None) -> Database:
    if url is None:
        url = build_database_url()
    database = Database(url)
    database.create_schema()
    log.info("Connected to database")
    return database