"""SQLAlchemy engine + session management.

Uses a session-per-request pattern for the HTTP layer and a session-per-tick
pattern for scheduler jobs. Services group their writes with `transaction()`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from flask import Flask, g
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Import models so they register with Base.metadata
from bingo_engine import models  # noqa: F401
from bingo_engine.models.base import Base

logger = logging.getLogger(__name__)


def create_app_engine(database_url: str) -> Engine:
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every session sees an empty database.
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                future=True,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False}, future=True)

    return create_engine(database_url, pool_pre_ping=True, future=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(app: Flask) -> None:
    """Initialize database engine and per-request sessions."""

    engine = create_app_engine(str(app.config["DATABASE_URL"]))
    session_factory = create_session_factory(engine)

    # Production would use migrations; scripts/create_tables.py does the same.
    Base.metadata.create_all(bind=engine)

    app.extensions["engine"] = engine
    app.extensions["session_factory"] = session_factory

    @app.before_request
    def _open_session() -> None:
        g.db = session_factory()  # type: ignore[attr-defined]

    @app.teardown_request
    def _close_session(exc: BaseException | None) -> None:
        session: Session | None = getattr(g, "db", None)
        if session is None:
            return

        try:
            if exc is None:
                session.commit()
            else:
                session.rollback()
        finally:
            session.close()


def get_session() -> Session:
    """Get the current request's SQLAlchemy session."""

    session: Session | None = getattr(g, "db", None)
    if session is None:
        raise RuntimeError("Database session not initialized")
    return session


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Run a unit of work atomically.

    Commits when the block finishes; on any exception rolls back and re-raises,
    so a failed operation leaves the store exactly as it was.
    """

    try:
        yield session
        session.commit()
    except Exception:
        logger.warning("Transaction rolled back", exc_info=True)
        session.rollback()
        raise


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Open a short-lived session for one scheduler tick."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()
