from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from app.core.config import settings

SessionFactory = Callable[[], Session]
SQLITE_BUSY_TIMEOUT_MS = 5000


def _engine_kwargs(db_url: URL, pool_mode: str) -> dict[str, Any]:
    if db_url.get_backend_name() == "sqlite":
        # no queue-pool sizing on SQLite; in-memory databases must share one connection
        kwargs: dict[str, Any] = {"pool_pre_ping": True, "connect_args": {"check_same_thread": False}}
        if db_url.database in {None, "", ":memory:"}:
            kwargs["poolclass"] = StaticPool
        return kwargs

    if pool_mode == "null":
        return {"poolclass": NullPool, "pool_pre_ping": True}

    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


def _configure_sqlite_connection(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        # rooms/images rely on ON DELETE CASCADE; progress writes race the import's own transactions
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _build_engine() -> Engine:
    db_url = make_url(settings.database_url)
    pool_mode = (settings.db_pool or "queue").lower()

    built = create_engine(settings.database_url, **_engine_kwargs(db_url, pool_mode))
    if db_url.get_backend_name() == "sqlite":
        event.listen(built, "connect", _configure_sqlite_connection)
    return built


engine = _build_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


@contextmanager
def session_scope(session_factory: SessionFactory = SessionLocal) -> Iterator[Session]:
    """One unit of work outside the request session: commit on success, roll back on error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
