from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator, Iterable

from flask import Flask, g
from sqlalchemy import create_engine, event, inspect as sa_inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def engine_options(db_url: str) -> dict[str, object]:
    opts: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        opts.update({"pool_recycle": 1800, "pool_size": 5, "max_overflow": 10, "pool_timeout": 30})
    return opts


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(db_url))

    if db_url.startswith("sqlite"):
        # Archive entries reference documents; SQLite only enforces that with the pragma on.
        # Known limitation: pysqlite runs in its legacy transaction mode here, so a
        # begin_nested() opened before any DML starts the outer transaction and commits
        # it at RELEASE. ROLLBACK TO still undoes a failed block. Postgres savepoints
        # nest normally.
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


def database_reachable(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("DB round-trip failed: %s", e)
        return False
    return True


def missing_tables(engine: Engine, required: Iterable[str]) -> list[str]:
    insp = sa_inspect(engine)
    return [t for t in required if not insp.has_table(t)]


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if getattr(g, "db_session", None) is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    sm = app.extensions["sqlalchemy_sessionmaker"]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        return
    # Handlers commit explicitly; anything still pending here was abandoned.
    if s.in_transaction():
        s.rollback()
    s.close()
    g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for tests and shell sessions: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
