from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from teamhealth.errors import TeamHealthError, TransactionError

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    raw_url = os.getenv("DATABASE_URL", "sqlite:///./teamhealth.db")
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def get_busy_timeout() -> float:
    return float(os.getenv("SQLITE_BUSY_TIMEOUT", "5"))


def _lock_sqlite_writes(engine: Engine) -> None:
    """Make every SQLite transaction take the database write lock up front.

    pysqlite defers BEGIN until the first write and ignores FOR UPDATE, so a
    read-then-write sequence (read the bottom position, then insert below it)
    could interleave with another writer. BEGIN IMMEDIATE serializes them.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str, busy_timeout: float | None = None) -> Engine:
    if url.startswith("sqlite"):
        timeout = get_busy_timeout() if busy_timeout is None else busy_timeout
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": timeout},
            pool_pre_ping=True,
        )
        _lock_sqlite_writes(sqlite_engine)
        return sqlite_engine
    # Read-committed would let a concurrent insert slip past the locked bottom row.
    return create_engine(url, isolation_level="SERIALIZABLE", pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


DATABASE_URL = get_database_url()
engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def deadline_after(seconds: float) -> float:
    return time.monotonic() + seconds


def check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise TransactionError("Deadline exceeded before the transaction could complete")


@contextmanager
def atomic(db: Session, deadline: float | None = None) -> Iterator[Session]:
    """Run a block as one unit of work: commit on success, roll back on every other exit.

    Store failures surface as TransactionError; domain errors raised inside the block
    propagate unchanged after the rollback.
    """
    try:
        check_deadline(deadline)
        yield db
        check_deadline(deadline)
        db.commit()
    except TeamHealthError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Rolled back transaction after store failure: %s", exc)
        raise TransactionError("The operation could not be completed, please retry") from exc
    except BaseException:
        db.rollback()
        raise
