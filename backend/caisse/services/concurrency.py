# Overview: Transaction boundaries and row locking shared by the ledger services.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import DatabaseError

log = logging.getLogger(__name__)

_DEPTH_KEY = "caisse.atomic_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the database write lock
    taken by begin_write() serializes writers instead. populate_existing()
    refreshes rows already present in the identity map with the locked values.
    """
    return query.with_for_update().populate_existing()


def begin_write(session) -> None:
    """Take the SQLite write lock up front so read-check-write is serialized."""
    if session.get_bind().dialect.name != "sqlite":
        return
    conn = session.connection()
    raw = conn.connection.dbapi_connection
    if not raw.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic(db):
    """
    One all-or-nothing unit of work on ``db.session``.

    The outermost unit takes the write lock, commits on success and rolls back
    on any exception. Nested units join the enclosing one.
    Database failures leave as DatabaseError, business errors unchanged.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        if depth:
            yield session
            return
        try:
            begin_write(session)
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log.exception("Unit of work rolled back after database error")
            raise DatabaseError("Database operation failed", details={"reason": str(exc.__class__.__name__)}) from exc
        except Exception:
            session.rollback()
            raise
    finally:
        session.info[_DEPTH_KEY] = depth


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a read-only DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, busy database) and StaleDataError.
    Mutations go through atomic() and are never retried here.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                log.exception("Read failed after %d attempts", attempts)
                raise DatabaseError("Database read failed", details={"attempts": attempts}) from exc
            log.warning("Transient database error, retrying (attempt %d)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
