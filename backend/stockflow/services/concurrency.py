# Overview: Transaction helpers for stock writers: row locks, writer serialization and retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Conflict, Internal, StockflowError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes sure a retried attempt sees the committed
    values instead of whatever the identity map still holds.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() serializes
    writers there instead.
    """
    return query.with_for_update().populate_existing()


def begin_write() -> None:
    """
    Open the write transaction for the current attempt.

    SQLite: BEGIN IMMEDIATE takes the database write lock up front, so two
    writers can never both read a stock row and then both decrement it.
    PostgreSQL: bound the transaction by the write deadline.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        dbapi_conn = db.session.connection().connection.dbapi_connection
        if not dbapi_conn.in_transaction:
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        deadline_ms = int(current_app.config.get("WRITE_DEADLINE_SECONDS", 10) * 1000)
        db.session.execute(text(f"SET LOCAL statement_timeout = {deadline_ms}"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, deadlocks, busy database) and
    StaleDataError (optimistic locking conflicts) with exponential backoff
    capped at TRANSACTION_RETRY_MAX_BACKOFF. Exhausted retries surface as
    Conflict. Business errors are rolled back and re-raised untouched;
    unique-index violations become Conflict.
    """
    cfg = current_app.config
    attempts = attempts or cfg.get("TRANSACTION_RETRY_ATTEMPTS", 5)
    backoff_base = backoff_base if backoff_base is not None else cfg.get("TRANSACTION_RETRY_BASE_BACKOFF", 0.025)
    max_backoff = cfg.get("TRANSACTION_RETRY_MAX_BACKOFF", 0.2)
    deadline = cfg.get("WRITE_DEADLINE_SECONDS", 10.0)
    started = time.monotonic()

    for attempt in range(attempts):
        try:
            return func()
        except StockflowError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            db.session.rollback()
            raise Conflict("Write conflicts with existing data") from exc
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise Conflict(
                    "Concurrent update conflict, please retry",
                    {"attempts": attempts},
                ) from exc
            if time.monotonic() - started >= deadline:
                raise Internal("Operation deadline exceeded") from exc
            delay = min(backoff_base * (2 ** attempt), max_backoff)
            current_app.logger.info(
                "Retrying transaction after %s (attempt %d/%d, sleeping %.3fs)",
                type(exc).__name__, attempt + 1, attempts, delay,
            )
            time.sleep(delay)
        except Exception:
            db.session.rollback()
            raise
    raise Conflict("Concurrent update conflict, please retry")
