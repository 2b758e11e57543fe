"""
Read-only query executor.

All report queries run through `execute_readonly`, which:
  1. Opens a READ ONLY transaction (PostgreSQL-enforced)
  2. Accepts SQLAlchemy statements, or plain SQL wrapped in text()
  3. Converts Decimal/date/datetime to JSON-safe Python types
  4. Enforces a query timeout (statement_timeout, PostgreSQL only)

Backend failures are raised as QueryExecutionError, which callers may retry.
"""
from __future__ import annotations

import decimal
import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable

from src.db.connection import is_postgres, readonly_connection
from src.core.logging import get_logger

logger = get_logger(__name__)

_QUERY_TIMEOUT_MS = 10_000  # 10 seconds max per query


class QueryExecutionError(RuntimeError):
    """The store failed to run a query.  Safe to retry."""

    retryable = True


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def _statement(stmt: str | Executable) -> Executable:
    return text(stmt) if isinstance(stmt, str) else stmt


def execute_readonly(
    stmt: str | Executable,
    params: dict | None = None,
    timeout_ms: int = _QUERY_TIMEOUT_MS,
    engine: Engine | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only query and return rows as serialisable dicts.

    Raises
    ------
    QueryExecutionError
        If the query fails for any reason.
    """
    logger.info("Executing query")
    try:
        with readonly_connection(engine) as conn:
            if is_postgres(conn):
                conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

            result = conn.execute(_statement(stmt), params or {})
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchall()
            ]
    except SQLAlchemyError as exc:
        logger.exception("Query execution failed")
        raise QueryExecutionError(str(exc)) from exc

    logger.info("Returned %d rows", len(rows))
    return rows


def execute_scalar(
    stmt: str | Executable,
    params: dict | None = None,
    timeout_ms: int = _QUERY_TIMEOUT_MS,
    engine: Engine | None = None,
) -> Any:
    """Execute a single-value query (e.g. a count) read-only."""
    try:
        with readonly_connection(engine) as conn:
            if is_postgres(conn):
                conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
            value = conn.execute(_statement(stmt), params or {}).scalar()
    except SQLAlchemyError as exc:
        logger.exception("Scalar query failed")
        raise QueryExecutionError(str(exc)) from exc
    return _serialise_value(value)
