"""SQLAlchemy engine factory.

Single shared engine with connection pooling.  Report queries run through
`readonly_connection`, which sets the transaction to READ ONLY on
PostgreSQL before executing.  Other engines (SQLite in tests, the seed
script) can be passed in explicitly.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            echo=False,
        )
        logger.info("DB engine created  host=%s  db=%s", settings.postgres_host, settings.postgres_db)
    return _engine


def is_postgres(conn: Connection) -> bool:
    return conn.dialect.name == "postgresql"


@contextmanager
def readonly_connection(engine: Engine | None = None) -> Generator[Connection, None, None]:
    """Yield a connection in a READ ONLY transaction (PostgreSQL).

    The connection is returned to the pool on exit.
    """
    engine = engine or get_engine()
    conn = engine.connect()
    try:
        if is_postgres(conn):
            conn.execute(text("SET TRANSACTION READ ONLY"))
        yield conn
    finally:
        conn.close()
