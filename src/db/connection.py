"""SQLAlchemy engine.

Single shared engine with connection pooling. All funnel and catalog
queries run through `readonly_connection`, which sets the transaction
to READ ONLY before anything executes.
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


def is_database_available() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("Database not reachable", exc_info=True)
        return False


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection inside a READ ONLY transaction.

    Postgres rejects writes even if the SQL slips past the safety gate.
    The transaction is rolled back and the connection returned to the
    pool on exit.
    """
    conn = get_engine().connect()
    try:
        conn.execute(text("SET TRANSACTION READ ONLY"))
        yield conn
    finally:
        conn.close()
