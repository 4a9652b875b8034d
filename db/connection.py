"""
db/connection.py
----------------
PostgreSQL connections for the dashboard.

Two kinds of connection are handed out:
    - Pooled connections (psycopg2 SimpleConnectionPool) for the
      short-lived queries of the repositories.
    - Dedicated autocommit connections for LISTEN, one per realtime
      subscription, closed by the subscription itself.
"""

import psycopg2
from psycopg2 import extensions, pool

from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.SimpleConnectionPool | None = None


def init_pool(min_conn: int = DB_POOL_MIN, max_conn: int = DB_POOL_MAX) -> None:
    """
    Open the shared pool. Calling it again while the pool is open does nothing.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.SimpleConnectionPool(min_conn, max_conn, DATABASE_URL)
    except psycopg2.OperationalError as e:
        logger.error(f"Could not open the database pool: {e}")
        raise
    logger.info(f"Database pool ready ({min_conn}-{max_conn} connections).")


def get_connection():
    """
    Borrow a pooled connection. Hand it back with `release_connection`.

    Raises:
        RuntimeError: If `init_pool()` was not called.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _pool.getconn()


def release_connection(conn) -> None:
    if _pool is not None:
        _pool.putconn(conn)


def open_listen_connection():
    """
    Open a standalone autocommit connection for LISTEN/NOTIFY.
    It stays out of the pool for the whole life of a subscription.
    """
    conn = psycopg2.connect(DATABASE_URL)
    conn.set_isolation_level(extensions.ISOLATION_LEVEL_AUTOCOMMIT)
    return conn


def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    _pool.closeall()
    _pool = None
    logger.info("Database pool closed.")
