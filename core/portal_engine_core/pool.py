"""
pool.py: fixed-size SQLite connection pool (pure stdlib)

The pool is created once at process startup and handed to whoever needs
database access.  Each caller acquires one connection for the duration
of a single operation and returns it unconditionally:

    with pool.connection() as conn:
        conn.execute(...)

The connection is committed when the block exits normally and rolled
back when it raises.  There are no transactions spanning more than one
acquire/release cycle.
"""

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PoolTimeout(sqlite3.OperationalError):
    """No connection became free within the pool timeout."""


class ConnectionPool:
    def __init__(self, db_path, size=10, timeout=60.0):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.db_path = db_path
        self.size = size
        self.timeout = timeout
        self._idle = queue.LifoQueue(maxsize=size)
        self._lock = threading.Lock()
        self._closed = False
        for _ in range(size):
            self._idle.put(self._connect())
        logger.info("Opened connection pool for %s (%d connections)", db_path, size)

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False,
                               timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def acquire(self):
        """Take a connection out of the pool, waiting up to ``timeout``."""
        if self._closed:
            raise sqlite3.ProgrammingError("connection pool is closed")
        try:
            return self._idle.get(timeout=self.timeout)
        except queue.Empty:
            raise PoolTimeout(
                f"no free database connection after {self.timeout}s") from None

    def release(self, conn):
        """Return a connection to the pool (closes it if the pool is closed)."""
        with self._lock:
            if self._closed:
                conn.close()
                return
        self._idle.put(conn)

    @contextmanager
    def connection(self):
        conn = self.acquire()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            self.release(conn)

    def ping(self) -> bool:
        """Return True when the database answers ``SELECT 1``."""
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning("Database ping failed: %s", e)
            return False

    def close(self):
        with self._lock:
            self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()
        logger.info("Closed connection pool for %s", self.db_path)


# ---------------------------------------------------------------------------
# Process-wide pool, created at startup
# ---------------------------------------------------------------------------

_pool = None


def get_pool() -> ConnectionPool:
    if _pool is None:
        raise RuntimeError("connection pool has not been created")
    return _pool


def set_pool(pool: ConnectionPool):
    global _pool
    _pool = pool


def close_pool():
    global _pool
    if _pool is not None:
        _pool.close()
        _pool = None


def _set_pool_for_testing(pool: ConnectionPool):
    """Install a pool without going through app startup (for testing)."""
    set_pool(pool)


def _reset_pool():
    """Close and forget the installed pool (for testing)."""
    close_pool()
