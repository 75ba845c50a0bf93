"""
PostgreSQL connection handle.

One PostgresConnection is created per store and passed to every component
that talks to the database. It owns a thread-safe psycopg2 pool; nothing
here is process-global.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.pool

from offline_store.config import OfflineStoreSettings, PostgresConfig

logger = logging.getLogger(__name__)

_END = object()


class CursorStream:
    """
    Server-side cursor bound to a pooled connection.

    Rows are pulled from the server in batches of `itersize`, so a stream
    never holds the full result. The connection is handed to `release` on
    close(), together with whether it is broken.
    """

    def __init__(self, release: Callable[..., None], conn, cursor):
        self._release = release
        self._conn = conn
        self._cursor = cursor
        self._rows = iter(cursor)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def fetch(self) -> Optional[tuple]:
        """Next raw row, or None once the result is exhausted."""
        if self._closed:
            return None
        row = next(self._rows, _END)
        if row is _END:
            return None
        return row

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
            # Read-only; ending the transaction releases the portal.
            self._conn.rollback()
        except psycopg2.Error as e:
            # Connection is already gone; the pool discards it below.
            logger.warning("Could not close offline store cursor cleanly: %s", e)
        finally:
            self._release(self._conn, close=bool(self._conn.closed))


class PostgresConnection:
    """Pooled PostgreSQL access used by tables, materializations and training sets."""

    def __init__(self, config: PostgresConfig, settings: Optional[OfflineStoreSettings] = None):
        self._config = config
        self._settings = settings or OfflineStoreSettings()
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
        self._slots: Optional[threading.BoundedSemaphore] = None

    def connect(self) -> None:
        """Initializes the connection pool."""
        pool_params = self._settings.get_pool_params()
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                **pool_params,
                **self._config.get_postgres_params(),
            )
            # getconn() fails fast when the pool is exhausted; callers wait here instead.
            self._slots = threading.BoundedSemaphore(pool_params["maxconn"])
            logger.info(
                "Connected to offline store at %s:%s/%s",
                self._config.host,
                self._config.port,
                self._config.database,
            )
        except psycopg2.Error as e:
            logger.error("Failed to connect to PostgreSQL: %s", e)
            raise

    def close(self) -> None:
        if self._pool and not self._pool.closed:
            self._pool.closeall()
            logger.info("Closed Postgres connection pool")

    def is_healthy(self) -> bool:
        if not self._pool or self._pool.closed:
            return False
        try:
            with self.cursor() as cur:
                cur.execute("SELECT 1")
            return True
        except psycopg2.Error:
            return False

    def _require_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        if not self._pool or self._pool.closed:
            raise RuntimeError("Offline store connection pool is not initialized")
        return self._pool

    def _log_statement(self, conn, query: Any) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            text = query if isinstance(query, str) else query.as_string(conn)
            logger.debug("Executing: %s", text)

    def _checkout(self):
        """Take a connection from the pool, blocking while all are in use."""
        pool = self._require_pool()
        self._slots.acquire()
        try:
            return pool.getconn()
        except Exception:
            self._slots.release()
            raise

    def _checkin(self, conn, close: bool = False) -> None:
        try:
            if self._pool is not None and not self._pool.closed:
                self._pool.putconn(conn, close=close)
        finally:
            self._slots.release()

    @contextmanager
    def cursor(self) -> Iterator[Any]:
        """
        Yields a cursor from a pooled connection.
        Statements commit together on exit, or roll back if the block raises.
        """
        conn = self._checkout()
        try:
            with conn:
                with conn.cursor() as cur:
                    yield cur
        finally:
            self._checkin(conn, close=bool(conn.closed))

    transaction = cursor

    def execute(self, query: Any, params: Optional[Sequence[Any]] = None) -> None:
        with self.cursor() as cur:
            self._log_statement(cur.connection, query)
            cur.execute(query, params)

    def fetch_one(self, query: Any, params: Optional[Sequence[Any]] = None) -> Optional[tuple]:
        with self.cursor() as cur:
            self._log_statement(cur.connection, query)
            cur.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: Any, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        with self.cursor() as cur:
            self._log_statement(cur.connection, query)
            cur.execute(query, params)
            return cur.fetchall()

    def stream(self, query: Any, params: Optional[Sequence[Any]] = None) -> CursorStream:
        """Open a server-side cursor; the caller must close the returned stream."""
        conn = self._checkout()
        try:
            cur = conn.cursor(name=f"offline_store_{uuid.uuid4().hex}")
            cur.itersize = self._settings.iterator_batch_size
            self._log_statement(conn, query)
            cur.execute(query, params)
        except Exception:
            try:
                conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback after failed stream open: %s", e)
            self._checkin(conn, close=bool(conn.closed))
            raise
        return CursorStream(self._checkin, conn, cur)
