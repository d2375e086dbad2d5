"""Pooled SQLite connections shared by the persistence helpers."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool.

    Connections are created lazily up to ``max_connections``; callers beyond
    that block until a connection is handed back. Every connection is rolled
    back on release so an aborted read-modify-write never leaks into the next
    borrower.
    """

    def __init__(self, database: str, max_connections: int = 5, timeout: float = 5.0):
        if max_connections <= 0:
            raise ValueError("max_connections must be positive")
        self.database = database
        self.max_connections = max_connections
        self.timeout = timeout
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._created: List[sqlite3.Connection] = []

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection, creating one while under the limit."""
        connection = None
        try:
            connection = self._pool.get(block=False)
        except Empty:
            with self._lock:
                if len(self._created) < self.max_connections:
                    connection = self._create_connection()
                    self._created.append(connection)
                    logger.debug("Opened SQLite connection %s/%s for %s",
                                 len(self._created), self.max_connections, self.database)
            if connection is None:
                connection = self._pool.get(block=True)

        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._pool.put(connection)
            except sqlite3.Error as exc:
                logger.error("Dropping broken SQLite connection: %s", exc)
                with self._lock:
                    if connection in self._created:
                        self._created.remove(connection)
                try:
                    connection.close()
                except sqlite3.Error:
                    logger.debug("Closing broken connection failed", exc_info=True)

    def close_all(self) -> None:
        """Close every connection the pool has opened."""
        with self._lock:
            while True:
                try:
                    self._pool.get(block=False)
                except Empty:
                    break
            for connection in self._created:
                try:
                    connection.close()
                except sqlite3.Error:
                    logger.debug("Closing pooled connection failed", exc_info=True)
            self._created.clear()
