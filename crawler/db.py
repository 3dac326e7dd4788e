"""
MySQL connections for the stores.

A PyMySQL connection must never be shared between threads, so every store
call checks one out of the pool for its duration. A bounded semaphore caps
the number of concurrent DB operations at the pool size.
"""

import queue
import threading
from contextlib import contextmanager

import pymysql

from crawler.config import DB_ACQUIRE_TIMEOUT, DB_CONFIG, DB_POOL_SIZE
from crawler.logger import logger


class ConnectionPool:

    def __init__(self, size=DB_POOL_SIZE, timeout=DB_ACQUIRE_TIMEOUT, connect=None, **connect_args):
        self.size = max(1, int(size))
        self.timeout = timeout
        self._connect = connect or pymysql.connect
        self._connect_args = connect_args or dict(DB_CONFIG)
        self._semaphore = threading.BoundedSemaphore(self.size)
        self._idle = queue.LifoQueue()
        self._lock = threading.Lock()
        self.created = 0

    @contextmanager
    def connection(self):
        """
        Exclusive use of one connection for the with-block.
        Raises RuntimeError when no connection frees up within `timeout`.
        """
        if not self._semaphore.acquire(timeout=self.timeout):
            logger.error(
                f"[DB] Semaphore acquire timeout after {self.timeout}s, "
                "possible connection starvation or deadlock",
                extra={"context": "db"},
            )
            raise RuntimeError("DB semaphore timeout: too many concurrent DB operations")

        try:
            conn = self._checkout()
        except Exception:
            self._semaphore.release()
            raise

        try:
            yield conn
        except Exception:
            self._release(conn, failed=True)
            raise
        else:
            self._release(conn)

    def close(self):
        """Close every idle connection."""
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                return
            self._close(conn)

    def _checkout(self):
        try:
            conn = self._idle.get_nowait()
        except queue.Empty:
            conn = self._connect(**self._connect_args)
            with self._lock:
                self.created += 1
            return conn
        # Idle connections may have been dropped by the server
        conn.ping(reconnect=True)
        return conn

    def _release(self, conn, failed=False):
        try:
            if failed:
                # Leave no half-finished transaction behind for the next caller
                try:
                    conn.rollback()
                except pymysql.MySQLError as e:
                    logger.warning(f"[DB] Discarding broken connection: {e}", extra={"context": "db"})
                    self._close(conn)
                    return
            self._idle.put(conn)
        finally:
            self._semaphore.release()

    @staticmethod
    def _close(conn):
        try:
            conn.close()
        except pymysql.MySQLError as e:
            logger.warning(f"[DB] Closing connection failed: {e}", extra={"context": "db"})
