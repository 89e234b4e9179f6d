from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from src.core.utils.exceptions import StorageError


class PostgresDatabase:
    def __init__(self, *, dsn: str, minconn: int = 1, maxconn: int = 10):
        try:
            self._pool = ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, dsn=dsn)
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to Postgres: {e}", operation="connect") from e

    @contextmanager
    def connection(self) -> Iterator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        self._pool.closeall()
