"""DuckDB storage handle: one database per process, one cursor per operation."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import duckdb

from errors import PersistenceError
from logger import get_logger

logger = get_logger(__name__)


def quote_ident(ident: str) -> str:
    return '"' + ident.replace('"', '""') + '"'


class Storage:
    """Owns the process-wide DuckDB connection.

    Components never share a cursor: ``cursor()`` and ``transaction()`` hand out
    a fresh DuckDB cursor, which is an independent connection to the same
    database with its own transaction context.
    """

    def __init__(self, database: str = ":memory:") -> None:
        self.database = database
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._lock = threading.Lock()

    def open(self) -> "Storage":
        with self._lock:
            if self._conn is not None:
                return self
            if self.database != ":memory:":
                Path(self.database).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._conn = duckdb.connect(self.database)
            except duckdb.Error as exc:
                raise PersistenceError(
                    f"Cannot open database {self.database}: {exc}"
                ) from exc
            logger.info("Opened DuckDB database %s", self.database)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("Closed DuckDB database %s", self.database)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @contextmanager
    def cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        cur = self._new_cursor()
        try:
            yield cur
        finally:
            cur.close()

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block in one transaction; any exception rolls everything back."""
        cur = self._new_cursor()
        try:
            cur.begin()
            try:
                yield cur
            except BaseException:
                cur.rollback()
                raise
            try:
                cur.commit()
            except duckdb.Error as exc:
                raise PersistenceError(f"Commit failed: {exc}") from exc
        finally:
            cur.close()

    def _new_cursor(self) -> duckdb.DuckDBPyConnection:
        with self._lock:
            if self._conn is None:
                raise PersistenceError("Storage is not open")
            try:
                return self._conn.cursor()
            except duckdb.Error as exc:
                raise PersistenceError(f"Cannot acquire cursor: {exc}") from exc

    def __enter__(self) -> "Storage":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
