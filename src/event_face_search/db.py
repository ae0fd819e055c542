"""Shared DuckDB connection factory and transaction helpers.

DuckDB isolates transactions per connection object. Threads that read while
another thread writes must each work on their own ``conn.cursor()``.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import duckdb

from event_face_search.config import DB_PATH
from event_face_search.errors import StoreUnavailable


def get_connection(db_path: str | None = None) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB connection. Defaults to the project-root DB file."""
    path = db_path or str(DB_PATH)
    try:
        conn = duckdb.connect(path)
    except duckdb.Error as exc:
        raise StoreUnavailable(f"Cannot open database {path}: {exc}") from exc

    from event_face_search.manager.schema import ensure_schema

    ensure_schema(conn)
    return conn


@contextmanager
def store_errors() -> Iterator[None]:
    """Re-raise storage-layer errors as StoreUnavailable."""
    try:
        yield
    except duckdb.Error as exc:
        raise StoreUnavailable(str(exc)) from exc


@contextmanager
def transaction(conn: duckdb.DuckDBPyConnection) -> Iterator[duckdb.DuckDBPyConnection]:
    """Run the block as one transaction; roll back on any exception."""
    with store_errors():
        conn.begin()
    try:
        yield conn
    except BaseException as exc:
        try:
            conn.rollback()
        except duckdb.Error:
            pass
        if isinstance(exc, duckdb.Error):
            raise StoreUnavailable(str(exc)) from exc
        raise
    with store_errors():
        conn.commit()
