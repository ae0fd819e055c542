"""CRUD operations for events in DuckDB."""

import logging
import uuid

import duckdb

from event_face_search.db import store_errors, transaction
from event_face_search.models import Event, utcnow

logger = logging.getLogger(__name__)


def create_event(
    conn: duckdb.DuckDBPyConnection,
    name: str,
    banner: str | None = None,
) -> Event:
    """Insert a new event and return it."""
    if not name or not name.strip():
        raise ValueError("Event name is required")
    event = Event(id=str(uuid.uuid4()), name=name.strip(), banner=banner, created_at=utcnow())
    with store_errors():
        conn.execute(
            "INSERT INTO events (id, name, banner, created_at) VALUES (?, ?, ?, ?)",
            [event.id, event.name, event.banner, event.created_at],
        )
    logger.info("Created event %s (%s)", event.id, event.name)
    return event


def get_event(conn: duckdb.DuckDBPyConnection, event_id: str) -> Event | None:
    """Look up a single event by ID."""
    with store_errors():
        row = conn.execute(
            "SELECT id, name, banner, created_at FROM events WHERE id = ?", [event_id]
        ).fetchone()
    if row is None:
        return None
    return _row_to_event(row)


def list_events(conn: duckdb.DuckDBPyConnection) -> list[Event]:
    """List all events, newest first."""
    with store_errors():
        rows = conn.execute(
            "SELECT id, name, banner, created_at FROM events ORDER BY created_at DESC"
        ).fetchall()
    return [_row_to_event(row) for row in rows]


def claim_event(conn: duckdb.DuckDBPyConnection, event_id: str) -> bool:
    """Write-lock the event row for the open transaction.

    A no-op update makes a concurrent ``delete_event`` conflict with the
    caller's transaction instead of committing beside it. Returns False when
    the event does not exist.
    """
    row = conn.execute("UPDATE events SET name = name WHERE id = ?", [event_id]).fetchone()
    return bool(row and row[0])


def delete_event(conn: duckdb.DuckDBPyConnection, event_id: str) -> Event | None:
    """Delete an event with all of its photos and embeddings in one transaction.

    Returns the deleted event, or None when it did not exist. Stored photo
    bytes are left to the caller.
    """
    with transaction(conn):
        row = conn.execute(
            "SELECT id, name, banner, created_at FROM events WHERE id = ?", [event_id]
        ).fetchone()
        if row is None:
            return None
        conn.execute("DELETE FROM face_embeddings WHERE event_id = ?", [event_id])
        conn.execute("DELETE FROM photos WHERE event_id = ?", [event_id])
        conn.execute("DELETE FROM events WHERE id = ?", [event_id])
    logger.info("Deleted event %s with its photos and embeddings", event_id)
    return _row_to_event(row)


def _row_to_event(row: tuple) -> Event:
    """Convert a DB row tuple to Event.

    Column order: 0:id, 1:name, 2:banner, 3:created_at
    """
    return Event(id=row[0], name=row[1], banner=row[2], created_at=row[3])
