"""Descriptor store: photos and their face embeddings in DuckDB.

Every write that touches a photo's embedding set runs as one transaction,
so a reader on another cursor sees either the old set or the new set of a
photo and never a partially written one.
"""

import logging
import uuid
from collections.abc import Iterator, Sequence

import duckdb
import numpy as np

from event_face_search.config import CANDIDATE_FETCH_SIZE
from event_face_search.db import store_errors, transaction
from event_face_search.errors import UnknownEvent
from event_face_search.manager.repository import claim_event
from event_face_search.models import (
    VISIBILITIES,
    Embedding,
    FaceDescriptor,
    Photo,
    PhotoDraft,
    utcnow,
)

logger = logging.getLogger(__name__)

_PHOTO_COLUMNS = "id, event_id, url, visibility, created_at"


def put_photo_with_embeddings(
    conn: duckdb.DuckDBPyConnection,
    draft: PhotoDraft,
    descriptors: Sequence[FaceDescriptor],
) -> Photo:
    """Create one photo and its embeddings atomically.

    Raises:
        UnknownEvent: The draft references an event that does not exist.
        StoreUnavailable: The write failed and was rolled back, including a
            conflict with a concurrent delete of the event.
    """
    if draft.visibility not in VISIBILITIES:
        raise ValueError(f"Invalid visibility: {draft.visibility!r}")

    photo = Photo(
        id=str(uuid.uuid4()),
        event_id=draft.event_id,
        url=draft.url,
        visibility=draft.visibility,
        created_at=draft.created_at or utcnow(),
    )
    with transaction(conn):
        if not claim_event(conn, draft.event_id):
            raise UnknownEvent(draft.event_id)
        conn.execute(
            f"INSERT INTO photos ({_PHOTO_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            [photo.id, photo.event_id, photo.url, photo.visibility, photo.created_at],
        )
        _insert_embeddings(conn, photo.id, photo.event_id, descriptors)

    logger.debug("Stored photo %s with %d face(s)", photo.id, len(descriptors))
    return photo


def replace_embeddings(
    conn: duckdb.DuckDBPyConnection,
    photo_id: str,
    descriptors: Sequence[FaceDescriptor],
) -> bool:
    """Swap a photo's whole embedding set for a new one in one transaction.

    The photo row is not touched. Returns False when the photo does not exist.
    """
    with transaction(conn):
        row = conn.execute("SELECT event_id FROM photos WHERE id = ?", [photo_id]).fetchone()
        if row is None:
            return False
        conn.execute("DELETE FROM face_embeddings WHERE photo_id = ?", [photo_id])
        _insert_embeddings(conn, photo_id, row[0], descriptors)

    logger.debug("Replaced embeddings of photo %s with %d face(s)", photo_id, len(descriptors))
    return True


def delete_photo(conn: duckdb.DuckDBPyConnection, photo_id: str) -> Photo | None:
    """Delete a photo and its embeddings.

    Returns the deleted photo so the caller can release its stored bytes, or
    None when no such photo exists.
    """
    with transaction(conn):
        row = conn.execute(
            f"SELECT {_PHOTO_COLUMNS} FROM photos WHERE id = ?", [photo_id]
        ).fetchone()
        if row is None:
            return None
        conn.execute("DELETE FROM face_embeddings WHERE photo_id = ?", [photo_id])
        conn.execute("DELETE FROM photos WHERE id = ?", [photo_id])
    return _row_to_photo(row)


def get_photo(conn: duckdb.DuckDBPyConnection, photo_id: str) -> Photo | None:
    """Look up a single photo by ID."""
    with store_errors():
        row = conn.execute(
            f"SELECT {_PHOTO_COLUMNS} FROM photos WHERE id = ?", [photo_id]
        ).fetchone()
    if row is None:
        return None
    return _row_to_photo(row)


def list_photos(
    conn: duckdb.DuckDBPyConnection,
    event_id: str,
    include_private: bool = False,
) -> list[Photo]:
    """List an event's photos, newest first. Private photos only on request."""
    query = f"SELECT {_PHOTO_COLUMNS} FROM photos WHERE event_id = ?"
    if not include_private:
        query += " AND visibility = 'public'"
    query += " ORDER BY created_at DESC, id"
    with store_errors():
        rows = conn.execute(query, [event_id]).fetchall()
    return [_row_to_photo(row) for row in rows]


def get_photos_by_ids(
    conn: duckdb.DuckDBPyConnection,
    photo_ids: Sequence[str],
) -> list[Photo]:
    """Return the photos with the given IDs, newest first. Unknown IDs are skipped."""
    if not photo_ids:
        return []
    placeholders = ", ".join(["?"] * len(photo_ids))
    with store_errors():
        rows = conn.execute(
            f"""
            SELECT {_PHOTO_COLUMNS} FROM photos
            WHERE id IN ({placeholders})
            ORDER BY created_at DESC, id
            """,
            list(photo_ids),
        ).fetchall()
    return [_row_to_photo(row) for row in rows]


def candidate_embeddings(
    conn: duckdb.DuckDBPyConnection,
    event_id: str,
) -> Iterator[Embedding]:
    """Stream every embedding of an event.

    The rows come from a single SELECT, so the stream is one consistent
    snapshot. Running another statement on the same cursor before the
    stream is exhausted invalidates it.
    """
    with store_errors():
        result = conn.execute(
            """
            SELECT id, photo_id, event_id, embedding, quality_hash
            FROM face_embeddings
            WHERE event_id = ?
            """,
            [event_id],
        )
        while True:
            rows = result.fetchmany(CANDIDATE_FETCH_SIZE)
            if not rows:
                break
            for row in rows:
                yield _row_to_embedding(row)


def get_embeddings_for_photo(
    conn: duckdb.DuckDBPyConnection,
    photo_id: str,
) -> list[Embedding]:
    """Return all embeddings owned by a photo."""
    with store_errors():
        rows = conn.execute(
            """
            SELECT id, photo_id, event_id, embedding, quality_hash
            FROM face_embeddings
            WHERE photo_id = ?
            """,
            [photo_id],
        ).fetchall()
    return [_row_to_embedding(row) for row in rows]


def get_face_stats(
    conn: duckdb.DuckDBPyConnection,
    event_id: str,
) -> tuple[int, int, int]:
    """Return (photos, photos_with_faces, embeddings) for an event."""
    with store_errors():
        photos_row = conn.execute(
            "SELECT COUNT(*) FROM photos WHERE event_id = ?", [event_id]
        ).fetchone()
        with_faces_row = conn.execute(
            "SELECT COUNT(DISTINCT photo_id) FROM face_embeddings WHERE event_id = ?",
            [event_id],
        ).fetchone()
        faces_row = conn.execute(
            "SELECT COUNT(*) FROM face_embeddings WHERE event_id = ?", [event_id]
        ).fetchone()
    photos = photos_row[0] if photos_row else 0
    with_faces = with_faces_row[0] if with_faces_row else 0
    faces = faces_row[0] if faces_row else 0
    return photos, with_faces, faces


def _insert_embeddings(
    conn: duckdb.DuckDBPyConnection,
    photo_id: str,
    event_id: str,
    descriptors: Sequence[FaceDescriptor],
) -> None:
    for desc in descriptors:
        vector = np.asarray(desc.embedding, dtype=np.float64).ravel()
        conn.execute(
            """
            INSERT INTO face_embeddings (id, photo_id, event_id, embedding, quality_hash)
            VALUES (?, ?, ?, ?, ?)
            """,
            [str(uuid.uuid4()), photo_id, event_id, vector.tolist(), desc.quality_hash],
        )


def _row_to_photo(row: tuple) -> Photo:
    """Convert a database row to a Photo.

    Column order: 0:id, 1:event_id, 2:url, 3:visibility, 4:created_at
    """
    return Photo(
        id=row[0],
        event_id=row[1],
        url=row[2],
        visibility=row[3],
        created_at=row[4],
    )


def _row_to_embedding(row: tuple) -> Embedding:
    """Convert a database row to an Embedding."""
    return Embedding(
        id=row[0],
        photo_id=row[1],
        event_id=row[2],
        vector=np.array(row[3], dtype=np.float64),
        quality_hash=row[4],
    )
