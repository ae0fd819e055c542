"""Face search queries against DuckDB."""

from collections.abc import Sequence

import duckdb
import numpy as np

from event_face_search.embedding.face_repository import candidate_embeddings, get_photos_by_ids
from event_face_search.embedding.matcher import FaceMatcher
from event_face_search.models import Photo


def search_photos(
    conn: duckdb.DuckDBPyConnection,
    matcher: FaceMatcher,
    event_id: str,
    query_embeddings: Sequence[Sequence[float]] | np.ndarray,
    threshold: float | None = None,
) -> list[Photo]:
    """Find the event's photos containing any of the query faces, newest first."""
    if len(query_embeddings) == 0:
        return []
    # match() drains the stream before the photo lookup reuses the cursor
    candidates = candidate_embeddings(conn, event_id)
    photo_ids = matcher.match(query_embeddings, candidates, threshold=threshold)
    return get_photos_by_ids(conn, sorted(photo_ids))


def search_photo_urls(
    conn: duckdb.DuckDBPyConnection,
    matcher: FaceMatcher,
    event_id: str,
    query_embeddings: Sequence[Sequence[float]] | np.ndarray,
    threshold: float | None = None,
) -> list[str]:
    """Like search_photos, returning the photos' public URLs."""
    return [
        photo.url
        for photo in search_photos(conn, matcher, event_id, query_embeddings, threshold)
    ]
