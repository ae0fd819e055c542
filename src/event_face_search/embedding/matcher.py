"""Exhaustive Euclidean face matching over an event's candidate embeddings."""

import logging
from collections.abc import Iterable, Sequence

import numpy as np

from event_face_search.config import FACE_MATCH_THRESHOLD
from event_face_search.errors import DimensionMismatch
from event_face_search.models import Embedding

logger = logging.getLogger(__name__)


def euclidean_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Square root of the summed squared per-dimension differences."""
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape:
        raise DimensionMismatch(va.shape[0], vb.shape[0])
    return float(np.sqrt(np.sum((va - vb) ** 2)))


class FaceMatcher:
    """Match query faces against stored embeddings.

    Holds no state besides its threshold; construct one per app or per test
    and pass it to whoever needs it.
    """

    def __init__(self, threshold: float = FACE_MATCH_THRESHOLD) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold

    def match(
        self,
        queries: Sequence[Sequence[float]] | np.ndarray,
        candidates: Iterable[Embedding],
        threshold: float | None = None,
    ) -> set[str]:
        """Return IDs of photos owning at least one embedding within threshold.

        A candidate matches when its distance to any query is strictly less
        than the threshold. Once a photo matched, its remaining candidates are
        only checked for dimension. The result carries no order.

        Raises:
            DimensionMismatch: Queries of unequal length, or a candidate whose
                length differs from the queries.
        """
        limit = self.threshold if threshold is None else threshold
        if len(queries) == 0:
            return set()

        query_matrix = _as_matrix(queries)
        dim = query_matrix.shape[1]
        matched: set[str] = set()
        scanned = 0

        for candidate in candidates:
            vector = np.asarray(candidate.vector, dtype=np.float64).ravel()
            if vector.shape[0] != dim:
                raise DimensionMismatch(dim, vector.shape[0])
            scanned += 1
            if candidate.photo_id in matched:
                continue
            distances = np.sqrt(np.sum((query_matrix - vector) ** 2, axis=1))
            if bool(np.any(distances < limit)):
                matched.add(candidate.photo_id)

        logger.debug(
            "Matched %d photo(s) from %d candidate(s) with %d quer%s at threshold %.3f",
            len(matched),
            scanned,
            query_matrix.shape[0],
            "y" if query_matrix.shape[0] == 1 else "ies",
            limit,
        )
        return matched


def _as_matrix(queries: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Stack query vectors into a (Q, D) float64 matrix."""
    rows = [np.asarray(q, dtype=np.float64).ravel() for q in queries]
    dim = rows[0].shape[0]
    for row in rows[1:]:
        if row.shape[0] != dim:
            raise DimensionMismatch(dim, row.shape[0])
    return np.vstack(rows)
