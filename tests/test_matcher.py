"""Tests for Euclidean face matching."""

import numpy as np
import pytest

from event_face_search.embedding.matcher import FaceMatcher, euclidean_distance
from event_face_search.errors import DimensionMismatch
from event_face_search.models import Embedding


def _emb(photo_id, *values):
    return Embedding(
        id=f"{photo_id}-{len(values)}-{values[0]}",
        photo_id=photo_id,
        event_id="e1",
        vector=np.array(values, dtype=np.float64),
        quality_hash=None,
    )


def test_euclidean_distance():
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)
    assert euclidean_distance([1.0, 2.0], [1.0, 2.0]) == 0.0


def test_euclidean_distance_dimension_mismatch():
    with pytest.raises(DimensionMismatch) as exc_info:
        euclidean_distance([0.0, 0.0], [0.0, 0.0, 0.0])
    assert exc_info.value.expected == 2
    assert exc_info.value.actual == 3


def test_self_match():
    rng = np.random.default_rng(42)
    vector = rng.standard_normal(128)
    candidates = [_emb("p1", *vector)]
    assert FaceMatcher(threshold=0.5).match([vector], candidates) == {"p1"}


def test_threshold_is_strict():
    candidates = [_emb("p1", 0.5, 0.0)]
    matcher = FaceMatcher(threshold=0.5)
    assert matcher.match([[0.0, 0.0]], candidates) == set()
    assert matcher.match([[0.0, 0.0]], candidates, threshold=0.5000001) == {"p1"}


def test_two_photos_one_within_threshold():
    # Distances 0.4 and 0.6 from the query
    candidates = [_emb("p1", 0.4, 0.0, 0.0), _emb("p2", 0.0, 0.6, 0.0)]
    assert FaceMatcher(threshold=0.5).match([[0.0, 0.0, 0.0]], candidates) == {"p1"}


def test_photo_matches_on_any_face_and_any_query():
    candidates = [
        _emb("p1", 5.0, 5.0),
        _emb("p1", 1.0, 1.0),
        _emb("p2", 9.0, 9.0),
    ]
    queries = [[0.0, 0.0], [1.1, 1.0]]
    assert FaceMatcher(threshold=0.5).match(queries, candidates) == {"p1"}


def test_photo_reported_once():
    candidates = [_emb("p1", 0.0, 0.0), _emb("p1", 0.1, 0.0)]
    assert FaceMatcher().match([[0.0, 0.0]], candidates) == {"p1"}


def test_larger_threshold_never_loses_matches():
    rng = np.random.default_rng(7)
    candidates = [_emb(f"p{i}", *rng.standard_normal(8)) for i in range(30)]
    queries = rng.standard_normal((2, 8))
    matcher = FaceMatcher()
    previous = set()
    for threshold in (0.5, 1.0, 2.0, 3.0, 4.0, 50.0):
        matched = matcher.match(queries, candidates, threshold=threshold)
        assert previous <= matched
        previous = matched
    assert previous == {f"p{i}" for i in range(30)}


def test_empty_queries_match_nothing():
    assert FaceMatcher().match([], [_emb("p1", 0.0, 0.0)]) == set()


def test_no_candidates_match_nothing():
    assert FaceMatcher().match([[0.0, 0.0]], []) == set()


def test_candidate_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        FaceMatcher().match([[0.0, 0.0]], [_emb("p1", 0.0, 0.0, 0.0)])


def test_candidate_dimension_mismatch_after_photo_matched():
    candidates = [_emb("p1", 0.0, 0.0), _emb("p1", 0.0, 0.0, 0.0)]
    with pytest.raises(DimensionMismatch):
        FaceMatcher().match([[0.0, 0.0]], candidates)


def test_query_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        FaceMatcher().match([[0.0, 0.0], [0.0, 0.0, 0.0]], [_emb("p1", 0.0, 0.0)])


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        FaceMatcher(threshold=0)


def test_origin_face_scenario():
    v1 = np.zeros(128)
    offset = np.zeros(128)
    offset[5] = 0.6
    candidates = [_emb("p1", *v1)]
    matcher = FaceMatcher(threshold=0.5)
    assert matcher.match([v1], candidates) == {"p1"}
    assert matcher.match([v1 + offset], candidates) == set()
