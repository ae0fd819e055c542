"""Tests for data models."""

import pytest

from event_face_search.errors import PartialBatchFailure
from event_face_search.models import (
    PRIVATE,
    PUBLIC,
    BatchResult,
    ItemOutcome,
    Photo,
    utcnow,
)


def test_photo_is_private():
    photo = Photo(id="p1", event_id="e1", url="/media/a.jpg", visibility=PRIVATE,
                  created_at=utcnow())
    assert photo.is_private
    photo.visibility = PUBLIC
    assert not photo.is_private


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_batch_result_counts():
    result = BatchResult(
        outcomes=[
            ItemOutcome(name="a.jpg", ok=True, photo_id="p1", face_count=2),
            ItemOutcome(name="b.jpg", ok=False, error="boom"),
            ItemOutcome(name="c.jpg", ok=True, photo_id="p3"),
        ]
    )
    assert result.total == 3
    assert result.succeeded == 2
    assert result.failed == 1
    assert [o.name for o in result.failures] == ["b.jpg"]
    assert result.summary() == "2 succeeded / 1 failed"


def test_batch_result_raise_for_failures():
    BatchResult(outcomes=[ItemOutcome(name="a.jpg", ok=True)]).raise_for_failures()

    result = BatchResult(outcomes=[ItemOutcome(name="a.jpg", ok=False, error="boom")])
    with pytest.raises(PartialBatchFailure) as exc_info:
        result.raise_for_failures()
    assert exc_info.value.result is result
    assert "0 succeeded / 1 failed" in str(exc_info.value)
