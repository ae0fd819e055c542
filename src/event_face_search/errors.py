"""Exception taxonomy shared by the store, the matcher and the pipelines."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from event_face_search.models import BatchResult


class FaceSearchError(Exception):
    """Base class for all errors raised by this package."""


class ExtractionFailure(FaceSearchError):
    """The extractor could not produce usable embeddings for an image.

    Not an error for the containing batch: the image is stored with zero
    embeddings and stays out of every match result.
    """


class DimensionMismatch(FaceSearchError, ValueError):
    """Query and candidate vectors have different lengths."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StoreUnavailable(FaceSearchError):
    """The storage layer failed. The whole operation is safe to retry."""


class UnknownEvent(FaceSearchError):
    """A write referenced an event that does not exist."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Unknown event: {event_id}")
        self.event_id = event_id


class PartialBatchFailure(FaceSearchError):
    """A batch finished with some items failed."""

    def __init__(self, result: BatchResult) -> None:
        super().__init__(f"{result.succeeded} succeeded / {result.failed} failed")
        self.result = result
