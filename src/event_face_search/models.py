"""Data models for events, photos and face embeddings."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import numpy as np

from event_face_search.errors import PartialBatchFailure

PUBLIC = "public"
PRIVATE = "private"
VISIBILITIES = (PUBLIC, PRIVATE)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form DuckDB TIMESTAMP columns round-trip."""
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass
class Event:
    """Top-level scope that partitions photos and embeddings."""

    id: str
    name: str
    banner: str | None
    created_at: datetime


@dataclass
class PhotoDraft:
    """A photo that has not been written to the store yet."""

    event_id: str
    url: str
    visibility: str = PUBLIC
    created_at: datetime | None = None


@dataclass
class Photo:
    """A stored photo. Immutable except for deletion."""

    id: str
    event_id: str
    url: str
    visibility: str
    created_at: datetime

    @property
    def is_private(self) -> bool:
        return self.visibility == PRIVATE


@dataclass
class FaceDescriptor:
    """One detected face as produced by an extractor."""

    embedding: np.ndarray
    quality_hash: str | None = None


@dataclass
class Embedding:
    """A stored face embedding, scoped to the event of its photo."""

    id: str
    photo_id: str
    event_id: str
    vector: np.ndarray
    quality_hash: str | None


@dataclass
class ItemOutcome:
    """Result of one item inside a batch upload or reindex run."""

    name: str
    ok: bool
    photo_id: str | None = None
    face_count: int = 0
    error: str | None = None


@dataclass
class BatchResult:
    """Per-item outcomes of a batch operation."""

    outcomes: list[ItemOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def failures(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def summary(self) -> str:
        return f"{self.succeeded} succeeded / {self.failed} failed"

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self)


class ReindexState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class ReindexResult:
    """Final state of a reindex run plus its per-photo outcomes."""

    state: ReindexState
    batch: BatchResult
