"""Re-run extraction over an event's stored photos, one photo at a time.

A run is not atomic as a whole: photos already processed keep their new
embeddings if the run stops early, the rest keep their old ones. Failed
photos are counted and left for a later run.
"""

import logging
import threading
from collections.abc import Callable

import duckdb

from event_face_search.embedding.extractor import (
    DescriptorExtractor,
    check_dimensions,
    load_image,
)
from event_face_search.embedding.face_repository import list_photos, replace_embeddings
from event_face_search.errors import ExtractionFailure
from event_face_search.models import (
    BatchResult,
    FaceDescriptor,
    ItemOutcome,
    Photo,
    ReindexResult,
    ReindexState,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], bytes]
ProgressCallback = Callable[[int, int], None]


class ReindexCoordinator:
    """Replace the embedding set of every photo in an event.

    State moves Idle -> Running -> Completed, or Running -> Aborted when the
    caller sets ``cancel`` mid-run.
    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        extractor: DescriptorExtractor,
        fetch: Fetcher,
    ) -> None:
        self.conn = conn
        self.extractor = extractor
        self.fetch = fetch
        self.state = ReindexState.IDLE
        self.current = 0
        self.total = 0
        self._state_lock = threading.Lock()

    def run(
        self,
        event_id: str,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ReindexResult:
        """Reindex every photo of the event, private ones included."""
        with self._state_lock:
            if self.state is ReindexState.RUNNING:
                raise RuntimeError("A reindex run is already in progress")
            self.state = ReindexState.RUNNING
            self.current = 0
            self.total = 0
        batch = BatchResult()

        try:
            photos = list_photos(self.conn, event_id, include_private=True)
            self.total = len(photos)
            logger.info("Reindexing %d photo(s) of event %s with %s", self.total, event_id,
                        self.extractor.model_name)

            for photo in photos:
                if cancel is not None and cancel.is_set():
                    self.state = ReindexState.ABORTED
                    logger.warning("Reindex of event %s aborted at %d/%d", event_id,
                                   self.current, self.total)
                    return ReindexResult(state=self.state, batch=batch)

                batch.outcomes.append(self._reindex_photo(photo))
                self.current += 1
                if on_progress is not None:
                    on_progress(self.current, self.total)
        except BaseException:
            self.state = ReindexState.ABORTED
            raise

        self.state = ReindexState.COMPLETED
        logger.info("Reindex of event %s finished: %s", event_id, batch.summary())
        return ReindexResult(state=self.state, batch=batch)

    def _reindex_photo(self, photo: Photo) -> ItemOutcome:
        try:
            descriptors = self._extract(photo)
            if not replace_embeddings(self.conn, photo.id, descriptors):
                raise LookupError(f"Photo {photo.id} was deleted during reindex")
        except Exception as exc:
            logger.warning("Failed to reindex photo %s: %s", photo.id, exc)
            return ItemOutcome(name=photo.url, ok=False, photo_id=photo.id, error=str(exc))
        return ItemOutcome(
            name=photo.url, ok=True, photo_id=photo.id, face_count=len(descriptors)
        )

    def _extract(self, photo: Photo) -> list[FaceDescriptor]:
        data = self.fetch(photo.url)
        try:
            descriptors = self.extractor.extract(load_image(data))
        except ExtractionFailure as exc:
            logger.warning("No usable faces in photo %s: %s", photo.id, exc)
            return []
        return check_dimensions(descriptors, self.extractor.dim)
