"""Indexing pipeline: uploaded image -> stored bytes -> photo + embeddings."""

import logging
import mimetypes
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

import duckdb
from PIL import Image, ImageOps

from event_face_search.config import (
    FACE_EMBEDDING_DIM,
    UPLOAD_JPEG_QUALITY,
    UPLOAD_MAX_BYTES,
    UPLOAD_MAX_SIDE,
)
from event_face_search.embedding.extractor import (
    DescriptorExtractor,
    check_dimensions,
    load_image,
)
from event_face_search.embedding.face_repository import put_photo_with_embeddings
from event_face_search.errors import DimensionMismatch, ExtractionFailure
from event_face_search.manager.storage import ObjectStorage, content_type_for
from event_face_search.models import (
    PUBLIC,
    BatchResult,
    FaceDescriptor,
    ItemOutcome,
    Photo,
    PhotoDraft,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class UploadItem:
    """One image of a batch upload, given as bytes or as a file to read."""

    filename: str
    data: bytes | None = None
    content_type: str | None = None
    path: Path | None = None

    def read(self) -> bytes:
        if self.data is None:
            if self.path is None:
                raise ValueError(f"Upload item {self.filename} has neither data nor path")
            self.data = self.path.read_bytes()
        return self.data


class IndexingPipeline:
    """Turn uploaded images into stored photos with their face embeddings.

    The extractor must produce vectors of ``embedding_dim``, the dimension
    searches against the store use. An item whose descriptors have another
    length fails before anything is written.
    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        extractor: DescriptorExtractor,
        storage: ObjectStorage,
        compress: bool = True,
        embedding_dim: int = FACE_EMBEDDING_DIM,
    ) -> None:
        if extractor.dim != embedding_dim:
            raise DimensionMismatch(embedding_dim, extractor.dim)
        self.conn = conn
        self.extractor = extractor
        self.storage = storage
        self.compress = compress

    def ingest_image(
        self,
        event_id: str,
        item: UploadItem,
        visibility: str = PUBLIC,
    ) -> Photo:
        """Extract faces from one image, upload it, and record the photo.

        A photo with no detected face is still stored; it is just never
        matched.
        """
        photo, _ = self._ingest(event_id, item, visibility)
        return photo

    def ingest_batch(
        self,
        event_id: str,
        items: Iterable[UploadItem],
        visibility: str = PUBLIC,
        on_progress: ProgressCallback | None = None,
        total: int | None = None,
    ) -> BatchResult:
        """Ingest images one at a time; a failing image does not stop the batch.

        Pass ``total`` to keep ``items`` a lazy iterable; otherwise it is
        materialized to count it for progress reporting.
        """
        if total is None:
            items = list(items)
            total = len(items)
        result = BatchResult()

        for idx, item in enumerate(items):
            try:
                photo, face_count = self._ingest(event_id, item, visibility)
            except Exception as exc:
                logger.warning("Failed to ingest %s: %s", item.filename, exc)
                result.outcomes.append(ItemOutcome(name=item.filename, ok=False, error=str(exc)))
            else:
                result.outcomes.append(
                    ItemOutcome(
                        name=item.filename, ok=True, photo_id=photo.id, face_count=face_count
                    )
                )
            if on_progress is not None:
                on_progress(idx + 1, total)

        logger.info("Batch ingest into event %s: %s", event_id, result.summary())
        return result

    def _ingest(self, event_id: str, item: UploadItem, visibility: str) -> tuple[Photo, int]:
        try:
            descriptors = check_dimensions(
                self.extractor.extract(load_image(item.read())), self.extractor.dim
            )
        except ExtractionFailure as exc:
            logger.warning("No usable faces in %s: %s", item.filename, exc)
            descriptors = []

        photo = store_uploaded_photo(
            self.conn,
            self.storage,
            event_id,
            item,
            descriptors,
            visibility=visibility,
            compress=self.compress,
        )
        return photo, len(descriptors)


def store_uploaded_photo(
    conn: duckdb.DuckDBPyConnection,
    storage: ObjectStorage,
    event_id: str,
    item: UploadItem,
    descriptors: list[FaceDescriptor],
    visibility: str = PUBLIC,
    compress: bool = True,
) -> Photo:
    """Upload image bytes, then record the photo with its embeddings.

    The uploaded object is removed again when the store write fails.
    """
    data = item.read()
    content_type = item.content_type or content_type_for(item.filename)
    if compress:
        data, content_type = compress_for_upload(data, content_type)

    filename = _sanitize_filename(item.filename)
    if content_type_for(filename, default="") != content_type:
        filename = Path(filename).stem + (mimetypes.guess_extension(content_type) or "")
    key = f"events/{event_id}/{int(time.time() * 1000)}-{filename}"
    url = storage.put(data, content_type, key)

    try:
        photo = put_photo_with_embeddings(
            conn,
            PhotoDraft(event_id=event_id, url=url, visibility=visibility),
            descriptors,
        )
    except Exception:
        try:
            storage.delete(url)
        except Exception as cleanup_exc:
            logger.error("Could not remove orphaned object %s: %s", url, cleanup_exc)
        raise

    logger.info("Indexed %s as photo %s with %d face(s)", item.filename, photo.id, len(descriptors))
    return photo


def compress_for_upload(
    data: bytes,
    content_type: str,
    max_side: int = UPLOAD_MAX_SIDE,
    max_bytes: int = UPLOAD_MAX_BYTES,
    quality: int = UPLOAD_JPEG_QUALITY,
) -> tuple[bytes, str]:
    """Shrink an image for storage, falling back to the original bytes.

    Images already within both the size and byte budget are left alone.
    """
    try:
        img = Image.open(BytesIO(data))
        if max(img.size) <= max_side and len(data) <= max_bytes:
            return data, content_type
        img = ImageOps.exif_transpose(img).convert("RGB")
        img.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
        out = BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
    except Exception as exc:
        logger.warning("Compression failed, uploading original: %s", exc)
        return data, content_type

    compressed = out.getvalue()
    if len(compressed) >= len(data):
        return data, content_type
    return compressed, "image/jpeg"


def _sanitize_filename(name: str) -> str:
    """Convert an uploaded file name to a safe object key component."""
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    safe = "".join(c if c.isalnum() or c in "-_ " else "" for c in stem)
    safe = safe.strip().replace(" ", "_") or "photo"
    ext = "".join(c for c in ext if c.isalnum()).lower()
    return f"{safe}.{ext}" if ext else safe
