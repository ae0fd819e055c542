"""Shared test fixtures."""

from io import BytesIO

import duckdb
import numpy as np
import pytest
from PIL import Image

from event_face_search.errors import ExtractionFailure
from event_face_search.manager.repository import create_event
from event_face_search.manager.schema import ensure_schema
from event_face_search.manager.storage import LocalObjectStorage
from event_face_search.models import FaceDescriptor

DIM = 4


@pytest.fixture
def db_conn():
    """In-memory DuckDB connection with schema initialized."""
    conn = duckdb.connect(":memory:")
    ensure_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def storage(tmp_path):
    """Local object storage rooted in a temporary directory."""
    return LocalObjectStorage(root=tmp_path / "media", url_prefix="/media")


@pytest.fixture
def event(db_conn):
    return create_event(db_conn, "PyCon JP 2024")


def make_descriptor(*values: float, quality_hash: str | None = None) -> FaceDescriptor:
    """Helper to create a FaceDescriptor from plain floats."""
    return FaceDescriptor(embedding=np.array(values, dtype=np.float64), quality_hash=quality_hash)


def make_image_bytes(
    color: tuple[int, int, int] = (200, 120, 80),
    size: tuple[int, int] = (64, 48),
    fmt: str = "PNG",
) -> bytes:
    """Encode a solid-color image. PNG keeps pixel values exact."""
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class FakeExtractor:
    """Extractor keyed by the red channel of the image's top-left pixel.

    ``faces`` maps a red value to the descriptors returned for it; images
    with any other red value have no faces. Red values in ``fail`` raise
    RuntimeError, those in ``unusable`` raise ExtractionFailure.
    """

    model_name = "fake/v1"
    dim = DIM

    def __init__(self, faces=None, fail=(), unusable=()):
        self.faces = faces or {}
        self.fail = set(fail)
        self.unusable = set(unusable)
        self.calls = 0

    def extract(self, image):
        self.calls += 1
        red = image.getpixel((0, 0))[0]
        if red in self.fail:
            raise RuntimeError(f"extractor crashed on red={red}")
        if red in self.unusable:
            raise ExtractionFailure(f"unusable image red={red}")
        return list(self.faces.get(red, []))
