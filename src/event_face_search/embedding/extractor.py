"""Descriptor extractor interface and image normalization."""

from io import BytesIO
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from event_face_search.config import DETECTION_MAX_SIDE
from event_face_search.errors import DimensionMismatch, ExtractionFailure
from event_face_search.models import FaceDescriptor


class DescriptorExtractor(Protocol):
    """Turns an image into zero or more face descriptors.

    Implementations raise ExtractionFailure when the image yields no usable
    embeddings for reasons other than "no face found".
    """

    model_name: str
    dim: int

    def extract(self, image: Image.Image) -> list[FaceDescriptor]: ...


def load_image(data: bytes, max_side: int = DETECTION_MAX_SIDE) -> Image.Image:
    """Decode image bytes into an upright RGB image no larger than max_side.

    Raises:
        ExtractionFailure: The bytes are not a decodable image.
    """
    try:
        img = Image.open(BytesIO(data))
        img = ImageOps.exif_transpose(img)
        img = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise ExtractionFailure(f"Cannot decode image: {exc}") from exc

    scale = max_side / max(img.size)
    if scale < 1:
        size = (max(1, round(img.width * scale)), max(1, round(img.height * scale)))
        img = img.resize(size, Image.Resampling.LANCZOS)
    return img


def check_dimensions(descriptors: list[FaceDescriptor], dim: int) -> list[FaceDescriptor]:
    """Reject descriptors whose length differs from dim.

    Raises:
        DimensionMismatch: The first descriptor of the wrong length.
    """
    for desc in descriptors:
        size = len(desc.embedding)
        if size != dim:
            raise DimensionMismatch(dim, size)
    return descriptors
