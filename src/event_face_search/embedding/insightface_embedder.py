"""InsightFace wrapper for face detection and embedding extraction."""

import logging

import cv2
import numpy as np
from insightface.app import FaceAnalysis
from PIL import Image

from event_face_search.config import INSIGHTFACE_EMBEDDING_DIM, INSIGHTFACE_MODEL
from event_face_search.embedding.face_hash import face_hash
from event_face_search.errors import ExtractionFailure
from event_face_search.models import FaceDescriptor

logger = logging.getLogger(__name__)


class InsightFaceExtractor:
    """Detect faces and extract ArcFace embeddings using InsightFace."""

    dim = INSIGHTFACE_EMBEDDING_DIM

    def __init__(
        self,
        model_name: str = INSIGHTFACE_MODEL,
        device: str = "cuda",
    ) -> None:
        providers = (
            ["CUDAExecutionProvider", "CPUExecutionProvider"]
            if device == "cuda"
            else ["CPUExecutionProvider"]
        )
        self.app = FaceAnalysis(
            name=model_name,
            allowed_modules=["detection", "recognition"],
            providers=providers,
        )
        self.app.prepare(ctx_id=0 if device == "cuda" else -1, det_size=(640, 640))
        self.model_name = f"insightface/{model_name}"
        logger.info("InsightFace %s loaded on %s", model_name, device)

    def extract(self, image: Image.Image) -> list[FaceDescriptor]:
        """Detect faces in an RGB image and return one descriptor per face.

        Returns:
            List of FaceDescriptor objects with 512-dim normalized embeddings;
            empty when no face was found.
        """
        bgr = cv2.cvtColor(np.asarray(image.convert("RGB")), cv2.COLOR_RGB2BGR)
        try:
            faces = self.app.get(bgr)
        except cv2.error as exc:
            raise ExtractionFailure(f"InsightFace could not process image: {exc}") from exc

        descriptors = []
        for face in faces:
            if face.normed_embedding is None:
                continue
            embedding = face.normed_embedding.astype(np.float64)
            descriptors.append(FaceDescriptor(embedding=embedding, quality_hash=face_hash(embedding)))
        return descriptors
