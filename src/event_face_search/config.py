"""Project-wide configuration."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(os.environ.get("EFS_PROJECT_ROOT", Path.cwd()))

load_dotenv(PROJECT_ROOT / ".env")

DB_PATH = Path(os.environ.get("EFS_DB_PATH", PROJECT_ROOT / "event_face_search.duckdb"))

# Object storage – local directory served read-only under MEDIA_URL_PREFIX
MEDIA_DIR = Path(os.environ.get("EFS_MEDIA_DIR", PROJECT_ROOT / "data" / "media"))
MEDIA_URL_PREFIX = os.environ.get("EFS_MEDIA_URL_PREFIX", "/media").rstrip("/")

# Matching – Euclidean distance below which two faces are the same person.
# Lower values trade recall for precision.
FACE_MATCH_THRESHOLD = float(os.environ.get("FACE_MATCH_THRESHOLD", "0.5"))

# Descriptor dimension of the current model generation (face-api.js: 128, ArcFace: 512)
FACE_EMBEDDING_DIM = int(os.environ.get("FACE_EMBEDDING_DIM", "128"))

# Face detection – InsightFace
INSIGHTFACE_MODEL = "buffalo_l"
INSIGHTFACE_EMBEDDING_DIM = 512

# Images are downscaled to this longest side before detection
DETECTION_MAX_SIDE = 800

# Best-effort compression applied before upload
UPLOAD_MAX_SIDE = 1920
UPLOAD_MAX_BYTES = 2 * 1024 * 1024
UPLOAD_JPEG_QUALITY = 85

# Rows pulled per round trip when streaming candidate embeddings
CANDIDATE_FETCH_SIZE = 1000

FETCH_TIMEOUT = float(os.environ.get("EFS_FETCH_TIMEOUT", "30"))

# HTTP API
API_HOST = os.environ.get("EFS_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("EFS_API_PORT", "8000"))

LOG_LEVEL = os.environ.get("EFS_LOG_LEVEL", "INFO")


def setup_logging(level: str | None = None) -> None:
    """Route log records through rich. Called once by each CLI entry point."""
    from rich.logging import RichHandler

    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
