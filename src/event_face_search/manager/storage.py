"""Object storage for photo bytes."""

import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Protocol

from event_face_search.config import MEDIA_DIR, MEDIA_URL_PREFIX

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Stores photo bytes and hands back a publicly readable URL."""

    def put(self, data: bytes, content_type: str, key: str) -> str: ...

    def read(self, url: str) -> bytes: ...

    def delete(self, url: str) -> bool: ...

    def delete_prefix(self, prefix: str) -> int: ...

    def owns(self, url: str) -> bool: ...


class LocalObjectStorage:
    """Keep objects under a local directory, addressed as ``<url_prefix>/<key>``.

    The HTTP app mounts the directory read-only at the same prefix.
    """

    def __init__(self, root: Path = MEDIA_DIR, url_prefix: str = MEDIA_URL_PREFIX) -> None:
        self.root = Path(root).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, data: bytes, content_type: str, key: str) -> str:
        """Write bytes under key and return the public URL."""
        if not Path(key).suffix:
            key += mimetypes.guess_extension(content_type) or ""
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), path)
        return f"{self.url_prefix}/{key}"

    def read(self, url: str) -> bytes:
        return self._path_for_url(url).read_bytes()

    def delete(self, url: str) -> bool:
        """Remove a stored object. Returns False when it was already gone."""
        path = self._path_for_url(url)
        if not path.exists():
            return False
        path.unlink()
        return True

    def delete_prefix(self, prefix: str) -> int:
        """Remove every object whose key starts with the directory prefix."""
        path = self._resolve(prefix)
        if not path.is_dir():
            return 0
        count = sum(1 for p in path.rglob("*") if p.is_file())
        shutil.rmtree(path)
        return count

    def owns(self, url: str) -> bool:
        return url.startswith(self.url_prefix + "/")

    def _path_for_url(self, url: str) -> Path:
        if not self.owns(url):
            raise ValueError(f"URL is not served by this storage: {url}")
        return self._resolve(url[len(self.url_prefix) + 1 :])

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Key escapes storage root: {key}")
        return path


def content_type_for(name: str, default: str = "image/jpeg") -> str:
    """Guess the MIME type of a file name or URL."""
    guessed, _ = mimetypes.guess_type(name)
    return guessed or default
