"""Fetch stored photo bytes back for re-extraction."""

import logging

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from event_face_search.config import FETCH_TIMEOUT
from event_face_search.manager.storage import LocalObjectStorage

logger = logging.getLogger(__name__)


def fetch_image_bytes(
    url: str,
    storage: LocalObjectStorage | None = None,
    client: httpx.Client | None = None,
) -> bytes:
    """Return the bytes behind a photo URL.

    URLs owned by the local storage are read from disk; ``http(s)`` URLs are
    downloaded, retrying timeouts.

    Raises:
        httpx.HTTPError: The remote fetch failed.
        ValueError: The URL is neither local nor http(s).
    """
    if storage is not None and storage.owns(url):
        return storage.read(url)
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Unsupported photo URL: {url}")

    if client is not None:
        return _download(client, url)
    with httpx.Client(timeout=FETCH_TIMEOUT, follow_redirects=True) as http_client:
        return _download(http_client, url)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, max=10),
    retry=retry_if_exception_type(httpx.TimeoutException),
    reraise=True,
)
def _download(client: httpx.Client, url: str) -> bytes:
    resp = client.get(url)
    resp.raise_for_status()
    logger.debug("Fetched %d bytes from %s", len(resp.content), url)
    return resp.content
