"""FastAPI application exposing search, ingest, reindex and gallery endpoints."""

import json
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager

import duckdb
import httpx
import numpy as np
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from event_face_search.config import FACE_EMBEDDING_DIM
from event_face_search.db import get_connection
from event_face_search.embedding.face_hash import face_hash
from event_face_search.embedding.face_repository import (
    delete_photo,
    get_photo,
    list_photos,
    replace_embeddings,
)
from event_face_search.embedding.ingest import UploadItem, store_uploaded_photo
from event_face_search.embedding.matcher import FaceMatcher
from event_face_search.errors import DimensionMismatch, StoreUnavailable, UnknownEvent
from event_face_search.manager.downloader import fetch_image_bytes
from event_face_search.manager.repository import (
    create_event,
    delete_event,
    get_event,
    list_events,
)
from event_face_search.manager.storage import LocalObjectStorage, content_type_for
from event_face_search.models import PUBLIC, VISIBILITIES, Event, FaceDescriptor, Photo
from event_face_search.search.query import search_photo_urls

logger = logging.getLogger(__name__)


class CreateEventRequest(BaseModel):
    name: str | None = None
    banner: str | None = None


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str | None = Field(default=None, alias="eventId")
    embeddings: list[list[float]] | None = None
    # Single-vector form used by older clients
    vector: list[float] | None = None


class ReindexRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    photo_id: str | None = Field(default=None, alias="photoId")
    event_id: str | None = Field(default=None, alias="eventId")
    embeddings: list[list[float]] | None = None
    quality_hashes: list[str | None] | None = Field(default=None, alias="qualityHashes")


def get_cursor(request: Request) -> Iterator[duckdb.DuckDBPyConnection]:
    """Per-request cursor so each request gets its own transaction context."""
    cursor = request.app.state.conn.cursor()
    try:
        yield cursor
    finally:
        cursor.close()


def get_storage(request: Request) -> LocalObjectStorage:
    return request.app.state.storage


def get_matcher(request: Request) -> FaceMatcher:
    return request.app.state.matcher


def create_app(
    conn: duckdb.DuckDBPyConnection | None = None,
    storage: LocalObjectStorage | None = None,
    matcher: FaceMatcher | None = None,
    db_path: str | None = None,
    embedding_dim: int = FACE_EMBEDDING_DIM,
) -> FastAPI:
    """Build the API. A connection passed in stays owned by the caller."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_conn = app.state.conn is None
        if owns_conn:
            app.state.conn = get_connection(db_path)
            logger.info("Opened database %s", db_path or "(default)")
        try:
            yield
        finally:
            if owns_conn:
                app.state.conn.close()
                app.state.conn = None

    app = FastAPI(title="Event Face Search API", lifespan=lifespan)
    app.state.conn = conn
    app.state.storage = storage or LocalObjectStorage()
    app.state.matcher = matcher or FaceMatcher()
    app.state.embedding_dim = embedding_dim

    app.mount(
        app.state.storage.url_prefix,
        StaticFiles(directory=app.state.storage.root),
        name="media",
    )

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Store unavailable on %s: %s", request.url.path, exc)
        return JSONResponse({"error": "Store unavailable"}, status_code=503)

    @app.exception_handler(DimensionMismatch)
    async def _dimension_mismatch(request: Request, exc: DimensionMismatch) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(UnknownEvent)
    async def _unknown_event(request: Request, exc: UnknownEvent) -> JSONResponse:
        return JSONResponse({"error": "Event not found"}, status_code=404)

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "healthy"}

    @app.get("/api/events")
    def get_events(cursor: duckdb.DuckDBPyConnection = Depends(get_cursor)) -> list[dict]:
        return [_event_json(e) for e in list_events(cursor)]

    @app.post("/api/events")
    def post_event(
        body: CreateEventRequest,
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
    ) -> dict:
        if not body.name or not body.name.strip():
            raise HTTPException(status_code=400, detail="Name is required")
        return _event_json(create_event(cursor, body.name, body.banner))

    @app.delete("/api/events/{event_id}")
    def remove_event(
        event_id: str,
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
        storage: LocalObjectStorage = Depends(get_storage),
    ) -> dict:
        deleted = delete_event(cursor, event_id)
        if deleted is None:
            raise HTTPException(status_code=404, detail="Event not found")
        removed = storage.delete_prefix(f"events/{event_id}")
        logger.info("Removed %d stored object(s) of event %s", removed, event_id)
        return {"success": True}

    @app.get("/api/events/{event_id}/photos")
    def get_event_photos(
        event_id: str,
        include_private: bool = Query(False, alias="includePrivate"),
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
    ) -> list[dict]:
        return [_photo_json(p) for p in list_photos(cursor, event_id, include_private)]

    @app.delete("/api/photos/{photo_id}")
    def remove_photo(
        photo_id: str,
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
        storage: LocalObjectStorage = Depends(get_storage),
    ) -> dict:
        deleted = delete_photo(cursor, photo_id)
        if deleted is None:
            raise HTTPException(status_code=404, detail="Photo not found")
        if storage.owns(deleted.url):
            storage.delete(deleted.url)
        return {"success": True}

    @app.post("/api/search")
    def search(
        body: SearchRequest,
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
        matcher: FaceMatcher = Depends(get_matcher),
    ) -> dict:
        queries = body.embeddings or ([body.vector] if body.vector else None)
        if not body.event_id or not queries:
            raise HTTPException(status_code=400, detail="Missing eventId or embeddings")
        urls = search_photo_urls(cursor, matcher, body.event_id, queries)
        return {"matchedPhotoUrls": urls}

    @app.post("/api/upload")
    def upload_photo(
        request: Request,
        file: UploadFile = File(...),
        event_id: str | None = Form(None, alias="eventId"),
        embeddings: str | None = Form(None),
        quality_hashes: str | None = Form(None, alias="qualityHashes"),
        visibility: str = Form(PUBLIC),
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
        storage: LocalObjectStorage = Depends(get_storage),
    ) -> dict:
        if not event_id or embeddings is None:
            raise HTTPException(status_code=400, detail="Missing fields")
        if visibility not in VISIBILITIES:
            raise HTTPException(status_code=400, detail=f"Invalid visibility: {visibility}")
        vectors = _parse_json_field(embeddings, "embeddings")
        hashes = _parse_json_field(quality_hashes, "qualityHashes") if quality_hashes else None
        descriptors = _to_descriptors(vectors, hashes, request.app.state.embedding_dim)
        if get_event(cursor, event_id) is None:
            raise HTTPException(status_code=404, detail="Event not found")

        item = UploadItem(
            filename=file.filename or "photo",
            data=file.file.read(),
            content_type=file.content_type,
        )
        photo = store_uploaded_photo(cursor, storage, event_id, item, descriptors, visibility)
        return {"success": True, "photo": _photo_json(photo)}

    @app.post("/api/admin/reindex")
    def reindex_photo(
        body: ReindexRequest,
        request: Request,
        cursor: duckdb.DuckDBPyConnection = Depends(get_cursor),
    ) -> dict:
        if not body.photo_id or not body.event_id or body.embeddings is None:
            raise HTTPException(status_code=400, detail="Missing required fields")
        descriptors = _to_descriptors(
            body.embeddings, body.quality_hashes, request.app.state.embedding_dim
        )
        photo = get_photo(cursor, body.photo_id)
        if photo is None or photo.event_id != body.event_id:
            raise HTTPException(status_code=404, detail="Photo not found")

        logger.info("Reindexing photo %s with %d face(s)", photo.id, len(descriptors))
        if not replace_embeddings(cursor, photo.id, descriptors):
            raise HTTPException(status_code=404, detail="Photo not found")
        return {"success": True}

    @app.get("/api/proxy")
    def proxy_image(
        url: str | None = None,
        storage: LocalObjectStorage = Depends(get_storage),
    ) -> Response:
        if not url:
            raise HTTPException(status_code=400, detail="Missing URL param")
        try:
            content = fetch_image_bytes(url, storage)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("Proxy fetch of %s failed: %s", url, exc)
            raise HTTPException(status_code=502, detail="Failed to fetch image") from exc
        return Response(
            content=content,
            media_type=content_type_for(url),
            headers={"Cache-Control": "public, max-age=31536000, immutable"},
        )

    return app


def _parse_json_field(raw: str, name: str) -> list:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON in {name}") from exc
    if not isinstance(value, list):
        raise HTTPException(status_code=400, detail=f"{name} must be a JSON array")
    return value


def _to_descriptors(
    vectors: list,
    hashes: list | None,
    dim: int,
) -> list[FaceDescriptor]:
    """Validate client-computed embeddings and pair them with quality hashes."""
    if hashes is not None and len(hashes) != len(vectors):
        raise HTTPException(status_code=400, detail="qualityHashes must match embeddings")
    descriptors = []
    for i, vector in enumerate(vectors):
        if not isinstance(vector, list) or not all(
            isinstance(v, int | float) and not isinstance(v, bool) for v in vector
        ):
            raise HTTPException(status_code=400, detail=f"Embedding {i} is not a number array")
        if len(vector) != dim:
            raise HTTPException(
                status_code=400,
                detail=f"Embedding {i} has dimension {len(vector)}, expected {dim}",
            )
        quality_hash = hashes[i] if hashes is not None else face_hash(vector)
        descriptors.append(
            FaceDescriptor(embedding=np.asarray(vector, dtype=np.float64), quality_hash=quality_hash)
        )
    return descriptors


def _event_json(event: Event) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "banner": event.banner,
        "createdAt": event.created_at.isoformat(),
    }


def _photo_json(photo: Photo) -> dict:
    return {
        "id": photo.id,
        "eventId": photo.event_id,
        "url": photo.url,
        "visibility": photo.visibility,
        "isPrivate": photo.is_private,
        "createdAt": photo.created_at.isoformat(),
    }
