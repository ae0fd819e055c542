"""Tests for the HTTP API."""

import json

import pytest
from conftest import make_image_bytes
from fastapi.testclient import TestClient

from event_face_search.embedding.face_repository import (
    get_embeddings_for_photo,
    get_photo,
    list_photos,
)
from event_face_search.embedding.matcher import FaceMatcher
from event_face_search.errors import StoreUnavailable
from event_face_search.search import app as app_module
from event_face_search.search.app import create_app

ALICE = [0.1, 0.1, 0.1, 0.1]
BOB = [0.9, 0.9, 0.9, 0.9]


@pytest.fixture
def client(db_conn, storage):
    app = create_app(conn=db_conn, storage=storage, matcher=FaceMatcher(0.5), embedding_dim=4)
    with TestClient(app) as test_client:
        yield test_client


def _upload(client, event_id, embeddings, filename="a.png", **form):
    return client.post(
        "/api/upload",
        files={"file": (filename, make_image_bytes(), "image/png")},
        data={"eventId": event_id, "embeddings": json.dumps(embeddings), **form},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_create_and_list_events(client):
    resp = client.post("/api/events", json={"name": "PyCon JP 2024", "banner": "/media/b.jpg"})
    assert resp.status_code == 200
    created = resp.json()
    assert created["name"] == "PyCon JP 2024"
    assert created["banner"] == "/media/b.jpg"

    events = client.get("/api/events").json()
    assert [e["id"] for e in events] == [created["id"]]


def test_create_event_requires_name(client):
    assert client.post("/api/events", json={}).status_code == 400
    assert client.post("/api/events", json={"name": "  "}).status_code == 400


def test_upload_then_search(client, db_conn, event):
    resp = _upload(client, event.id, [ALICE])
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    photo = body["photo"]
    assert photo["eventId"] == event.id
    assert photo["isPrivate"] is False
    assert len(get_embeddings_for_photo(db_conn, photo["id"])) == 1

    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": [ALICE]})
    assert resp.status_code == 200
    assert resp.json() == {"matchedPhotoUrls": [photo["url"]]}

    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": [BOB]})
    assert resp.json() == {"matchedPhotoUrls": []}

    # Stored bytes are served under the media prefix
    assert client.get(photo["url"]).content == make_image_bytes()


def test_search_accepts_single_vector(client, event):
    url = _upload(client, event.id, [ALICE]).json()["photo"]["url"]
    resp = client.post("/api/search", json={"eventId": event.id, "vector": ALICE})
    assert resp.json() == {"matchedPhotoUrls": [url]}


def test_search_missing_fields(client, event):
    assert client.post("/api/search", json={"embeddings": [ALICE]}).status_code == 400
    assert client.post("/api/search", json={"eventId": event.id}).status_code == 400
    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": []})
    assert resp.status_code == 400


def test_search_dimension_mismatch(client, event):
    _upload(client, event.id, [ALICE])
    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": [[0.1, 0.2]]})
    assert resp.status_code == 400


def test_search_store_unavailable(client, event, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreUnavailable("disk gone")

    monkeypatch.setattr(app_module, "search_photo_urls", broken)
    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": [ALICE]})
    assert resp.status_code == 503


def test_upload_private_photo_with_quality_hashes(client, db_conn, event):
    resp = _upload(
        client,
        event.id,
        [ALICE, BOB],
        visibility="private",
        qualityHashes=json.dumps(["h1", "h2"]),
    )
    assert resp.status_code == 200
    photo_id = resp.json()["photo"]["id"]
    assert get_photo(db_conn, photo_id).is_private
    stored = get_embeddings_for_photo(db_conn, photo_id)
    assert sorted(e.quality_hash for e in stored) == ["h1", "h2"]


def test_upload_computes_missing_quality_hashes(client, db_conn, event):
    photo_id = _upload(client, event.id, [ALICE]).json()["photo"]["id"]
    [stored] = get_embeddings_for_photo(db_conn, photo_id)
    assert len(stored.quality_hash) == 8


def test_upload_without_faces(client, db_conn, event):
    resp = _upload(client, event.id, [])
    assert resp.status_code == 200
    assert len(list_photos(db_conn, event.id)) == 1


def test_upload_validation(client, event, storage):
    assert _upload(client, event.id, [[0.1, 0.2]]).status_code == 400
    assert _upload(client, event.id, [["a", "b", "c", "d"]]).status_code == 400
    assert _upload(client, event.id, [ALICE], visibility="hidden").status_code == 400
    assert _upload(client, "missing", [ALICE]).status_code == 404
    resp = client.post(
        "/api/upload",
        files={"file": ("a.png", make_image_bytes(), "image/png")},
        data={"eventId": event.id, "embeddings": "not json"},
    )
    assert resp.status_code == 400
    assert [p for p in storage.root.rglob("*") if p.is_file()] == []


def test_reindex_replaces_embeddings(client, db_conn, event):
    photo_id = _upload(client, event.id, [ALICE]).json()["photo"]["id"]

    resp = client.post(
        "/api/admin/reindex",
        json={"photoId": photo_id, "eventId": event.id, "embeddings": [BOB, BOB]},
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert len(get_embeddings_for_photo(db_conn, photo_id)) == 2

    resp = client.post("/api/search", json={"eventId": event.id, "embeddings": [ALICE]})
    assert resp.json() == {"matchedPhotoUrls": []}


def test_reindex_errors(client, event):
    photo_id = _upload(client, event.id, [ALICE]).json()["photo"]["id"]
    assert client.post("/api/admin/reindex", json={"photoId": photo_id}).status_code == 400
    resp = client.post(
        "/api/admin/reindex",
        json={"photoId": photo_id, "eventId": "other", "embeddings": [BOB]},
    )
    assert resp.status_code == 404
    resp = client.post(
        "/api/admin/reindex",
        json={"photoId": photo_id, "eventId": event.id, "embeddings": [[0.1]]},
    )
    assert resp.status_code == 400


def test_list_event_photos(client, event):
    public_id = _upload(client, event.id, [ALICE]).json()["photo"]["id"]
    _upload(client, event.id, [BOB], visibility="private")

    photos = client.get(f"/api/events/{event.id}/photos").json()
    assert [p["id"] for p in photos] == [public_id]
    photos = client.get(f"/api/events/{event.id}/photos", params={"includePrivate": "true"})
    assert len(photos.json()) == 2


def test_delete_photo(client, db_conn, event, storage):
    photo = _upload(client, event.id, [ALICE]).json()["photo"]

    assert client.delete(f"/api/photos/{photo['id']}").status_code == 200
    assert get_photo(db_conn, photo["id"]) is None
    assert [p for p in storage.root.rglob("*") if p.is_file()] == []
    assert client.delete(f"/api/photos/{photo['id']}").status_code == 404


def test_delete_event(client, event, storage):
    _upload(client, event.id, [ALICE])

    assert client.delete(f"/api/events/{event.id}").status_code == 200
    assert client.get("/api/events").json() == []
    assert [p for p in storage.root.rglob("*") if p.is_file()] == []
    assert client.delete(f"/api/events/{event.id}").status_code == 404


def test_proxy_local_image(client, event):
    url = _upload(client, event.id, [ALICE]).json()["photo"]["url"]
    resp = client.get("/api/proxy", params={"url": url})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content == make_image_bytes()


def test_proxy_errors(client):
    assert client.get("/api/proxy").status_code == 400
    assert client.get("/api/proxy", params={"url": "ftp://example.com/a.jpg"}).status_code == 400
    assert client.get("/api/proxy", params={"url": "/media/missing.jpg"}).status_code == 502
