import hashlib
import uuid

from siteops.config import settings
from siteops.models.models import FileObject
from siteops.routes.files import canonical_key


def test_upload_stores_file_and_metadata(client, db, storage, project, png_bytes):
    resp = client.post(
        "/files/upload",
        files={"file": ("Site Photo.png", png_bytes, "image/png")},
        data={"project_id": str(project.id), "category": "attendance"},
    )

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["provider"] == "local"
    assert body["checksum_sha256"] == hashlib.sha256(png_bytes).hexdigest()
    assert body["size_bytes"] == len(png_bytes)
    assert body["project_id"] == str(project.id)
    assert body["key"].startswith("/org/")
    assert "/blr-001-" in body["key"]
    assert "/attendance/" in body["key"]
    assert body["key"].endswith("_site-photo.png")
    assert storage.read(body["key"]) == png_bytes
    assert db.query(FileObject).count() == 1


def test_download_and_metadata(client, uploaded_file_id, png_bytes):
    meta = client.get(f"/files/{uploaded_file_id}")
    assert meta.status_code == 200
    assert meta.json()["original_name"] == "site.png"

    download = client.get(f"/files/{uploaded_file_id}/download")
    assert download.status_code == 200
    assert download.content == png_bytes
    assert download.headers["content-type"] == "image/png"


def test_delete_removes_object_and_row(client, db, storage, uploaded_file_id):
    key = db.get(FileObject, uuid.UUID(uploaded_file_id)).key

    assert client.delete(f"/files/{uploaded_file_id}").status_code == 204
    assert client.get(f"/files/{uploaded_file_id}").status_code == 404
    assert not storage.exists(key)


def test_rejects_unsupported_type(client):
    resp = client.post("/files/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert resp.status_code == 415


def test_rejects_empty_file(client):
    resp = client.post("/files/upload", files={"file": ("empty.jpg", b"", "image/jpeg")})
    assert resp.status_code == 400


def test_rejects_oversized_file(client, png_bytes, monkeypatch):
    monkeypatch.setattr(settings, "upload_max_bytes", 10)
    resp = client.post("/files/upload", files={"file": ("big.png", png_bytes, "image/png")})
    assert resp.status_code == 413


def test_invalid_project_id_format(client, png_bytes):
    resp = client.post(
        "/files/upload",
        files={"file": ("a.png", png_bytes, "image/png")},
        data={"project_id": "not-a-uuid"},
    )
    assert resp.status_code == 400


def test_unknown_file_is_not_found(client):
    assert client.get(f"/files/{uuid.uuid4()}/download").status_code == 404


def test_canonical_key_layout():
    key = canonical_key("BLR 001", None, "Attendance Photos", "My Photo.JPG")
    parts = key.split("/")
    assert parts[1] == "org"
    assert parts[3] == "blr-001"
    assert parts[4] == "attendance-photos"
    assert parts[5].endswith("_my-photo.jpg")
