"""Tests for the admin upload endpoints and file validation."""
import io

import pytest

from app.noticeboard import create_app
from app.noticeboard.db import session_scope
from app.noticeboard.models import AuditEvent, Base, User
from app.noticeboard.modules.uploads.service import stored_name_for, validate_upload
from app.noticeboard.security import hash_password

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
MB = 1024 * 1024


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "0")
    monkeypatch.delenv("JWT_SECRET", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(username="editor", email="editor@example.com", password_hash=hash_password("Passw0rd!"), full_name="Editor"))
    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    r = c.post("/api/auth/login", json={"username": "editor", "password": "Passw0rd!"})
    c.environ_base["HTTP_AUTHORIZATION"] = "Bearer " + r.json["data"]["token"]
    return c


def _upload_image(client, name="photo.png", mimetype="image/png", data=PNG):
    return client.post(
        "/api/upload/image",
        data={"image": (io.BytesIO(data), name, mimetype)},
        content_type="multipart/form-data",
    )


# ---------- validate_upload ----------
def test_validate_upload_accepts_matching_image():
    assert validate_upload("photo.png", "image/png", 100, images_only=True, max_size=MB) == []
    assert validate_upload("Scan.JPG", "image/jpeg", 100, images_only=True, max_size=MB) == []


@pytest.mark.parametrize(
    "name,mimetype,expected",
    [
        ("setup.exe", "application/x-msdownload", "not allowed"),
        ("invoice.php.png", "image/png", "Multiple file extensions"),
        ("photo.png", "image/jpeg", "mismatch"),
        ("README", "text/plain", "extension"),
        ("con.txt", "text/plain", "Reserved filename"),
    ],
)
def test_validate_upload_rejections(name, mimetype, expected):
    errors = validate_upload(name, mimetype, 100, images_only=False, max_size=MB)
    assert any(expected in e for e in errors), errors


def test_validate_upload_size_limits():
    assert "File is empty" in validate_upload("a.txt", "text/plain", 0, images_only=False, max_size=MB)
    errors = validate_upload("a.txt", "text/plain", 2 * MB, images_only=False, max_size=MB)
    assert errors == ["File too large. Maximum size is 1.0MB"]


def test_images_only_rejects_documents():
    errors = validate_upload("report.pdf", "application/pdf", 100, images_only=True, max_size=MB)
    assert errors == ["File type application/pdf is not allowed"]


def test_stored_name_is_sanitised():
    name = stored_name_for("../../My Report (final).PDF")
    assert name.endswith("_My_Report_final.pdf")
    assert "/" not in name


# ---------- Endpoints ----------
def test_upload_image(client, app, tmp_path):
    r = _upload_image(client)
    assert r.status_code == 200, r.json
    f = r.json["data"]["file"]
    assert f["originalName"] == "photo.png"
    assert f["mimetype"] == "image/png"
    assert f["size"] == len(PNG)
    assert f["url"] == f"/uploads/{f['filename']}"
    assert (tmp_path / "storage" / "uploads" / f["filename"]).read_bytes() == PNG

    served = client.get(f["url"])
    assert served.status_code == 200
    assert served.data == PNG

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter_by(action="upload.image").count() == 1


@pytest.mark.parametrize(
    "name,mimetype",
    [
        ("setup.exe", "application/x-msdownload"),
        ("invoice.php.png", "image/png"),
        ("photo.png", "image/jpeg"),
    ],
)
def test_upload_image_rejected(client, name, mimetype):
    r = _upload_image(client, name=name, mimetype=mimetype)
    assert r.status_code == 400
    assert r.json["error"] == "Invalid File"
    assert r.json["details"]


def test_upload_image_requires_file(client):
    r = client.post("/api/upload/image", data={}, content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.json["message"] == "No image file was uploaded"


def test_upload_files(client):
    r = client.post(
        "/api/upload/files",
        data={
            "files": [
                (io.BytesIO(b"minutes of the meeting"), "minutes.txt", "text/plain"),
                (io.BytesIO(b"%PDF-1.4 fake"), "agenda.pdf", "application/pdf"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 200, r.json
    files = r.json["data"]["files"]
    assert [f["originalName"] for f in files] == ["minutes.txt", "agenda.pdf"]


@pytest.mark.parametrize("endpoint,field", [("/api/upload/files", "files"), ("/api/upload", "file")])
def test_rejected_file_rolls_back_the_whole_batch(client, app, tmp_path, endpoint, field):
    r = client.post(
        endpoint,
        data={
            field: [
                (io.BytesIO(PNG), "a.png", "image/png"),
                (io.BytesIO(b"MZ"), "b.exe", "application/x-msdownload"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    uploads = tmp_path / "storage" / "uploads"
    assert not uploads.exists() or list(uploads.iterdir()) == []
    assert client.get("/api/upload/list").json["data"]["count"] == 0
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action.like("upload.%")).count() == 0


def test_list_and_delete(client):
    name = _upload_image(client).json["data"]["file"]["filename"]

    r = client.get("/api/upload/list")
    assert r.status_code == 200
    assert [f["filename"] for f in r.json["data"]["files"]] == [name]
    assert r.json["data"]["count"] == 1

    r = client.delete(f"/api/upload/{name}")
    assert r.status_code == 200
    assert client.get("/api/upload/list").json["data"]["count"] == 0
    assert client.get(f"/uploads/{name}").status_code == 404


def test_delete_missing_file_404(client):
    r = client.delete("/api/upload/1700000000000_deadbeef_nothing.png")
    assert r.status_code == 404
    assert r.json["error"] == "File Not Found"


def test_delete_unsafe_name_400(client):
    r = client.delete("/api/upload/..secret.txt")
    assert r.status_code == 400
    assert r.json["message"] == "Invalid filename"


def test_uploads_require_auth(app):
    c = app.test_client()
    assert c.get("/api/upload/list").status_code == 401
    r = c.post(
        "/api/upload/image",
        data={"image": (io.BytesIO(PNG), "photo.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 401
