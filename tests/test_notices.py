"""Tests for notice CRUD, publishing and slugs."""
import io

import pytest

from app.noticeboard import create_app
from app.noticeboard.db import session_scope
from app.noticeboard.models import AuditEvent, Base, User
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.modules.notices.service import slugify, validate_notice_payload
from app.noticeboard.security import hash_password

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


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


def _create(client, **overrides):
    payload = {"title": "Exam timetable released", "description": "The final exam timetable is now available."}
    payload.update(overrides)
    r = client.post("/api/notices", json=payload)
    assert r.status_code == 201, r.json
    return r.json["data"]["notice"]


# ---------- Pure helpers ----------
@pytest.mark.parametrize(
    "title,expected",
    [
        ("Exam Timetable 2025", "exam-timetable-2025"),
        ("  Hello,   World!! ", "hello-world"),
        ("--Already--dashed--", "already-dashed"),
        ("!!!", "notice"),
        ("", "notice"),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected


def test_slugify_long_title_cuts_at_word():
    title = " ".join(["word"] * 40)
    slug = slugify(title)
    assert len(slug) <= 100
    assert not slug.endswith("-")
    assert slug.endswith("word")


def test_validate_payload():
    assert validate_notice_payload({"title": "Valid title", "description": "Long enough description"}) == []
    errors = validate_notice_payload({"title": "abc", "description": "short", "priority": "urgent", "status": "live"})
    assert len(errors) == 4
    assert validate_notice_payload({"files": [{}] * 11}, partial=True) == ["Maximum 10 files allowed per notice"]
    assert validate_notice_payload({}, partial=True) == []


def test_validate_payload_measures_trimmed_length():
    padded = {"title": "  " + "x" * 500 + "  ", "description": "\n" + "d" * 10000 + "\n"}
    assert validate_notice_payload(padded) == []
    errors = validate_notice_payload({"title": " " + "x" * 501, "description": "d" * 10001 + " "})
    assert errors == ["Title must not exceed 500 characters", "Description must not exceed 10,000 characters"]


# ---------- Create ----------
def test_create_defaults_to_draft(client):
    n = _create(client)
    assert n["status"] == "draft"
    assert n["priority"] == "medium"
    assert n["publishedAt"] is None
    assert n["slug"] == "exam-timetable-released"
    assert n["creatorUsername"] == "editor"


def test_create_published_sets_timestamp(client):
    n = _create(client, status="published", priority="high")
    assert n["status"] == "published"
    assert n["publishedAt"] is not None


def test_create_validation_error(client):
    r = client.post("/api/notices", json={"title": "Hi", "description": "x"})
    assert r.status_code == 400
    assert r.json["error"] == "Validation Error"
    assert len(r.json["details"]) == 2


def test_create_invalid_priority(client):
    r = client.post("/api/notices", json={"title": "Valid title", "description": "Long enough description", "priority": "urgent"})
    assert r.status_code == 400


def test_duplicate_titles_get_numbered_slugs(client):
    assert _create(client)["slug"] == "exam-timetable-released"
    assert _create(client)["slug"] == "exam-timetable-released-1"
    assert _create(client)["slug"] == "exam-timetable-released-2"


def test_create_records_audit(app, client):
    n = _create(client)
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter_by(action="notice.create").one()
        assert ev.entity_id == str(n["id"])
        assert ev.actor_username == "editor"


def test_create_multipart_with_image_and_files(app, client):
    r = client.post(
        "/api/notices",
        data={
            "title": "Sports day photos",
            "description": "Photos from the annual sports day.",
            "priority": "low",
            "image": (io.BytesIO(PNG), "cover.png", "image/png"),
            "files": (io.BytesIO(b"%PDF-1.4 test"), "schedule.pdf", "application/pdf"),
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.json
    n = r.json["data"]["notice"]
    assert n["imageUrl"].startswith("/uploads/")
    assert n["imageUrl"].endswith("_cover.png")
    assert len(n["files"]) == 1
    assert n["files"][0]["originalName"] == "schedule.pdf"
    assert n["files"][0]["type"] == "application/pdf"

    r = client.get(n["imageUrl"])
    assert r.status_code == 200
    assert r.data == PNG


def test_create_multipart_rejects_bad_attachment(app, client, tmp_path):
    r = client.post(
        "/api/notices",
        data={
            "title": "Sports day photos",
            "description": "Photos from the annual sports day.",
            "image": (io.BytesIO(PNG), "cover.png", "image/png"),
            "files": (io.BytesIO(b"MZ"), "setup.exe", "application/x-msdownload"),
        },
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    uploads = tmp_path / "storage" / "uploads"
    assert not uploads.exists() or not any(uploads.iterdir())


# ---------- Read ----------
def test_get_and_slug_lookup(client):
    n = _create(client)
    r = client.get(f"/api/notices/{n['id']}")
    assert r.status_code == 200
    assert r.json["data"]["notice"]["viewCount"] == 0

    r = client.get(f"/api/notices/slug/{n['slug']}")
    assert r.status_code == 200
    assert r.json["data"]["notice"]["id"] == n["id"]

    assert client.get("/api/notices/999").status_code == 404
    assert client.get("/api/notices/slug/missing").status_code == 404


def test_list_filters_and_pagination(client):
    for i in range(3):
        _create(client, title=f"Draft notice {i}")
    _create(client, title="Published notice", status="published", priority="high")

    r = client.get("/api/notices?limit=2")
    data = r.json["data"]
    assert len(data["notices"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 4, "totalPages": 2}

    r = client.get("/api/notices?status=published")
    assert [n["title"] for n in r.json["data"]["notices"]] == ["Published notice"]

    r = client.get("/api/notices?priority=high&includeStats=true")
    assert r.json["data"]["notices"][0]["uniqueViewers"] == 0

    r = client.get("/api/notices?sortBy=title&sortOrder=asc")
    titles = [n["title"] for n in r.json["data"]["notices"]]
    assert titles[0] == "Draft notice 0"


def test_list_rejects_unknown_sort(client):
    assert client.get("/api/notices?sortBy=password_hash").status_code == 400
    assert client.get("/api/notices?sortOrder=sideways").status_code == 400


def test_list_limit_clamped(client):
    r = client.get("/api/notices?limit=1000")
    assert r.json["data"]["pagination"]["limit"] == 100


def test_admin_search_includes_drafts(client):
    _create(client, title="Library closed Monday")
    _create(client, title="Library hours extended", status="published")
    r = client.get("/api/notices/search?q=library")
    assert r.json["data"]["pagination"]["total"] == 2
    r = client.get("/api/notices/search?q=library&published_only=true")
    assert r.json["data"]["pagination"]["total"] == 1
    assert client.get("/api/notices/search").status_code == 400


# ---------- Update / publish ----------
def test_publish_and_unpublish(client):
    n = _create(client)
    r = client.post(f"/api/notices/{n['id']}/publish")
    published_at = r.json["data"]["notice"]["publishedAt"]
    assert r.json["data"]["notice"]["status"] == "published"
    assert published_at is not None

    # publishing again keeps the original timestamp
    r = client.put(f"/api/notices/{n['id']}", json={"status": "published", "priority": "low"})
    assert r.json["data"]["notice"]["publishedAt"] == published_at

    r = client.post(f"/api/notices/{n['id']}/unpublish")
    assert r.json["data"]["notice"]["status"] == "draft"
    assert r.json["data"]["notice"]["publishedAt"] is None


def test_update_title_regenerates_slug(client):
    n = _create(client)
    r = client.put(f"/api/notices/{n['id']}", json={"title": "Revised exam timetable"})
    assert r.status_code == 200
    assert r.json["data"]["notice"]["slug"] == "revised-exam-timetable"


def test_update_same_title_keeps_slug(client):
    n = _create(client)
    r = client.put(f"/api/notices/{n['id']}", json={"title": n["title"], "description": "Updated description text"})
    assert r.json["data"]["notice"]["slug"] == n["slug"]


def test_update_blank_fields_ignored(client):
    n = _create(client)
    r = client.put(f"/api/notices/{n['id']}", json={"title": "   ", "priority": "high"})
    assert r.status_code == 200
    assert r.json["data"]["notice"]["title"] == n["title"]
    assert r.json["data"]["notice"]["priority"] == "high"


def test_update_no_valid_fields(client):
    n = _create(client)
    r = client.put(f"/api/notices/{n['id']}", json={"slug": "hijack", "createdBy": 99})
    assert r.status_code == 400
    assert r.json["message"] == "No valid fields to update"


def test_update_empty_enum_values_are_not_an_update(app, client):
    n = _create(client)
    r = client.put(f"/api/notices/{n['id']}", json={"status": "", "priority": ""})
    assert r.status_code == 400
    assert r.json["message"] == "No valid fields to update"
    assert client.get(f"/api/notices/{n['id']}").json["data"]["notice"]["updatedAt"] == n["updatedAt"]
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter_by(action="notice.update").count() == 0


def test_update_invalid_status(client):
    n = _create(client)
    assert client.put(f"/api/notices/{n['id']}", json={"status": "archived"}).status_code == 400


def test_update_records_before_after(app, client):
    n = _create(client)
    client.put(f"/api/notices/{n['id']}", json={"priority": "high"})
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter_by(action="notice.update").one()
        assert '"before"' in ev.metadata_json and '"after"' in ev.metadata_json


# ---------- Delete ----------
def test_delete_removes_notice_and_files(app, client, tmp_path):
    r = client.post(
        "/api/notices",
        data={
            "title": "Notice with cover",
            "description": "This notice has a cover image.",
            "image": (io.BytesIO(PNG), "cover.png", "image/png"),
        },
        content_type="multipart/form-data",
    )
    n = r.json["data"]["notice"]
    stored = tmp_path / "storage" / "uploads" / n["imageUrl"].rsplit("/", 1)[-1]
    assert stored.is_file()

    r = client.delete(f"/api/notices/{n['id']}")
    assert r.status_code == 200
    assert not stored.exists()
    assert client.get(f"/api/notices/{n['id']}").status_code == 404
    with session_scope(app) as s:
        assert s.query(Notice).count() == 0
        assert s.query(AuditEvent).filter_by(action="notice.delete").count() == 1


def test_related_notices(client):
    base = _create(client, title="Base notice", status="published", priority="high")
    _create(client, title="Same priority", status="published", priority="high")
    _create(client, title="Draft sibling", priority="high")
    r = client.get(f"/api/notices/{base['id']}/related")
    titles = [n["title"] for n in r.json["data"]["notices"]]
    assert titles == ["Same priority"]


def test_notice_analytics_endpoint(client):
    n = _create(client, status="published")
    client.get(f"/api/public/notices/{n['slug']}", headers={"X-Session-Id": "s1"})
    r = client.get(f"/api/notices/{n['id']}/analytics")
    assert r.status_code == 200
    assert r.json["data"]["analytics"]["totalVisits"] == 1
