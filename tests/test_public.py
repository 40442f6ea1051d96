"""Tests for the read-only public API."""
from datetime import timedelta

import pytest

from app.noticeboard import create_app
from app.noticeboard.db import session_scope
from app.noticeboard.models import Base, User
from app.noticeboard.modules.analytics.models import SiteVisit
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.security import hash_password
from app.noticeboard.utils import utcnow


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "0")
    monkeypatch.setenv("SITE_NAME", "Campus Notices")
    monkeypatch.delenv("JWT_SECRET", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    now = utcnow()
    with session_scope(app) as s:
        u = User(username="editor", email="editor@example.com", password_hash=hash_password("Passw0rd!"), full_name="Jane Editor")
        s.add(u)
        s.flush()

        def add(slug, title, *, days_ago=0, priority="medium", status="published", description=None):
            s.add(
                Notice(
                    title=title,
                    description=description or f"{title} - full details of this announcement.",
                    priority=priority,
                    status=status,
                    slug=slug,
                    created_by=u.id,
                    published_at=(now - timedelta(days=days_ago)) if status == "published" else None,
                )
            )

        add("exam-results", "Exam results published", priority="high")
        add("library-hours", "Library hours extended", priority="low")
        add("sports-day", "Sports day schedule", days_ago=1)
        add("old-news", "Orientation week recap", days_ago=40, priority="high")
        add("secret-draft", "Unreleased library plan", status="draft")
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


# ---------- Grouped listing ----------
def test_grouped_listing(client):
    r = client.get("/api/public/notices")
    assert r.status_code == 200
    data = r.json["data"]
    groups = data["noticeGroups"]
    assert groups[0]["displayDate"] == "Today"
    assert groups[0]["isToday"] is True
    assert [n["slug"] for n in groups[0]["notices"]] == ["exam-results", "library-hours"]
    assert [g["noticeCount"] for g in groups] == [2, 1, 1]
    assert data["pagination"]["totalDates"] == 3
    assert data["pagination"]["totalNotices"] == 4
    slugs = [n["slug"] for g in groups for n in g["notices"]]
    assert "secret-draft" not in slugs


def test_grouped_listing_paginates_by_date(client):
    r = client.get("/api/public/notices?limit=1&page=2")
    data = r.json["data"]
    assert len(data["noticeGroups"]) == 1
    assert data["noticeGroups"][0]["notices"][0]["slug"] == "sports-day"
    assert data["pagination"]["totalPages"] == 3


def test_grouped_listing_filters(client):
    r = client.get("/api/public/notices?priority=high")
    assert r.json["data"]["pagination"]["totalNotices"] == 2

    r = client.get("/api/public/notices?search=library")
    slugs = [n["slug"] for g in r.json["data"]["noticeGroups"] for n in g["notices"]]
    assert slugs == ["library-hours"]


def test_grouped_listing_empty(client):
    r = client.get("/api/public/notices?search=nothing-matches-this")
    assert r.status_code == 200
    assert r.json["data"]["noticeGroups"] == []
    assert r.json["data"]["pagination"]["totalDates"] == 0
    assert r.json["data"]["pagination"]["totalPages"] == 0


# ---------- Detail ----------
def test_notice_by_slug_records_visit(app, client):
    r = client.get("/api/public/notices/exam-results", headers={"X-Session-Id": "visitor-a"})
    assert r.status_code == 200
    data = r.json["data"]
    assert data["notice"]["viewCount"] == 1
    assert data["notice"]["uniqueViewers"] == 1
    assert data["notice"]["creatorName"] == "Jane Editor"
    assert data["sessionId"] == "visitor-a"
    assert all(rel["slug"] != "exam-results" for rel in data["relatedNotices"])
    assert len(data["relatedNotices"]) <= 3


def test_repeat_visit_is_deduplicated(client):
    client.get("/api/public/notices/exam-results", headers={"X-Session-Id": "visitor-a"})
    r = client.get("/api/public/notices/exam-results", headers={"X-Session-Id": "visitor-a"})
    assert r.json["data"]["notice"]["viewCount"] == 1

    r = client.get("/api/public/notices/exam-results", headers={"X-Session-Id": "visitor-b"})
    assert r.json["data"]["notice"]["viewCount"] == 2
    assert r.json["data"]["notice"]["uniqueViewers"] == 2


def test_generated_visitor_session(client):
    r = client.get("/api/public/notices/exam-results")
    assert r.json["data"]["sessionId"].startswith("visitor_")


def test_draft_and_missing_are_404(client):
    assert client.get("/api/public/notices/secret-draft").status_code == 404
    r = client.get("/api/public/notices/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"] == "Notice Not Found"


# ---------- Search ----------
def test_search_validation(client):
    assert client.get("/api/public/search").status_code == 400
    r = client.get("/api/public/search?q=ab")
    assert r.status_code == 400
    assert "at least 3 characters" in r.json["message"]


def test_search_excludes_drafts(client):
    r = client.get("/api/public/search?q=library")
    data = r.json["data"]
    assert [n["slug"] for n in data["notices"]] == ["library-hours"]
    assert data["totalResults"] == 1
    assert data["searchQuery"] == "library"


def test_search_limit_capped(client):
    r = client.get("/api/public/search?q=the&limit=500")
    assert r.json["data"]["pagination"]["limit"] == 20


def test_search_truncates_description(app, client):
    with session_scope(app) as s:
        n = s.query(Notice).filter_by(slug="sports-day").one()
        n.description = "sports " * 100
    r = client.get("/api/public/search?q=sports")
    desc = r.json["data"]["notices"][0]["description"]
    assert len(desc) == 303 and desc.endswith("...")


# ---------- Site info / extras ----------
def test_site_info(app, client):
    r = client.get("/api/public/info", headers={"X-Session-Id": "home-1"})
    assert r.status_code == 200
    data = r.json["data"]
    assert data["site"]["name"] == "Campus Notices"
    assert data["statistics"]["publishedNotices"] == 4
    assert data["statistics"]["totalAdmins"] == 1
    assert data["statistics"]["monthlyVisits"] == 1
    assert len(data["recentNotices"]) == 4
    assert data["sessionId"] == "home-1"
    with session_scope(app) as s:
        assert s.query(SiteVisit).filter(SiteVisit.notice_id.is_(None)).count() == 1


def test_latest(client):
    r = client.get("/api/public/notices/latest?limit=50")
    data = r.json["data"]
    assert data["count"] == 4
    assert data["notices"][-1]["slug"] == "old-news"
    assert "status" not in data["notices"][0]


def test_popular_ranked_by_views(client):
    for sid in ("a", "b", "c"):
        client.get("/api/public/notices/sports-day", headers={"X-Session-Id": sid})
    client.get("/api/public/notices/library-hours", headers={"X-Session-Id": "a"})

    r = client.get("/api/public/notices/popular?limit=2")
    notices = r.json["data"]["notices"]
    assert [n["slug"] for n in notices] == ["sports-day", "library-hours"]
    assert notices[0]["viewCount"] == 3
    assert notices[0]["uniqueViewers"] == 3


def test_by_priority(client):
    r = client.get("/api/public/notices/priority/high")
    assert r.status_code == 200
    assert {n["slug"] for n in r.json["data"]["notices"]} == {"exam-results", "old-news"}
    assert client.get("/api/public/notices/priority/urgent").status_code == 400


def test_archive_summary_and_month(client):
    r = client.get("/api/public/notices/archive")
    archive = r.json["data"]["archive"]
    assert sum(m["noticeCount"] for m in archive) == 4
    assert all(m["monthName"] for m in archive)

    latest = archive[0]
    r = client.get(f"/api/public/notices/archive?year={latest['year']}&month={latest['month']}")
    data = r.json["data"]
    assert data["count"] == latest["noticeCount"]

    assert client.get("/api/public/notices/archive?year=2025&month=13").status_code == 400
