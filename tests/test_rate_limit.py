"""Tests for the moving-window rate limiter."""
import time

import pytest

from app.noticeboard import create_app
from app.noticeboard.db import session_scope
from app.noticeboard.errors import RateLimitError
from app.noticeboard.models import Base, User
from app.noticeboard.ratelimit import Limit, RateLimiter
from app.noticeboard.security import hash_password


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "1")
    monkeypatch.setenv("RATE_LIMIT_MAX", "8")
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX", "3")
    monkeypatch.delenv("JWT_SECRET", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(username="editor", email="editor@example.com", password_hash=hash_password("Passw0rd!"), full_name="Editor"))
    return app


# ---------- RateLimiter ----------
def test_limiter_blocks_when_full():
    rl = RateLimiter({"b": Limit(2, 60, "slow down")})
    rl.hit("b", "1.2.3.4")
    rl.hit("b", "1.2.3.4")
    with pytest.raises(RateLimitError) as exc:
        rl.hit("b", "1.2.3.4")
    assert exc.value.message == "slow down"
    assert 1 <= exc.value.retry_after <= 61
    assert exc.value.headers == {"Retry-After": str(exc.value.retry_after)}
    assert rl.remaining("b", "1.2.3.4") == 0

    # other keys are counted separately
    rl.hit("b", "5.6.7.8")
    assert rl.remaining("b", "5.6.7.8") == 1


def test_limiter_window_slides():
    rl = RateLimiter({"b": Limit(1, 1)})
    rl.hit("b", "k")
    with pytest.raises(RateLimitError):
        rl.hit("b", "k")
    time.sleep(1.1)
    rl.hit("b", "k")


def test_limiter_reset_after_rejections():
    rl = RateLimiter({"b": Limit(3, 60)})
    for _ in range(3):
        rl.hit("b", "k")
    for _ in range(5):
        with pytest.raises(RateLimitError):
            rl.hit("b", "k")
    rl.reset("b", "k")
    assert rl.remaining("b", "k") == 3


def test_limiter_reset_and_disabled():
    rl = RateLimiter({"b": Limit(1, 60)})
    rl.hit("b", "k")
    rl.reset("b", "k")
    assert rl.remaining("b", "k") == 1
    rl.hit("b", "k")

    off = RateLimiter({"b": Limit(1, 60)}, enabled=False)
    for _ in range(10):
        off.hit("b", "k")


# ---------- Endpoints ----------
def test_login_rate_limited(app):
    c = app.test_client()
    for _ in range(3):
        r = c.post("/api/auth/login", json={"username": "editor", "password": "wrong-pass1"})
        assert r.status_code == 401
    r = c.post("/api/auth/login", json={"username": "editor", "password": "Passw0rd!"})
    assert r.status_code == 429
    assert r.json["error"] == "Rate Limit Exceeded"
    assert r.json["message"] == "Too many login attempts, please try again later"
    assert int(r.headers["Retry-After"]) > 0


def test_successful_login_resets_auth_bucket(app):
    c = app.test_client()
    for _ in range(2):
        c.post("/api/auth/login", json={"username": "editor", "password": "wrong-pass1"})
    assert c.post("/api/auth/login", json={"username": "editor", "password": "Passw0rd!"}).status_code == 200
    for _ in range(2):
        assert c.post("/api/auth/login", json={"username": "editor", "password": "wrong-pass1"}).status_code == 401


def test_api_limit_is_per_client(app):
    c = app.test_client()
    for _ in range(8):
        assert c.get("/api/public/notices/latest").status_code == 200
    r = c.get("/api/public/notices/latest")
    assert r.status_code == 429
    assert "Retry-After" in r.headers

    other = c.get("/api/public/notices/latest", environ_base={"REMOTE_ADDR": "10.9.9.9"})
    assert other.status_code == 200

    # non-API routes are not counted
    assert c.get("/health").status_code == 200


def test_rotating_forwarded_for_does_not_escape_auth_limit(app):
    # the trusted proxy appends the real peer; only that last hop is used
    c = app.test_client()
    statuses = []
    for i in range(6):
        r = c.post(
            "/api/auth/login",
            json={"username": "editor", "password": "wrong-pass1"},
            headers={"X-Forwarded-For": f"10.0.0.{i}, 203.0.113.7"},
        )
        statuses.append(r.status_code)
    assert statuses == [401, 401, 401, 429, 429, 429]

    # a different real client behind the same proxy has its own bucket
    r = c.post(
        "/api/auth/login",
        json={"username": "editor", "password": "wrong-pass1"},
        headers={"X-Forwarded-For": "10.0.0.1, 203.0.113.8"},
    )
    assert r.status_code == 401


def test_forwarded_for_ignored_without_trusted_proxy(app, monkeypatch):
    monkeypatch.setenv("TRUSTED_PROXY_COUNT", "0")
    direct = create_app()
    Base.metadata.create_all(bind=direct.extensions["sqlalchemy_engine"])
    c = direct.test_client()
    statuses = [
        c.post(
            "/api/auth/login",
            json={"username": "editor", "password": "wrong-pass1"},
            headers={"X-Forwarded-For": f"10.0.0.{i}"},
        ).status_code
        for i in range(5)
    ]
    assert statuses == [401, 401, 401, 429, 429]
