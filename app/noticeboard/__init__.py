import logging
import uuid

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.middleware.proxy_fix import ProxyFix

from app.noticeboard.config import load_config
from app.noticeboard.db import init_db, teardown_db_session
from app.noticeboard.auth import bp as auth_bp, load_current_user
from app.noticeboard.errors import register_error_handlers
from app.noticeboard.ratelimit import api_rate_limit_guard, init_rate_limiter
from app.noticeboard.routes import bp as routes_bp
from app.noticeboard.modules.analytics.admin import bp as analytics_bp
from app.noticeboard.modules.notices.admin import bp as notices_bp
from app.noticeboard.modules.notices.public import bp as public_bp
from app.noticeboard.modules.uploads.admin import bp as uploads_bp

CORS_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_HEADERS = "Content-Type, Authorization, X-Requested-With, X-Session-Id"


def _check_production_config(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
        raise RuntimeError("DATABASE_URL is required in production.")
    if str(app.config["DATABASE_URL"]).startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if len(str(app.config.get("JWT_SECRET") or "")) < 32:
        raise RuntimeError("JWT_SECRET must be at least 32 characters in production.")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if app.config.get("TRUSTED_PROXY_COUNT"):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["TRUSTED_PROXY_COUNT"])
    # envelope keys keep their order (success, message, data, timestamp)
    app.json.sort_keys = False
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    _check_production_config(app)

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    init_rate_limiter(app)
    register_error_handlers(app)

    @app.before_request
    def _assign_request_id():
        g.request_id = (request.headers.get("X-Request-Id") or "").strip()[:64] or uuid.uuid4().hex

    @app.before_request
    def _cors_preflight():
        if request.method == "OPTIONS":
            return app.make_default_options_response()
        return None

    app.before_request(api_rate_limit_guard)

    def _load_user_wrapper():
        if not request.path.startswith("/api/"):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    @app.after_request
    def _response_headers(resp):
        resp.headers["X-Request-Id"] = getattr(g, "request_id", "") or ""
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("ALLOWED_ORIGINS", ()):
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Allow-Methods"] = CORS_METHODS
            resp.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
            resp.headers["Access-Control-Expose-Headers"] = "X-Request-Id, Retry-After"
            resp.headers.add("Vary", "Origin")
        return resp

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(notices_bp, url_prefix="/api/notices")
    app.register_blueprint(public_bp, url_prefix="/api/public")
    app.register_blueprint(uploads_bp, url_prefix="/api/upload")
    app.register_blueprint(analytics_bp, url_prefix="/api/analytics")

    app.teardown_appcontext(teardown_db_session)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
