import mimetypes

from flask import Blueprint, current_app, send_file

from app.noticeboard.constants import APP_VERSION
from app.noticeboard.errors import NotFoundError, success
from app.noticeboard.modules.uploads.service import is_safe_name, key_for_name
from app.noticeboard.storage import storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return success(
        {"name": current_app.config["SITE_NAME"], "version": APP_VERSION, "api": "/api"},
        "Notice board API",
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO liveness checks. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/uploads/<name>")
def uploaded_file(name: str):
    if not is_safe_name(name):
        raise NotFoundError("File not found", error="File Not Found")
    storage = storage_from_config(current_app.config)
    key = key_for_name(name)
    if not storage.exists(key):
        raise NotFoundError("File not found", error="File Not Found")
    mimetype = mimetypes.guess_type(name)[0] or "application/octet-stream"
    resp = send_file(storage.open(key), mimetype=mimetype, download_name=name, max_age=86400)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp
