from __future__ import annotations

import json

from flask import Blueprint, current_app, g, request

from app.noticeboard.constants import MAX_FILES_PER_NOTICE, MAX_PAGE_SIZE
from app.noticeboard.db import db_session
from app.noticeboard.errors import NotFoundError, ValidationError, success
from app.noticeboard.modules.analytics.service import notice_analytics
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.modules.notices.service import (
    create_notice,
    delete_notice,
    get_by_slug,
    list_notices,
    notice_to_dict,
    publish_notice,
    related_notices,
    search_notices,
    stats_for,
    unpublish_notice,
    update_notice,
)
from app.noticeboard.modules.uploads.service import delete_urls, save_upload
from app.noticeboard.ratelimit import rate_limit
from app.noticeboard.rbac import current_user, require_admin
from app.noticeboard.storage import storage_from_config
from app.noticeboard.utils import bool_arg, int_arg, request_payload

bp = Blueprint("notices", __name__)


def _get_notice(notice_id: int) -> Notice:
    n = db_session().get(Notice, notice_id)
    if not n:
        raise NotFoundError("Notice not found", error="Notice Not Found")
    return n


def _with_stats(notices: list[Notice]) -> list[dict]:
    stats = stats_for(db_session(), notices)
    return [notice_to_dict(n, stats.get(n.id)) for n in notices]


def _payload_with_uploads() -> tuple[dict, list[str]]:
    """
    Notice fields from JSON, or from a multipart form whose ``image`` / ``files``
    parts are stored first and attached. Returns the payload and the stored URLs
    so they can be removed if the notice is rejected.
    """
    payload = request_payload()
    if request.is_json:
        return payload, []

    if isinstance(payload.get("files"), str):
        try:
            payload["files"] = json.loads(payload["files"]) if payload["files"].strip() else []
        except ValueError as e:
            raise ValidationError("Files must be a JSON list") from e

    images = [f for f in request.files.getlist("image") if f and f.filename]
    attachments = [f for f in request.files.getlist("files") if f and f.filename]
    if not images and not attachments:
        return payload, []
    if len(images) > 1:
        raise ValidationError("Only one image may be attached to a notice")
    if len(attachments) + len(payload.get("files") or []) > MAX_FILES_PER_NOTICE:
        raise ValidationError(f"Maximum {MAX_FILES_PER_NOTICE} files allowed per notice")

    storage = storage_from_config(current_app.config)
    stored_urls: list[str] = []
    try:
        if images:
            img = save_upload(storage, images[0], images_only=True, max_size=current_app.config["MAX_IMAGE_SIZE"])
            stored_urls.append(img.url)
            payload["imageUrl"] = img.url
        files = list(payload.get("files") or [])
        for f in attachments:
            stored = save_upload(storage, f, images_only=False, max_size=current_app.config["MAX_FILE_SIZE"])
            stored_urls.append(stored.url)
            files.append(stored.to_attachment())
        if attachments:
            payload["files"] = files
    except ValidationError:
        delete_urls(storage, stored_urls)
        raise
    return payload, stored_urls


# ---------- List / search ----------
@bp.get("")
@require_admin
def notices_list():
    s = db_session()
    created_by = request.args.get("createdBy")
    notices, pagination = list_notices(
        s,
        page=int_arg("page", 1),
        limit=int_arg("limit", 10, maximum=MAX_PAGE_SIZE),
        status=(request.args.get("status") or "").strip() or None,
        priority=(request.args.get("priority") or "").strip() or None,
        search=request.args.get("search"),
        created_by=int(created_by) if created_by and created_by.isdigit() else None,
        sort_by=(request.args.get("sortBy") or "created_at").strip(),
        sort_order=(request.args.get("sortOrder") or "DESC").strip(),
    )
    if bool_arg("includeStats"):
        items = _with_stats(notices)
    else:
        items = [notice_to_dict(n) for n in notices]
    return success({"notices": items, "pagination": pagination}, "Notices retrieved successfully")


@bp.get("/search")
@require_admin
@rate_limit("search")
def notices_search():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    notices, pagination, term = search_notices(
        db_session(),
        q,
        page=int_arg("page", 1),
        limit=int_arg("limit", 10, maximum=MAX_PAGE_SIZE),
        published_only=bool_arg("published_only", False),
    )
    return success({"notices": _with_stats(notices), "pagination": pagination, "query": term}, "Search completed successfully")


@bp.get("/slug/<slug>")
@require_admin
def notice_by_slug(slug: str):
    n = get_by_slug(db_session(), slug)
    if not n:
        raise NotFoundError("Notice not found", error="Notice Not Found")
    return success({"notice": _with_stats([n])[0]}, "Notice retrieved successfully")


# ---------- Create ----------
@bp.post("")
@require_admin
@rate_limit("admin")
def notices_create():
    s = db_session()
    payload, stored_urls = _payload_with_uploads()
    try:
        n = create_notice(s, payload, current_user())
    except ValidationError:
        s.rollback()
        delete_urls(storage_from_config(current_app.config), stored_urls)
        raise
    s.commit()
    current_app.logger.info("Notice %s created (request_id=%s)", n.id, getattr(g, "request_id", None))
    return success({"notice": notice_to_dict(n)}, "Notice created successfully", 201)


# ---------- Detail ----------
@bp.get("/<int:notice_id>")
@require_admin
def notice_detail(notice_id: int):
    n = _get_notice(notice_id)
    return success({"notice": _with_stats([n])[0]}, "Notice retrieved successfully")


@bp.get("/<int:notice_id>/related")
@require_admin
def notice_related(notice_id: int):
    n = _get_notice(notice_id)
    related = related_notices(db_session(), n, limit=int_arg("limit", 3, maximum=10))
    return success({"notices": [notice_to_dict(r) for r in related]}, "Related notices retrieved successfully")


@bp.get("/<int:notice_id>/analytics")
@require_admin
def notice_stats(notice_id: int):
    n = _get_notice(notice_id)
    data = notice_analytics(db_session(), n.id, days=int_arg("days", 30, maximum=365))
    return success({"notice": {"id": n.id, "title": n.title, "slug": n.slug}, "analytics": data}, "Notice analytics retrieved successfully")


# ---------- Update ----------
@bp.put("/<int:notice_id>")
@require_admin
@rate_limit("admin")
def notice_update(notice_id: int):
    s = db_session()
    n = _get_notice(notice_id)
    payload, stored_urls = _payload_with_uploads()
    try:
        update_notice(s, n, payload, current_user())
    except ValidationError:
        s.rollback()
        delete_urls(storage_from_config(current_app.config), stored_urls)
        raise
    s.commit()
    return success({"notice": notice_to_dict(n)}, "Notice updated successfully")


@bp.post("/<int:notice_id>/publish")
@require_admin
@rate_limit("admin")
def notice_publish(notice_id: int):
    s = db_session()
    n = publish_notice(s, _get_notice(notice_id), current_user())
    s.commit()
    return success({"notice": notice_to_dict(n)}, "Notice published successfully")


@bp.post("/<int:notice_id>/unpublish")
@require_admin
@rate_limit("admin")
def notice_unpublish(notice_id: int):
    s = db_session()
    n = unpublish_notice(s, _get_notice(notice_id), current_user())
    s.commit()
    return success({"notice": notice_to_dict(n)}, "Notice unpublished successfully")


# ---------- Delete ----------
@bp.delete("/<int:notice_id>")
@require_admin
@rate_limit("admin")
def notice_delete(notice_id: int):
    s = db_session()
    n = _get_notice(notice_id)
    delete_notice(s, n, current_user(), storage_from_config(current_app.config))
    s.commit()
    return success({"id": notice_id}, "Notice deleted successfully")
