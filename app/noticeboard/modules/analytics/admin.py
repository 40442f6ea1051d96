from __future__ import annotations

from flask import Blueprint, Response, request

from app.noticeboard.audit import record_event
from app.noticeboard.db import db_session
from app.noticeboard.errors import NotFoundError, ValidationError, success
from app.noticeboard.modules.analytics.service import (
    content_analytics,
    daily_series,
    dashboard,
    export_rows,
    notice_analytics,
    rows_to_csv,
    security_analytics,
    user_analytics,
)
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.rbac import current_user, require_admin, require_super_admin
from app.noticeboard.utils import int_arg, utcnow

bp = Blueprint("analytics", __name__)

EXPORT_TYPES = ("visits", "notices")
EXPORT_FORMATS = ("json", "csv")


@bp.get("/dashboard")
@require_admin
def analytics_dashboard():
    return success(dashboard(db_session()), "Dashboard analytics retrieved successfully")


@bp.get("/site")
@require_admin
def analytics_site():
    days = int_arg("days", 30, maximum=365)
    return success({"daily": daily_series(db_session(), days=days), "periodDays": days}, "Site analytics retrieved successfully")


@bp.get("/content")
@require_admin
def analytics_content():
    rows = content_analytics(db_session())
    return success({"notices": rows, "count": len(rows)}, "Content analytics retrieved successfully")


@bp.get("/notices/<int:notice_id>")
@require_admin
def analytics_notice(notice_id: int):
    s = db_session()
    n = s.get(Notice, notice_id)
    if not n:
        raise NotFoundError("Notice not found", error="Notice Not Found")
    data = notice_analytics(s, n.id, days=int_arg("days", 30, maximum=365))
    return success({"notice": {"id": n.id, "title": n.title, "slug": n.slug}, "analytics": data}, "Notice analytics retrieved successfully")


@bp.get("/users")
@require_super_admin
def analytics_users():
    return success(user_analytics(db_session()), "User analytics retrieved successfully")


@bp.get("/security")
@require_super_admin
def analytics_security():
    return success(security_analytics(db_session()), "Security analytics retrieved successfully")


@bp.get("/export")
@require_super_admin
def analytics_export():
    kind = (request.args.get("type") or "visits").strip().lower()
    fmt = (request.args.get("format") or "json").strip().lower()
    if kind not in EXPORT_TYPES:
        raise ValidationError("Export type must be visits or notices")
    if fmt not in EXPORT_FORMATS:
        raise ValidationError("Export format must be json or csv")

    s = db_session()
    rows = export_rows(s, kind)
    record_event(s, actor=current_user(), action="analytics.export", entity_type="Export", entity_id=kind, metadata={"format": fmt, "rows": len(rows)})
    s.commit()

    if fmt == "csv":
        filename = f"{kind}-export-{utcnow().strftime('%Y%m%d')}.csv"
        return Response(
            rows_to_csv(rows),
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return success({"type": kind, "rows": rows, "count": len(rows)}, "Analytics exported successfully")
