from __future__ import annotations

import calendar
import secrets
import time
from datetime import datetime, timedelta

from flask import Blueprint, current_app, request
from sqlalchemy import extract, func, select
from sqlalchemy.exc import SQLAlchemyError

from app.noticeboard.constants import (
    APP_VERSION,
    GROUP_SUMMARY_CHARS,
    LATEST_SUMMARY_CHARS,
    POPULAR_SUMMARY_CHARS,
    PRIORITIES,
    PUBLIC_LATEST_MAX,
    PUBLIC_POPULAR_MAX,
    PUBLIC_SEARCH_MAX,
    SEARCH_MIN_CHARS,
    SEARCH_SUMMARY_CHARS,
    STATUS_PUBLISHED,
)
from app.noticeboard.db import db_session
from app.noticeboard.errors import NotFoundError, ValidationError, success, utc_timestamp
from app.noticeboard.models import User
from app.noticeboard.modules.analytics.service import record_visit, top_notices, visit_totals
from app.noticeboard.modules.notices.grouping import group_notices_by_date, paginate_groups, public_member
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.modules.notices.service import (
    filtered_query,
    get_by_slug,
    list_notices,
    notice_summary,
    related_notices,
    search_notices,
    stats_for,
)
from app.noticeboard.ratelimit import rate_limit
from app.noticeboard.utils import client_ip, int_arg, isoformat, utcnow

bp = Blueprint("public", __name__)

ARCHIVE_MONTHS = 24
ARCHIVE_MONTH_MAX = 50


def visitor_session_id() -> str:
    supplied = (request.headers.get("X-Session-Id") or "").strip()
    if supplied:
        return supplied[:100]
    return f"visitor_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _track_visit(notice_id: int | None, session_id: str) -> None:
    """Visit bookkeeping never fails the page; errors are logged and rolled back."""
    s = db_session()
    try:
        record_visit(
            s,
            notice_id=notice_id,
            ip_address=client_ip(),
            session_id=session_id,
            user_agent=request.headers.get("User-Agent"),
            referer=request.headers.get("Referer"),
        )
        s.commit()
    except (SQLAlchemyError, ValueError) as e:
        s.rollback()
        current_app.logger.warning("Failed to record visit (notice=%s): %s", notice_id, e)


def _brief(n: Notice) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "slug": n.slug,
        "priority": n.priority,
        "publishedAt": isoformat(n.published_at),
        "creatorName": n.creator_name,
    }


# ---------- Site ----------
@bp.get("/info")
def site_info():
    s = db_session()
    session_id = visitor_session_id()
    _track_visit(None, session_id)

    month_ago = utcnow() - timedelta(days=30)
    totals = visit_totals(s, since=month_ago)
    published = s.scalar(
        select(func.count(Notice.id)).where(Notice.status == STATUS_PUBLISHED, Notice.published_at.is_not(None))
    )
    admins = s.scalar(select(func.count(User.id)).where(User.is_active.is_(True)))
    recent, _ = list_notices(s, page=1, limit=5, published_only=True, sort_by="published_at", sort_order="DESC")
    return success(
        {
            "site": {
                "name": current_app.config["SITE_NAME"],
                "description": current_app.config["SITE_DESCRIPTION"],
                "version": APP_VERSION,
                "lastUpdated": utc_timestamp(),
            },
            "statistics": {
                "publishedNotices": int(published or 0),
                "totalAdmins": int(admins or 0),
                "monthlyVisits": totals["visits"],
                "monthlyVisitors": totals["visitors"],
            },
            "recentNotices": [_brief(n) for n in recent],
            "sessionId": session_id,
        },
        "Site information retrieved successfully",
    )


# ---------- Grouped listing ----------
@bp.get("/notices")
def notices_grouped():
    s = db_session()
    page = int_arg("page", 1)
    limit = int_arg("limit", 10, maximum=50)
    priority = (request.args.get("priority") or "").strip() or None
    search = (request.args.get("search") or "").strip() or None

    q = filtered_query(priority=priority, search=search, published_only=True)
    notices = list(s.scalars(q.order_by(Notice.published_at.desc(), Notice.id.desc())))
    filters = {"priority": priority, "search": search}
    if not notices:
        _, pagination = paginate_groups([], page, limit)
        pagination["totalPages"] = 0
        return success({"noticeGroups": [], "pagination": pagination, "filters": filters}, "No notices found")

    today = utcnow().date()
    groups, pagination = paginate_groups(group_notices_by_date(notices, today=today), page, limit)
    stats = stats_for(s, [n for g in groups for n in g.notices])
    return success(
        {
            "noticeGroups": [g.to_dict(today=today, host_url=request.host_url, stats=stats) for g in groups],
            "pagination": pagination,
            "filters": filters,
        },
        "Notice groups retrieved successfully",
    )


@bp.get("/notices/latest")
def notices_latest():
    notices, _ = list_notices(
        db_session(),
        page=1,
        limit=int_arg("limit", 5, maximum=PUBLIC_LATEST_MAX),
        published_only=True,
        sort_by="published_at",
        sort_order="DESC",
    )
    items = [notice_summary(n, description_chars=LATEST_SUMMARY_CHARS) for n in notices]
    return success({"notices": items, "count": len(items)}, "Latest notices retrieved successfully")


@bp.get("/notices/popular")
def notices_popular():
    days = int_arg("days", 30, maximum=365)
    rows = top_notices(
        db_session(),
        limit=int_arg("limit", 5, maximum=PUBLIC_POPULAR_MAX),
        since=utcnow() - timedelta(days=days),
        published_only=True,
    )
    items = []
    for r in rows:
        item = notice_summary(r["notice"], description_chars=POPULAR_SUMMARY_CHARS)
        item.update(viewCount=r["viewCount"], uniqueViewers=r["uniqueViewers"])
        items.append(item)
    return success({"notices": items, "count": len(items), "period": f"{days} days"}, "Popular notices retrieved successfully")


@bp.get("/notices/priority/<priority>")
def notices_by_priority(priority: str):
    if priority not in PRIORITIES:
        raise ValidationError("Priority must be low, medium, or high")
    notices, pagination = list_notices(
        db_session(),
        page=int_arg("page", 1),
        limit=int_arg("limit", 10, maximum=PUBLIC_SEARCH_MAX),
        priority=priority,
        published_only=True,
        sort_by="published_at",
        sort_order="DESC",
    )
    return success(
        {
            "notices": [notice_summary(n, description_chars=GROUP_SUMMARY_CHARS) for n in notices],
            "pagination": pagination,
            "priority": priority,
        },
        f"{priority.capitalize()} priority notices retrieved successfully",
    )


@bp.get("/notices/archive")
def notices_archive():
    s = db_session()
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)

    if year and month:
        if not 1 <= month <= 12 or not 1970 <= year <= 9000:
            raise ValidationError("Invalid year or month")
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
        q = (
            filtered_query(published_only=True)
            .where(Notice.published_at >= start, Notice.published_at < end)
            .order_by(Notice.published_at.desc(), Notice.id.desc())
            .limit(ARCHIVE_MONTH_MAX)
        )
        notices = [notice_summary(n) for n in s.scalars(q)]
        return success(
            {"notices": notices, "year": year, "month": month, "count": len(notices)},
            "Notice archive retrieved successfully",
        )

    y = extract("year", Notice.published_at)
    m = extract("month", Notice.published_at)
    q = (
        select(y, m, func.count(Notice.id))
        .where(Notice.status == STATUS_PUBLISHED, Notice.published_at.is_not(None))
        .group_by(y, m)
        .order_by(y.desc(), m.desc())
        .limit(ARCHIVE_MONTHS)
    )
    archive = [
        {"year": int(yr), "month": int(mo), "monthName": calendar.month_name[int(mo)], "noticeCount": int(cnt)}
        for yr, mo, cnt in s.execute(q)
    ]
    return success({"archive": archive, "totalMonths": len(archive)}, "Notice archive retrieved successfully")


@bp.get("/notices/<slug>")
def notice_by_slug(slug: str):
    s = db_session()
    n = get_by_slug(s, slug)
    if not n or not n.is_published:
        raise NotFoundError("Notice not found or not published", error="Notice Not Found")

    session_id = visitor_session_id()
    _track_visit(n.id, session_id)

    views, uniq = stats_for(s, [n]).get(n.id, (0, 0))
    notice = public_member(n)
    notice.update(description=n.description, viewCount=views, uniqueViewers=uniq)
    return success(
        {
            "notice": notice,
            "relatedNotices": [_brief(r) for r in related_notices(s, n, limit=3)],
            "sessionId": session_id,
        },
        "Notice retrieved successfully",
    )


# ---------- Search ----------
@bp.get("/search")
@rate_limit("search")
def search():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    if len(q) < SEARCH_MIN_CHARS:
        raise ValidationError(f"Search query must be at least {SEARCH_MIN_CHARS} characters long")
    notices, pagination, term = search_notices(
        db_session(),
        q,
        page=int_arg("page", 1),
        limit=int_arg("limit", 10, maximum=PUBLIC_SEARCH_MAX),
        published_only=True,
    )
    return success(
        {
            "notices": [notice_summary(n, description_chars=SEARCH_SUMMARY_CHARS) for n in notices],
            "pagination": pagination,
            "searchQuery": term,
            "totalResults": pagination["total"],
        },
        "Search completed successfully",
    )
