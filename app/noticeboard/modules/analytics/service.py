from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case, distinct, func, select

from app.noticeboard.constants import ROLE_SUPER_ADMIN, STATUS_DRAFT, STATUS_PUBLISHED, VISIT_DEDUPE_MINUTES
from app.noticeboard.modules.analytics.models import SiteVisit
from app.noticeboard.utils import isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def record_visit(
    s: "Session",
    *,
    notice_id: int | None,
    ip_address: str | None,
    session_id: str | None,
    user_agent: str | None = None,
    referer: str | None = None,
    country: str | None = None,
    city: str | None = None,
    now: datetime | None = None,
) -> SiteVisit | None:
    """
    Record one page view. The same visitor session hitting the same target
    within VISIT_DEDUPE_MINUTES is counted once; the repeat returns None.
    """
    if not ip_address or not session_id:
        raise ValueError("IP address and session ID are required")
    now = now or utcnow()
    ip = ip_address[:45]
    sid = session_id[:100]

    cutoff = now - timedelta(minutes=VISIT_DEDUPE_MINUTES)
    q = select(func.count(SiteVisit.id)).where(SiteVisit.session_id == sid, SiteVisit.visit_time >= cutoff)
    q = q.where(SiteVisit.notice_id.is_(None) if notice_id is None else SiteVisit.notice_id == notice_id)
    if s.scalar(q):
        logger.debug("Skipping duplicate visit session=%s notice=%s", sid, notice_id)
        return None

    visit = SiteVisit(
        notice_id=notice_id,
        ip_address=ip,
        user_agent=user_agent[:1000] if user_agent else None,
        referer=referer[:500] if referer else None,
        visit_date=now.date(),
        visit_time=now,
        session_id=sid,
        country=(country or None) and country[:100],
        city=(city or None) and city[:100],
    )
    s.add(visit)
    s.flush()
    return visit


def view_stats(s: "Session", notice_ids: list[int], *, since: datetime | None = None) -> dict[int, tuple[int, int]]:
    """``{notice_id: (views, unique_viewers)}``; notices without visits are absent."""
    if not notice_ids:
        return {}
    q = (
        select(SiteVisit.notice_id, func.count(SiteVisit.id), func.count(distinct(SiteVisit.session_id)))
        .where(SiteVisit.notice_id.in_(notice_ids))
        .group_by(SiteVisit.notice_id)
    )
    if since is not None:
        q = q.where(SiteVisit.visit_time >= since)
    return {nid: (int(views), int(uniq)) for nid, views, uniq in s.execute(q)}


def visit_totals(s: "Session", *, since: datetime | None = None, until: datetime | None = None) -> dict[str, int]:
    q = select(func.count(SiteVisit.id), func.count(distinct(SiteVisit.session_id)))
    if since is not None:
        q = q.where(SiteVisit.visit_time >= since)
    if until is not None:
        q = q.where(SiteVisit.visit_time < until)
    visits, visitors = s.execute(q).one()
    return {"visits": int(visits or 0), "visitors": int(visitors or 0)}


def daily_series(s: "Session", *, days: int = 30, notice_id: int | None = None, today: date | None = None) -> list[dict]:
    """One row per calendar day that had traffic, newest first."""
    today = today or utcnow().date()
    start = today - timedelta(days=days - 1)
    q = (
        select(
            SiteVisit.visit_date,
            func.count(SiteVisit.id),
            func.count(distinct(SiteVisit.session_id)),
            func.count(distinct(SiteVisit.notice_id)),
            func.sum(case((SiteVisit.notice_id.is_(None), 1), else_=0)),
        )
        .where(SiteVisit.visit_date >= start)
        .group_by(SiteVisit.visit_date)
        .order_by(SiteVisit.visit_date.desc())
    )
    if notice_id is not None:
        q = q.where(SiteVisit.notice_id == notice_id)
    return [
        {
            "date": isoformat(d),
            "totalVisits": int(total),
            "uniqueVisitors": int(uniq),
            "noticesViewed": int(notices),
            "homepageVisits": int(home or 0),
        }
        for d, total, uniq, notices, home in s.execute(q)
    ]


def notice_analytics(s: "Session", notice_id: int, *, days: int = 30) -> dict:
    totals_q = select(
        func.count(SiteVisit.id),
        func.count(distinct(SiteVisit.session_id)),
        func.count(distinct(SiteVisit.ip_address)),
    ).where(SiteVisit.notice_id == notice_id)
    total, uniq, ips = s.execute(totals_q).one()
    series = [
        {"date": row["date"], "visits": row["totalVisits"], "uniqueVisitors": row["uniqueVisitors"]}
        for row in daily_series(s, days=days, notice_id=notice_id)
    ]
    return {
        "totalVisits": int(total or 0),
        "uniqueVisitors": int(uniq or 0),
        "uniqueIps": int(ips or 0),
        "daily": series,
        "periodDays": days,
    }


def top_notices(s: "Session", *, limit: int = 5, since: datetime | None = None, published_only: bool = False) -> list[dict]:
    from app.noticeboard.modules.notices.models import Notice

    join_cond = SiteVisit.notice_id == Notice.id
    if since is not None:
        join_cond = join_cond & (SiteVisit.visit_time >= since)
    views = func.count(SiteVisit.id).label("views")
    uniq = func.count(distinct(SiteVisit.session_id)).label("uniq")
    q = (
        select(Notice, views, uniq)
        .outerjoin(SiteVisit, join_cond)
        .group_by(Notice.id)
        .order_by(views.desc(), uniq.desc(), Notice.published_at.desc(), Notice.id.desc())
        .limit(limit)
    )
    if published_only:
        q = q.where(Notice.status == STATUS_PUBLISHED, Notice.published_at.is_not(None))
    return [{"notice": n, "viewCount": int(v), "uniqueViewers": int(u)} for n, v, u in s.execute(q)]


def content_analytics(s: "Session") -> list[dict]:
    rows = top_notices(s, limit=1000)
    return [
        {
            "id": r["notice"].id,
            "title": r["notice"].title,
            "slug": r["notice"].slug,
            "status": r["notice"].status,
            "priority": r["notice"].priority,
            "publishedAt": isoformat(r["notice"].published_at),
            "viewCount": r["viewCount"],
            "uniqueViewers": r["uniqueViewers"],
        }
        for r in rows
    ]


def dashboard(s: "Session", *, now: datetime | None = None) -> dict:
    from app.noticeboard.models import User
    from app.noticeboard.modules.notices.models import Notice

    now = now or utcnow()
    today_start = datetime(now.year, now.month, now.day)
    week_start = today_start - timedelta(days=today_start.weekday())
    status_counts = dict(s.execute(select(Notice.status, func.count(Notice.id)).group_by(Notice.status)).all())
    total_notices = sum(status_counts.values())
    top = top_notices(s, limit=5, published_only=True)
    today_totals = visit_totals(s, since=today_start)
    week_totals = visit_totals(s, since=week_start)
    return {
        "totals": {
            "notices": total_notices,
            "published": int(status_counts.get(STATUS_PUBLISHED, 0)),
            "drafts": int(status_counts.get(STATUS_DRAFT, 0)),
            "users": int(s.scalar(select(func.count(User.id))) or 0),
            "visits": visit_totals(s)["visits"],
        },
        "today": {"visits": today_totals["visits"], "visitors": today_totals["visitors"]},
        "thisWeek": {"visits": week_totals["visits"], "visitors": week_totals["visitors"]},
        "daily": daily_series(s, days=30, today=now.date()),
        "topNotices": [
            {"id": r["notice"].id, "title": r["notice"].title, "slug": r["notice"].slug, "viewCount": r["viewCount"]}
            for r in top
        ],
    }


def cleanup_old_visits(s: "Session", *, days_to_keep: int = 365, now: datetime | None = None) -> int:
    cutoff = (now or utcnow()) - timedelta(days=days_to_keep)
    deleted = s.query(SiteVisit).filter(SiteVisit.visit_time < cutoff).delete(synchronize_session=False)
    logger.info("Deleted %s site visits older than %s days", deleted, days_to_keep)
    return int(deleted)


def export_rows(s: "Session", kind: str, *, limit: int = 10_000) -> list[dict]:
    from app.noticeboard.modules.notices.models import Notice

    if kind == "visits":
        visits = s.query(SiteVisit).order_by(SiteVisit.visit_time.desc()).limit(limit).all()
        return [
            {
                "id": v.id,
                "noticeId": v.notice_id,
                "visitDate": isoformat(v.visit_date),
                "visitTime": isoformat(v.visit_time),
                "sessionId": v.session_id,
                "referer": v.referer,
                "country": v.country,
                "city": v.city,
            }
            for v in visits
        ]
    if kind == "notices":
        stats = {r["id"]: r for r in content_analytics(s)}
        notices = s.query(Notice).order_by(Notice.created_at.desc()).limit(limit).all()
        return [
            {
                "id": n.id,
                "title": n.title,
                "slug": n.slug,
                "status": n.status,
                "priority": n.priority,
                "createdBy": n.created_by,
                "createdAt": isoformat(n.created_at),
                "publishedAt": isoformat(n.published_at),
                "viewCount": stats.get(n.id, {}).get("viewCount", 0),
            }
            for n in notices
        ]
    raise ValueError(f"Unknown export type: {kind!r}")


def rows_to_csv(rows: list[dict]) -> str:
    if not rows:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(rows[0].keys()))
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def user_analytics(s: "Session", *, now: datetime | None = None) -> dict:
    from app.noticeboard.models import User, UserSession
    from app.noticeboard.modules.notices.models import Notice

    now = now or utcnow()
    month_ago = now - timedelta(days=30)
    users = s.query(User).order_by(User.created_at.asc()).all()
    counts = {
        uid: (int(total), int(published or 0))
        for uid, total, published in s.execute(
            select(
                Notice.created_by,
                func.count(Notice.id),
                func.sum(case((Notice.status == STATUS_PUBLISHED, 1), else_=0)),
            ).group_by(Notice.created_by)
        )
    }
    sessions_total, sessions_users = s.execute(
        select(func.count(UserSession.id), func.count(distinct(UserSession.user_id))).where(
            UserSession.created_at >= month_ago
        )
    ).one()
    login_day = func.date(UserSession.created_at)
    trends = [
        {"date": str(d), "logins": int(n)}
        for d, n in s.execute(
            select(login_day, func.count(UserSession.id))
            .where(UserSession.created_at >= month_ago)
            .group_by(login_day)
            .order_by(login_day.desc())
        )
    ]
    return {
        "overview": {
            "totalUsers": len(users),
            "activeUsers": sum(1 for u in users if u.is_active),
            "superAdmins": sum(1 for u in users if u.role == ROLE_SUPER_ADMIN),
        },
        "sessions": {"last30Days": int(sessions_total or 0), "distinctUsers": int(sessions_users or 0)},
        "userActivity": [
            {
                "id": u.id,
                "username": u.username,
                "fullName": u.full_name,
                "role": u.role,
                "isActive": u.is_active,
                "lastLoginAt": isoformat(u.last_login_at),
                "noticesCreated": counts.get(u.id, (0, 0))[0],
                "noticesPublished": counts.get(u.id, (0, 0))[1],
            }
            for u in users
        ],
        "loginTrends": trends,
    }


def security_analytics(s: "Session", *, now: datetime | None = None, heavy_visit_threshold: int = 100) -> dict:
    from app.noticeboard.models import AuditEvent, UserSession

    now = now or utcnow()
    week_ago = now - timedelta(days=7)
    failed = [
        {"clientIp": ip, "attempts": int(n), "lastAttempt": isoformat(last)}
        for ip, n, last in s.execute(
            select(AuditEvent.client_ip, func.count(AuditEvent.id), func.max(AuditEvent.created_at))
            .where(AuditEvent.action == "auth.login_failed", AuditEvent.created_at >= week_ago)
            .group_by(AuditEvent.client_ip)
            .order_by(func.count(AuditEvent.id).desc())
            .limit(50)
        )
    ]
    active_sessions = s.scalar(
        select(func.count(UserSession.id)).where(UserSession.is_active.is_(True), UserSession.expires_at > now)
    )
    heavy = [
        {"ipAddress": ip, "visits": int(n), "sessions": int(sessions)}
        for ip, n, sessions in s.execute(
            select(SiteVisit.ip_address, func.count(SiteVisit.id), func.count(distinct(SiteVisit.session_id)))
            .where(SiteVisit.visit_time >= now - timedelta(hours=24))
            .group_by(SiteVisit.ip_address)
            .having(func.count(SiteVisit.id) > heavy_visit_threshold)
            .order_by(func.count(SiteVisit.id).desc())
        )
    ]
    return {
        "failedLogins": failed,
        "securityMetrics": {
            "activeSessions": int(active_sessions or 0),
            "failedLoginsLast7Days": sum(f["attempts"] for f in failed),
        },
        "suspiciousActivity": heavy,
        "generatedAt": isoformat(now),
    }
