"""
Date-grouped public listing.

Published notices are bucketed by the calendar date of ``published_at``.
Inside a bucket, members are ordered by priority rank then newest first.
Buckets are ordered with today's bucket pinned first, then by date descending,
and pagination counts buckets rather than notices.
"""
from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.noticeboard.constants import GROUP_SUMMARY_CHARS, PRIORITY_RANK, UNKNOWN_PRIORITY_RANK
from app.noticeboard.utils import isoformat, truncate

if TYPE_CHECKING:
    from app.noticeboard.modules.notices.models import Notice


def priority_rank(priority: str | None) -> int:
    return PRIORITY_RANK.get(priority or "", UNKNOWN_PRIORITY_RANK)


def display_date(day: date, today: date) -> str:
    if day == today:
        return "Today"
    # "Monday, January 6, 2025"
    return f"{day.strftime('%A')}, {day.strftime('%B')} {day.day}, {day.year}"


def absolute_url(url: str | None, host_url: str | None) -> str | None:
    if not url or not host_url or not url.startswith("/"):
        return url
    return host_url.rstrip("/") + url


@dataclass
class NoticeGroup:
    day: date
    is_today: bool
    notices: list = field(default_factory=list)

    def to_dict(self, *, today: date, host_url: str | None = None, stats: dict | None = None) -> dict:
        stats = stats or {}
        return {
            "date": isoformat(self.day),
            "displayDate": display_date(self.day, today),
            "isToday": self.is_today,
            "notices": [public_member(n, host_url=host_url, stats=stats.get(n.id)) for n in self.notices],
            "noticeCount": len(self.notices),
        }


def public_member(notice: "Notice", *, host_url: str | None = None, stats: tuple[int, int] | None = None) -> dict:
    files = [
        {
            "name": f.get("name") or f.get("originalName") or "Unknown File",
            "url": absolute_url(f.get("url"), host_url),
            "size": f.get("size") or 0,
            "type": f.get("type") or f.get("mimetype") or "",
        }
        for f in notice.attachments
        if f.get("url")
    ]
    return {
        "id": notice.id,
        "title": notice.title,
        "description": truncate(notice.description, GROUP_SUMMARY_CHARS),
        "imageUrl": notice.image_url,
        "files": files,
        "priority": notice.priority,
        "slug": notice.slug,
        "publishedAt": isoformat(notice.published_at),
        "creatorName": notice.creator_name,
        "viewCount": (stats or (0, 0))[0],
    }


def _order_members(members: list) -> list:
    # newest first, then a stable sort by priority keeps recency inside equal ranks
    members = sorted(members, key=lambda n: n.published_at or datetime.min, reverse=True)
    return sorted(members, key=lambda n: priority_rank(n.priority))


def group_notices_by_date(notices: list["Notice"], *, today: date) -> list[NoticeGroup]:
    buckets: dict[date, list] = defaultdict(list)
    for n in notices:
        day = n.published_at.date() if n.published_at else today
        buckets[day].append(n)

    groups = [NoticeGroup(day=day, is_today=day == today, notices=_order_members(members)) for day, members in buckets.items()]
    groups.sort(key=lambda g: g.day, reverse=True)
    groups.sort(key=lambda g: not g.is_today)
    return groups


def paginate_groups(groups: list[NoticeGroup], page: int, limit: int) -> tuple[list[NoticeGroup], dict]:
    page = max(1, page)
    limit = max(1, limit)
    start = (page - 1) * limit
    return groups[start : start + limit], {
        "page": page,
        "limit": limit,
        "totalDates": len(groups),
        "totalPages": math.ceil(len(groups) / limit),
        "totalNotices": sum(len(g.notices) for g in groups),
    }
