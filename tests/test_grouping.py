"""Date-grouped public listing: pure functions, fixed ``today``."""
from datetime import date, datetime

from app.noticeboard.modules.notices.grouping import (
    display_date,
    group_notices_by_date,
    paginate_groups,
    priority_rank,
    public_member,
)
from app.noticeboard.modules.notices.models import Notice

TODAY = date(2025, 1, 8)


def _notice(id, published_at, priority="medium", **kw):
    kw.setdefault("title", f"Notice {id}")
    kw.setdefault("description", "Body text for the notice.")
    return Notice(id=id, published_at=published_at, priority=priority, status="published", slug=f"notice-{id}", **kw)


def test_priority_rank():
    assert [priority_rank(p) for p in ("high", "medium", "low", "urgent", None)] == [1, 2, 3, 4, 4]


def test_display_date():
    assert display_date(TODAY, TODAY) == "Today"
    assert display_date(date(2025, 1, 6), TODAY) == "Monday, January 6, 2025"


def test_today_pinned_then_date_descending():
    notices = [
        _notice(1, datetime(2025, 1, 6, 9)),
        _notice(2, datetime(2025, 1, 8, 9)),
        _notice(3, datetime(2025, 1, 7, 9)),
        _notice(4, datetime(2024, 12, 31, 9)),
    ]
    groups = group_notices_by_date(notices, today=TODAY)
    assert [g.day for g in groups] == [date(2025, 1, 8), date(2025, 1, 7), date(2025, 1, 6), date(2024, 12, 31)]
    assert groups[0].is_today and not groups[1].is_today


def test_future_dated_group_sorts_after_today():
    notices = [_notice(1, datetime(2025, 1, 9, 9)), _notice(2, datetime(2025, 1, 8, 9))]
    groups = group_notices_by_date(notices, today=TODAY)
    assert [g.day for g in groups] == [date(2025, 1, 8), date(2025, 1, 9)]


def test_members_sorted_by_priority_then_recency():
    notices = [
        _notice(1, datetime(2025, 1, 8, 8), "low"),
        _notice(2, datetime(2025, 1, 8, 9), "medium"),
        _notice(3, datetime(2025, 1, 8, 7), "high"),
        _notice(4, datetime(2025, 1, 8, 10), "high"),
        _notice(5, datetime(2025, 1, 8, 11), "weird"),
    ]
    (group,) = group_notices_by_date(notices, today=TODAY)
    assert [n.id for n in group.notices] == [4, 3, 2, 1, 5]


def test_missing_published_at_falls_into_today():
    (group,) = group_notices_by_date([_notice(1, None)], today=TODAY)
    assert group.day == TODAY


def test_group_serialisation():
    notices = [_notice(1, datetime(2025, 1, 6, 9), description="x" * 300)]
    (group,) = group_notices_by_date(notices, today=TODAY)
    d = group.to_dict(today=TODAY, stats={1: (7, 3)})
    assert d["date"] == "2025-01-06"
    assert d["displayDate"] == "Monday, January 6, 2025"
    assert d["isToday"] is False
    assert d["noticeCount"] == 1
    member = d["notices"][0]
    assert member["description"] == "x" * 250 + "..."
    assert member["viewCount"] == 7
    assert member["publishedAt"] == "2025-01-06T09:00:00Z"
    assert "status" not in member


def test_short_description_not_truncated():
    member = public_member(_notice(1, datetime(2025, 1, 6), description="Short body"))
    assert member["description"] == "Short body"
    assert member["viewCount"] == 0


def test_file_urls_made_absolute():
    n = _notice(
        1,
        datetime(2025, 1, 6),
        files=[
            {"name": "a.pdf", "url": "/uploads/a.pdf", "size": 10, "type": "application/pdf"},
            {"originalName": "b.pdf", "url": "https://cdn.example.com/b.pdf"},
            {"name": "broken"},
        ],
    )
    files = public_member(n, host_url="http://localhost:5000/")["files"]
    assert files == [
        {"name": "a.pdf", "url": "http://localhost:5000/uploads/a.pdf", "size": 10, "type": "application/pdf"},
        {"name": "b.pdf", "url": "https://cdn.example.com/b.pdf", "size": 0, "type": ""},
    ]


def test_paginate_over_groups():
    notices = [_notice(i, datetime(2025, 1, 8 - i, 9)) for i in range(5)]
    notices.append(_notice(99, datetime(2025, 1, 8, 12), "high"))
    groups = group_notices_by_date(notices, today=TODAY)

    page, pagination = paginate_groups(groups, page=1, limit=2)
    assert [g.day for g in page] == [date(2025, 1, 8), date(2025, 1, 7)]
    assert len(page[0].notices) == 2
    assert pagination == {"page": 1, "limit": 2, "totalDates": 5, "totalPages": 3, "totalNotices": 6}

    page, _ = paginate_groups(groups, page=3, limit=2)
    assert [g.day for g in page] == [date(2025, 1, 4)]

    page, pagination = paginate_groups(groups, page=9, limit=2)
    assert page == []
    assert pagination["totalPages"] == 3
