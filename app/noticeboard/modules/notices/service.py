from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select

from app.noticeboard.audit import record_event
from app.noticeboard.constants import (
    DESCRIPTION_MAX,
    DESCRIPTION_MIN,
    MAX_FILES_PER_NOTICE,
    MAX_PAGE_SIZE,
    PRIORITIES,
    SLUG_MAX_BASE,
    SORT_ORDERS,
    SORTABLE_COLUMNS,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    STATUSES,
    TITLE_MAX,
    TITLE_MIN,
)
from app.noticeboard.errors import ValidationError
from app.noticeboard.modules.analytics.service import view_stats
from app.noticeboard.modules.notices.models import Notice
from app.noticeboard.sanitize import clean_rich_text, clean_search_term, clean_title, clean_url, like_pattern
from app.noticeboard.utils import isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.noticeboard.models import User
    from app.noticeboard.storage import Storage

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "imageUrl", "files", "priority", "status")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_notice_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate notice create/update payload. Returns list of errors."""
    errors: list[str] = []

    if not partial or "title" in payload:
        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            if not partial:
                errors.append("Title is required")
        elif len(title.strip()) < TITLE_MIN:
            errors.append(f"Title must be at least {TITLE_MIN} characters long")
        elif len(title.strip()) > TITLE_MAX:
            errors.append(f"Title must not exceed {TITLE_MAX} characters")

    if not partial or "description" in payload:
        desc = payload.get("description")
        if not isinstance(desc, str) or not desc.strip():
            if not partial:
                errors.append("Description is required")
        elif len(desc.strip()) < DESCRIPTION_MIN:
            errors.append(f"Description must be at least {DESCRIPTION_MIN} characters long")
        elif len(desc.strip()) > DESCRIPTION_MAX:
            errors.append(f"Description must not exceed {DESCRIPTION_MAX:,} characters")

    priority = payload.get("priority")
    if priority not in (None, "") and priority not in PRIORITIES:
        errors.append("Priority must be low, medium, or high")

    status = payload.get("status")
    if status not in (None, "") and status not in STATUSES:
        errors.append("Status must be draft or published")

    files = payload.get("files")
    if files is not None:
        if not isinstance(files, list):
            errors.append("Files must be a list")
        elif len(files) > MAX_FILES_PER_NOTICE:
            errors.append(f"Maximum {MAX_FILES_PER_NOTICE} files allowed per notice")

    return errors


def _clean_files(files: list | None) -> list[dict]:
    out = []
    for f in files or []:
        if not isinstance(f, dict):
            continue
        url = clean_url(f.get("url"))
        if not url:
            continue
        try:
            size = int(f.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        name = clean_title(f.get("name") or f.get("originalName")) or url.rsplit("/", 1)[-1]
        out.append(
            {
                "name": name[:255],
                "originalName": clean_title(f.get("originalName") or name)[:255],
                "url": url,
                "size": max(0, size),
                "type": str(f.get("type") or f.get("mimetype") or "")[:255],
            }
        )
    return out


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------


def slugify(title: str) -> str:
    slug = (title or "").lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    if not slug:
        return "notice"
    if len(slug) > SLUG_MAX_BASE:
        slug = re.sub(r"-[^-]*$", "", slug[:SLUG_MAX_BASE]) or slug[:SLUG_MAX_BASE]
    return slug


def generate_unique_slug(s: "Session", title: str, exclude_id: int | None = None) -> str:
    base = slugify(title)
    q = select(Notice.slug).where(or_(Notice.slug == base, Notice.slug.like(f"{base}-%")))
    if exclude_id is not None:
        q = q.where(Notice.id != exclude_id)
    taken = set(s.scalars(q))
    slug, counter = base, 0
    while slug in taken:
        counter += 1
        slug = f"{base}-{counter}"
    return slug


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _snapshot(n: Notice) -> dict[str, Any]:
    return {"title": n.title, "status": n.status, "priority": n.priority, "slug": n.slug}


def create_notice(s: "Session", payload: dict, user: "User", *, now: datetime | None = None) -> Notice:
    errors = validate_notice_payload(payload)
    if errors:
        raise ValidationError(errors)

    now = now or utcnow()
    title = clean_title(payload["title"])
    description = clean_rich_text(payload["description"])
    # re-check after sanitising: stripping tags may shrink the text below the minimum
    errors = validate_notice_payload({"title": title, "description": description})
    if errors:
        raise ValidationError(errors)

    status = payload.get("status") or STATUS_DRAFT
    notice = Notice(
        title=title,
        description=description,
        image_url=clean_url(payload.get("imageUrl")),
        files=_clean_files(payload.get("files")),
        priority=payload.get("priority") or "medium",
        status=status,
        slug=generate_unique_slug(s, title),
        created_by=user.id,
        published_at=now if status == STATUS_PUBLISHED else None,
        created_at=now,
        updated_at=now,
    )
    s.add(notice)
    s.flush()

    record_event(
        s,
        actor=user,
        action="notice.create",
        entity_type="Notice",
        entity_id=str(notice.id),
        metadata={"after": _snapshot(notice)},
    )
    logger.info("Notice %s created by %s (%s)", notice.id, user.username, notice.status)
    return notice


def _apply_status(notice: Notice, status: str, now: datetime) -> None:
    if status == STATUS_PUBLISHED:
        if notice.status != STATUS_PUBLISHED or notice.published_at is None:
            notice.published_at = now
    else:
        notice.published_at = None
    notice.status = status


def update_notice(s: "Session", notice: Notice, payload: dict, user: "User", *, now: datetime | None = None) -> Notice:
    """
    Apply the allowed fields present in ``payload``. Blank title/description are
    ignored; invalid values raise ValidationError.
    """
    fields = {k: payload[k] for k in UPDATABLE_FIELDS if k in payload and payload[k] is not None}
    for key in ("priority", "status"):
        if fields.get(key) == "":
            fields.pop(key)
    # blank text fields are treated as "not supplied"
    for key in ("title", "description"):
        if key in fields and (not isinstance(fields[key], str) or not fields[key].strip()):
            fields.pop(key)
    if not fields:
        raise ValidationError("No valid fields to update")
    errors = validate_notice_payload(fields, partial=True)
    if errors:
        raise ValidationError(errors)

    now = now or utcnow()
    before = _snapshot(notice)

    if "title" in fields:
        title = clean_title(fields["title"])
        if len(title) < TITLE_MIN:
            raise ValidationError([f"Title must be at least {TITLE_MIN} characters long"])
        if title != notice.title:
            notice.slug = generate_unique_slug(s, title, exclude_id=notice.id)
        notice.title = title
    if "description" in fields:
        description = clean_rich_text(fields["description"])
        if len(description) < DESCRIPTION_MIN:
            raise ValidationError([f"Description must be at least {DESCRIPTION_MIN} characters long"])
        notice.description = description
    if "imageUrl" in fields:
        notice.image_url = clean_url(fields["imageUrl"])
    if "files" in fields:
        notice.files = _clean_files(fields["files"])
    if fields.get("priority"):
        notice.priority = fields["priority"]
    if fields.get("status"):
        _apply_status(notice, fields["status"], now)

    notice.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="notice.update",
        entity_type="Notice",
        entity_id=str(notice.id),
        metadata={"before": before, "after": _snapshot(notice), "changes": sorted(fields)},
    )
    return notice


def publish_notice(s: "Session", notice: Notice, user: "User", *, now: datetime | None = None) -> Notice:
    return update_notice(s, notice, {"status": STATUS_PUBLISHED}, user, now=now)


def unpublish_notice(s: "Session", notice: Notice, user: "User", *, now: datetime | None = None) -> Notice:
    return update_notice(s, notice, {"status": STATUS_DRAFT}, user, now=now)


def delete_notice(s: "Session", notice: Notice, user: "User", storage: "Storage | None" = None) -> None:
    from app.noticeboard.modules.uploads.service import delete_urls

    urls = [notice.image_url] if notice.image_url else []
    urls.extend(f.get("url") for f in notice.attachments if f.get("url"))
    if storage is not None and urls:
        removed = delete_urls(storage, urls)
        logger.info("Removed %s stored files for notice %s", removed, notice.id)

    record_event(
        s,
        actor=user,
        action="notice.delete",
        entity_type="Notice",
        entity_id=str(notice.id),
        metadata={"before": _snapshot(notice)},
    )
    s.delete(notice)
    s.flush()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit) if limit else 0}


def _published_filter(q):
    return q.where(Notice.status == STATUS_PUBLISHED, Notice.published_at.is_not(None))


def _search_filter(q, term: str):
    pattern = like_pattern(term.lower())
    return q.where(
        or_(
            func.lower(Notice.title).like(pattern, escape="\\"),
            func.lower(Notice.description).like(pattern, escape="\\"),
        )
    )


def filtered_query(
    *,
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    created_by: int | None = None,
    published_only: bool = False,
):
    """SELECT over notices with the shared listing predicates applied. Unknown enum values are ignored."""
    q = select(Notice)
    if published_only:
        q = _published_filter(q)
    elif status in STATUSES:
        q = q.where(Notice.status == status)
    if priority in PRIORITIES:
        q = q.where(Notice.priority == priority)
    if created_by:
        q = q.where(Notice.created_by == created_by)
    term = clean_search_term(search)
    if term:
        q = _search_filter(q, term)
    return q


def list_notices(
    s: "Session",
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    created_by: int | None = None,
    sort_by: str = "created_at",
    sort_order: str = "DESC",
    published_only: bool = False,
) -> tuple[list[Notice], dict]:
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError("Invalid sort column")
    order = (sort_order or "").upper()
    if order not in SORT_ORDERS:
        raise ValidationError("Invalid sort order")

    q = filtered_query(status=status, priority=priority, search=search, created_by=created_by, published_only=published_only)
    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0
    column = getattr(Notice, sort_by)
    q = q.order_by(column.asc() if order == "ASC" else column.desc(), Notice.id.desc())
    notices = list(s.scalars(q.offset((page - 1) * limit).limit(limit)))
    return notices, _pagination(page, limit, int(total))


def search_notices(
    s: "Session",
    query: str | None,
    *,
    page: int = 1,
    limit: int = 10,
    published_only: bool = True,
) -> tuple[list[Notice], dict, str]:
    term = clean_search_term(query)
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))
    if not term:
        return [], _pagination(1, limit, 0), ""
    q = _search_filter(select(Notice), term)
    if published_only:
        q = _published_filter(q)
    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0
    q = q.order_by(Notice.published_at.desc(), Notice.created_at.desc(), Notice.id.desc())
    notices = list(s.scalars(q.offset((page - 1) * limit).limit(limit)))
    return notices, _pagination(page, limit, int(total)), term


def related_notices(s: "Session", notice: Notice, limit: int = 3) -> list[Notice]:
    limit = min(10, max(1, limit))
    q = (
        _published_filter(select(Notice))
        .where(Notice.id != notice.id)
        .where(or_(Notice.priority == notice.priority, Notice.created_by == notice.created_by))
        .order_by(Notice.published_at.desc(), Notice.id.desc())
        .limit(limit)
    )
    return list(s.scalars(q))


def get_by_slug(s: "Session", slug: str) -> Notice | None:
    slug = (slug or "").strip()
    if not slug:
        return None
    return s.scalars(select(Notice).where(Notice.slug == slug)).one_or_none()


def stats_for(s: "Session", notices: list[Notice]) -> dict[int, tuple[int, int]]:
    return view_stats(s, [n.id for n in notices])


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def notice_to_dict(notice: Notice, stats: tuple[int, int] | None = None) -> dict:
    views, uniq = stats or (0, 0)
    return {
        "id": notice.id,
        "title": notice.title,
        "description": notice.description,
        "imageUrl": notice.image_url,
        "files": notice.attachments,
        "priority": notice.priority,
        "status": notice.status,
        "slug": notice.slug,
        "createdBy": notice.created_by,
        "publishedAt": isoformat(notice.published_at),
        "createdAt": isoformat(notice.created_at),
        "updatedAt": isoformat(notice.updated_at),
        "creatorUsername": notice.creator_username,
        "creatorName": notice.creator_name,
        "viewCount": views,
        "uniqueViewers": uniq,
    }


def notice_summary(notice: Notice, *, description_chars: int | None = None) -> dict:
    """Public-safe subset: no status, no creator id."""
    from app.noticeboard.utils import truncate

    desc = notice.description or ""
    return {
        "id": notice.id,
        "title": notice.title,
        "description": truncate(desc, description_chars) if description_chars else desc,
        "imageUrl": notice.image_url,
        "priority": notice.priority,
        "slug": notice.slug,
        "publishedAt": isoformat(notice.published_at),
        "creatorName": notice.creator_name,
    }
