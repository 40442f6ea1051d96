"""
Central constants for the notice board.
"""
from __future__ import annotations

ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"
ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)
ADMIN_ROLES = ROLES

APP_VERSION = "1.3.0"

PRIORITIES = ("low", "medium", "high")
# Lower rank sorts first inside a date group.
PRIORITY_RANK = {"high": 1, "medium": 2, "low": 3}
UNKNOWN_PRIORITY_RANK = 4
PRIORITY_LABELS = {"low": "Low Priority", "medium": "Medium Priority", "high": "High Priority"}

STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)

SORTABLE_COLUMNS = ("id", "title", "priority", "status", "created_at", "updated_at", "published_at")
SORT_ORDERS = ("ASC", "DESC")

TITLE_MIN, TITLE_MAX = 5, 500
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 10_000
MAX_FILES_PER_NOTICE = 10
SLUG_MAX_BASE = 100

MAX_PAGE_SIZE = 100
PUBLIC_SEARCH_MAX = 20
PUBLIC_LATEST_MAX = 10
PUBLIC_POPULAR_MAX = 10
SEARCH_MIN_CHARS = 3
SEARCH_MAX_CHARS = 100

GROUP_SUMMARY_CHARS = 250
SEARCH_SUMMARY_CHARS = 300
LATEST_SUMMARY_CHARS = 150
POPULAR_SUMMARY_CHARS = 200

VISIT_DEDUPE_MINUTES = 5

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"})
ALLOWED_FILE_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
        "application/zip",
        "application/x-zip-compressed",
    }
)

# Extension -> MIME types a browser may legitimately declare for it.
EXTENSION_MIME_TYPES = {
    ".jpg": ("image/jpeg", "image/jpg"),
    ".jpeg": ("image/jpeg", "image/jpg"),
    ".png": ("image/png",),
    ".gif": ("image/gif",),
    ".webp": ("image/webp",),
    ".pdf": ("application/pdf",),
    ".doc": ("application/msword",),
    ".docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    ".xls": ("application/vnd.ms-excel",),
    ".xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",),
    ".txt": ("text/plain",),
    ".zip": ("application/zip", "application/x-zip-compressed"),
}

RESERVED_FILENAMES = frozenset(
    {"con", "prn", "aux", "nul"}
    | {f"com{i}" for i in range(1, 10)}
    | {f"lpt{i}" for i in range(1, 10)}
)

MAX_FILES_PER_UPLOAD = 10
UPLOAD_PREFIX = "uploads"
