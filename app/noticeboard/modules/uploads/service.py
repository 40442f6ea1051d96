from __future__ import annotations

import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.noticeboard.constants import (
    ALLOWED_FILE_TYPES,
    ALLOWED_IMAGE_TYPES,
    EXTENSION_MIME_TYPES,
    RESERVED_FILENAMES,
    UPLOAD_PREFIX,
)
from app.noticeboard.errors import NotFoundError, ValidationError
from app.noticeboard.storage import StorageError

if TYPE_CHECKING:
    from werkzeug.datastructures import FileStorage

    from app.noticeboard.storage import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    filename: str
    original_name: str
    size: int
    mimetype: str
    url: str

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size,
            "mimetype": self.mimetype,
            "url": self.url,
        }

    def to_attachment(self) -> dict:
        """Shape stored in Notice.files."""
        return {
            "name": self.original_name,
            "originalName": self.original_name,
            "url": self.url,
            "size": self.size,
            "type": self.mimetype,
        }


def is_image_type(mimetype: str | None) -> bool:
    return (mimetype or "").lower() in ALLOWED_IMAGE_TYPES


def validate_upload(filename: str | None, mimetype: str | None, size: int, *, images_only: bool, max_size: int) -> list[str]:
    """Returns a list of problems; empty means the file may be stored."""
    errors: list[str] = []
    name = (filename or "").strip()
    mt = (mimetype or "").strip().lower()
    if not name:
        return ["File name is required"]

    base, ext = os.path.splitext(name.lower())
    if not ext:
        errors.append("File must have an extension")
    if "." in base:
        errors.append("Multiple file extensions not allowed")
    if base.split(".")[0] in RESERVED_FILENAMES:
        errors.append("Reserved filename not allowed")

    allowed = ALLOWED_IMAGE_TYPES if images_only else (ALLOWED_IMAGE_TYPES | ALLOWED_FILE_TYPES)
    if not mt:
        errors.append("File type could not be determined")
    elif mt not in allowed:
        errors.append(f"File type {mt} is not allowed")
    elif ext and mt not in EXTENSION_MIME_TYPES.get(ext, ()):
        errors.append("File extension and type mismatch")

    if size <= 0:
        errors.append("File is empty")
    elif size > max_size:
        errors.append(f"File too large. Maximum size is {max_size / 1024 / 1024:.1f}MB")
    return errors


def stored_name_for(original: str) -> str:
    """``<epoch_ms>_<8 hex>_<secure base><ext>``"""
    base, ext = os.path.splitext(original)
    safe_base = secure_filename(base)[:50] or "file"
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}_{safe_base}{ext.lower()}"


def url_for_name(name: str) -> str:
    return f"/{UPLOAD_PREFIX}/{name}"


def key_for_name(name: str) -> str:
    return f"{UPLOAD_PREFIX}/{name}"


def save_upload(storage: "Storage", f: "FileStorage", *, images_only: bool, max_size: int) -> StoredFile:
    data = f.read()
    original = (f.filename or "").strip()
    mimetype = (f.mimetype or "").lower()
    errors = validate_upload(original, mimetype, len(data), images_only=images_only, max_size=max_size)
    if errors:
        raise ValidationError(errors, error="Invalid File")
    name = stored_name_for(original)
    storage.put_bytes(key_for_name(name), data, content_type=mimetype)
    logger.info("Stored upload %s (%s bytes, %s)", name, len(data), mimetype)
    return StoredFile(filename=name, original_name=original, size=len(data), mimetype=mimetype, url=url_for_name(name))


def name_from_url(url: str | None) -> str | None:
    """Stored name for a ``/uploads/<name>`` URL (absolute or relative); None for foreign URLs."""
    if not url:
        return None
    marker = f"/{UPLOAD_PREFIX}/"
    idx = url.find(marker)
    if idx < 0:
        return None
    name = url[idx + len(marker):].split("?")[0]
    return name if is_safe_name(name) else None


def is_safe_name(name: str) -> bool:
    return bool(name) and "/" not in name and "\\" not in name and ".." not in name and not name.startswith(".")


def delete_upload(storage: "Storage", name: str) -> None:
    if not is_safe_name(name):
        raise ValidationError("Invalid filename")
    if not storage.delete(key_for_name(name)):
        raise NotFoundError("File not found", error="File Not Found")


def delete_urls(storage: "Storage", urls: list[str]) -> int:
    """Best-effort removal of stored files behind ``urls``; returns how many were removed."""
    removed = 0
    for url in urls:
        name = name_from_url(url)
        if not name:
            continue
        try:
            if storage.delete(key_for_name(name)):
                removed += 1
        except (OSError, StorageError) as e:
            logger.warning("Could not delete stored file %s: %s", name, e)
    return removed


def list_uploads(storage: "Storage") -> list[dict]:
    out = []
    for key, size in storage.list_keys(UPLOAD_PREFIX):
        name = key.rsplit("/", 1)[-1]
        out.append({"filename": name, "size": size, "url": url_for_name(name)})
    return out
