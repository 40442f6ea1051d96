from __future__ import annotations

from flask import Blueprint, current_app, request

from app.noticeboard.audit import record_event
from app.noticeboard.constants import MAX_FILES_PER_UPLOAD
from app.noticeboard.db import db_session
from app.noticeboard.errors import ValidationError, success
from app.noticeboard.modules.uploads.service import (
    delete_upload,
    delete_urls,
    is_image_type,
    list_uploads,
    save_upload,
)
from app.noticeboard.ratelimit import rate_limit
from app.noticeboard.rbac import current_user, require_admin
from app.noticeboard.storage import storage_from_config

bp = Blueprint("uploads", __name__)


def _incoming(*fields: str) -> list:
    out = []
    for field in fields:
        out.extend(f for f in request.files.getlist(field) if f and f.filename)
    return out


def _record_uploads(stored: list, kind: str) -> None:
    s = db_session()
    record_event(
        s,
        actor=current_user(),
        action=f"upload.{kind}",
        entity_type="Upload",
        entity_id=",".join(f.filename for f in stored)[:128],
        metadata={"files": [f.to_dict() for f in stored]},
    )
    s.commit()


def _save_all(storage, files: list, max_size_for) -> list:
    """Store every file, or none of them: a rejected file removes the ones already saved."""
    stored = []
    try:
        for f in files:
            stored.append(save_upload(storage, f, images_only=False, max_size=max_size_for(f)))
    except ValidationError:
        delete_urls(storage, [f.url for f in stored])
        raise
    return stored


@bp.post("")
@require_admin
@rate_limit("upload")
def upload_any():
    files = _incoming("file", "files", "image")
    if not files:
        raise ValidationError("No files were uploaded")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise ValidationError(f"Maximum {MAX_FILES_PER_UPLOAD} files per upload")
    storage = storage_from_config(current_app.config)
    config = current_app.config
    stored = _save_all(
        storage,
        files,
        lambda f: config["MAX_IMAGE_SIZE"] if is_image_type(f.mimetype) else config["MAX_FILE_SIZE"],
    )
    _record_uploads(stored, "files")
    return success({"files": [f.to_dict() for f in stored]}, f"{len(stored)} files uploaded successfully")


@bp.post("/image")
@require_admin
@rate_limit("upload")
def upload_image():
    files = _incoming("image")
    if not files:
        raise ValidationError("No image file was uploaded")
    if len(files) > 1:
        raise ValidationError("Only one image may be uploaded at a time")
    storage = storage_from_config(current_app.config)
    stored = save_upload(storage, files[0], images_only=True, max_size=current_app.config["MAX_IMAGE_SIZE"])
    _record_uploads([stored], "image")
    return success({"file": stored.to_dict()}, "Image uploaded successfully")


@bp.post("/files")
@require_admin
@rate_limit("upload")
def upload_files():
    files = _incoming("files")
    if not files:
        raise ValidationError("No files were uploaded")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise ValidationError(f"Maximum {MAX_FILES_PER_UPLOAD} files per upload")
    storage = storage_from_config(current_app.config)
    max_size = current_app.config["MAX_FILE_SIZE"]
    stored = _save_all(storage, files, lambda f: max_size)
    _record_uploads(stored, "files")
    return success({"files": [f.to_dict() for f in stored]}, f"{len(stored)} files uploaded successfully")


@bp.get("/list")
@require_admin
def list_files():
    files = list_uploads(storage_from_config(current_app.config))
    return success({"files": files, "count": len(files)}, "Files retrieved successfully")


@bp.delete("/<path:filename>")
@require_admin
def delete_file(filename: str):
    delete_upload(storage_from_config(current_app.config), filename)
    s = db_session()
    record_event(s, actor=current_user(), action="upload.delete", entity_type="Upload", entity_id=filename[:128])
    s.commit()
    return success({"filename": filename}, "File deleted successfully")
