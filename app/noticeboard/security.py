from __future__ import annotations

import hashlib
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from email_validator import EmailNotValidError, validate_email
from flask import current_app, request
from jose import ExpiredSignatureError, JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

JWT_ALGORITHM = "HS256"
JWT_LEEWAY_SECONDS = 10

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,100}$")


class TokenError(Exception):
    pass


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def password_problems(password: str | None) -> list[str]:
    """Strength rules for new passwords. Empty list means acceptable."""
    pw = password or ""
    problems = []
    if len(pw) < 8:
        problems.append("Password must be at least 8 characters long")
    if len(pw) > 128:
        problems.append("Password must not exceed 128 characters")
    if not re.search(r"[A-Za-z]", pw) or not re.search(r"\d", pw):
        problems.append("Password must contain at least one letter and one number")
    return problems


def is_valid_username(username: str | None) -> bool:
    return bool(username and _USERNAME_RE.match(username))


def is_valid_email(email: str | None) -> bool:
    if not email or len(email) > 255:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def hash_token(token: str) -> str:
    """SHA-256 of a JWT; this is what user_sessions stores."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_lifetime() -> timedelta:
    return timedelta(hours=int(current_app.config.get("JWT_EXPIRES_HOURS", 24 * 7)))


def create_access_token(user, *, now: datetime | None = None) -> tuple[str, datetime]:
    """
    Issue a signed token for ``user``. Returns ``(token, expires_at)`` with
    ``expires_at`` as naive UTC, matching the session row.
    """
    issued = now or datetime.now(timezone.utc)
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    expires = issued + token_lifetime()
    cfg = current_app.config
    payload: dict[str, Any] = {
        "userId": user.id,
        "username": user.username,
        "role": user.role,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
        "iss": cfg["JWT_ISSUER"],
        "aud": cfg["JWT_AUDIENCE"],
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, cfg["JWT_SECRET"], algorithm=JWT_ALGORITHM)
    return token, expires.replace(tzinfo=None)


def decode_access_token(token: str) -> dict[str, Any]:
    cfg = current_app.config
    try:
        payload = jwt.decode(
            token,
            cfg["JWT_SECRET"],
            algorithms=[JWT_ALGORITHM],
            audience=cfg["JWT_AUDIENCE"],
            issuer=cfg["JWT_ISSUER"],
            options={"leeway": JWT_LEEWAY_SECONDS},
        )
    except ExpiredSignatureError as e:
        raise TokenError("Authentication token has expired") from e
    except JWTError as e:
        raise TokenError("Invalid authentication token") from e
    if not payload.get("userId") or not payload.get("role"):
        raise TokenError("Invalid token payload")
    return payload


def extract_bearer_token() -> str | None:
    """Accepts ``Authorization: Bearer <token>`` as well as a bare token."""
    header = (request.headers.get("Authorization") or "").strip()
    if not header:
        return None
    if header.lower().startswith("bearer "):
        header = header[7:].strip()
    return header or None
