from __future__ import annotations

from datetime import date, datetime, timezone

from flask import request


def utcnow() -> datetime:
    """Naive UTC now; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat() + "Z"
    return value.isoformat()


def int_arg(name: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    """Read an int query arg, falling back to ``default`` on garbage and clamping to [minimum, maximum]."""
    raw = request.args.get(name)
    try:
        value = int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def bool_arg(name: str, default: bool = False) -> bool:
    raw = (request.args.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def client_ip() -> str:
    # X-Forwarded-For is resolved by ProxyFix for the configured number of trusted hops
    return (request.remote_addr or "unknown")[:45]


def truncate(text: str | None, limit: int) -> str:
    text = text or ""
    return text[:limit] + ("..." if len(text) > limit else "")


def request_payload() -> dict:
    """JSON body, or form fields for multipart/urlencoded requests."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return {k: v for k, v in request.form.items()}
