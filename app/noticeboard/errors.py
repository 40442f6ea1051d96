"""
API exceptions and the JSON envelopes they render to.

Raise these from services and handlers; the error handlers registered in
``register_error_handlers`` turn them into::

    {"success": false, "error": "...", "message": "...", "timestamp": "..."}
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ApiError(Exception):
    status_code = 500
    error = "Server Error"

    def __init__(self, message: str, *, error: str | None = None, details: Any = None, headers: dict | None = None):
        super().__init__(message)
        self.message = message
        if error:
            self.error = error
        self.details = details
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        body["timestamp"] = utc_timestamp()
        return body


class ValidationError(ApiError):
    status_code = 400
    error = "Validation Error"

    def __init__(self, message: str | list[str], **kwargs: Any):
        if isinstance(message, list):
            kwargs.setdefault("details", message)
            message = "Validation failed: " + ", ".join(message)
        super().__init__(message, **kwargs)


class AuthenticationError(ApiError):
    status_code = 401
    error = "Authentication Failed"


class AuthorizationError(ApiError):
    status_code = 403
    error = "Access Denied"


class NotFoundError(ApiError):
    status_code = 404
    error = "Not Found"


class ConflictError(ApiError):
    status_code = 409
    error = "Conflict"


class RateLimitError(ApiError):
    status_code = 429
    error = "Rate Limit Exceeded"

    def __init__(self, message: str = "Too many requests, please try again later", *, retry_after: int = 60, **kwargs: Any):
        kwargs.setdefault("headers", {"Retry-After": str(retry_after)})
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


def success(data: Any = None, message: str = "OK", status: int = 200):
    """Standard success envelope."""
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body["timestamp"] = utc_timestamp()
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status_code in (401, 403, 429):
            app.logger.warning(
                "%s %s -> %s %s (request_id=%s)",
                request.method,
                request.path,
                e.status_code,
                e.message,
                getattr(g, "request_id", None),
            )
        resp = jsonify(e.to_dict())
        resp.status_code = e.status_code
        for k, v in e.headers.items():
            resp.headers[k] = v
        return resp

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        code = e.code or 500
        if code < 400:
            return e
        messages = {
            404: "The requested resource was not found",
            405: "Method not allowed for this endpoint",
            413: "Request too large",
        }
        resp = jsonify(
            {
                "success": False,
                "error": e.name,
                "message": messages.get(code, e.description or e.name),
                "timestamp": utc_timestamp(),
            }
        )
        resp.status_code = code
        return resp

    @app.errorhandler(Exception)
    def _err_500(e: Exception):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        resp = jsonify(
            {
                "success": False,
                "error": "Internal Server Error",
                "message": "An unexpected error occurred",
                "timestamp": utc_timestamp(),
            }
        )
        resp.status_code = 500
        return resp
