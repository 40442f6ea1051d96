from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.noticeboard.constants import ADMIN_ROLES, ROLE_SUPER_ADMIN
from app.noticeboard.errors import AuthenticationError, AuthorizationError
from app.noticeboard.models import User


def user_has_role(user: User | None, roles: tuple[str, ...] | list[str]) -> bool:
    if not user or not user.is_active:
        return False
    if not roles:
        return True
    return user.role in roles


def current_user() -> User:
    """The authenticated user, or AuthenticationError. Use inside handlers guarded by require_role."""
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        raise AuthenticationError(getattr(g, "auth_error", None) or "No authentication token provided")
    return user


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Unauthenticated -> 401 (with the reason the token was rejected).
    Authenticated without one of ``roles`` -> 403. No roles means any authenticated user.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if not user_has_role(user, roles):
                g.missing_role = ",".join(roles)
                raise AuthorizationError("Insufficient permissions")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_auth = require_role()
require_admin = require_role(*ADMIN_ROLES)
require_super_admin = require_role(ROLE_SUPER_ADMIN)
