from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, request
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from app.noticeboard.audit import record_event
from app.noticeboard.constants import ROLE_ADMIN, ROLES
from app.noticeboard.db import db_session
from app.noticeboard.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    success,
)
from app.noticeboard.models import User, UserSession
from app.noticeboard.ratelimit import limiter, rate_limit
from app.noticeboard.rbac import current_user, require_auth, require_super_admin
from app.noticeboard.sanitize import clean_title
from app.noticeboard.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    hash_password,
    hash_token,
    is_valid_email,
    is_valid_username,
    password_problems,
    token_lifetime,
    verify_password,
)
from app.noticeboard.utils import client_ip, isoformat, request_payload, utcnow

bp = Blueprint("auth", __name__)

INVALID_CREDENTIALS = "Invalid username or password"


def load_current_user() -> None:
    """
    Resolve g.current_user / g.current_session from the bearer token.
    Also assigns a per-request request_id (for audit/log correlation).

    A rejected token leaves g.current_user as None and records the reason in
    g.auth_error; protected handlers turn that into a 401.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.current_session = None
    g.auth_error = None

    token = extract_bearer_token()
    if not token:
        return

    try:
        payload = decode_access_token(token)
    except TokenError as e:
        g.auth_error = str(e)
        current_app.logger.warning("Rejected token: %s (ip=%s request_id=%s)", e, client_ip(), g.request_id)
        return

    s = db_session()
    try:
        user = s.get(User, int(payload["userId"]))
        if not user or not user.is_active:
            g.auth_error = "User not found or inactive"
            return
        if user.role != payload.get("role"):
            g.auth_error = "Token role no longer matches user"
            return

        now = utcnow()
        sess = s.scalars(
            select(UserSession).where(
                UserSession.user_id == user.id,
                UserSession.token_hash == hash_token(token),
                UserSession.is_active.is_(True),
                UserSession.expires_at > now,
            )
        ).first()
        if not sess:
            g.auth_error = "Session expired or revoked"
            return

        sess.last_activity = now
        s.commit()
        g.current_user = user
        g.current_session = sess
    except (SQLAlchemyError, TypeError, ValueError) as e:
        s.rollback()
        current_app.logger.error("load_current_user failed (request_id=%s): %s", g.request_id, e)
        g.current_user = None
        g.auth_error = "Authentication failed"


def _issue_session(s, user: User) -> tuple[str, UserSession]:
    token, expires_at = create_access_token(user)
    sess = UserSession(
        user_id=user.id,
        token_hash=hash_token(token),
        ip_address=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:1000] or None,
        expires_at=expires_at,
    )
    s.add(sess)
    s.flush()
    return token, sess


def _token_response(token: str, sess: UserSession, user: User) -> dict:
    return {
        "token": token,
        "tokenType": "Bearer",
        "expiresIn": int(token_lifetime().total_seconds()),
        "user": user.to_dict(),
        "session": {"id": sess.id, "expiresAt": isoformat(sess.expires_at)},
    }


def _revoke_other_sessions(s, user: User, keep_id: int | None) -> int:
    q = update(UserSession).where(UserSession.user_id == user.id, UserSession.is_active.is_(True))
    if keep_id is not None:
        q = q.where(UserSession.id != keep_id)
    return s.execute(q.values(is_active=False)).rowcount or 0


# ---------- Login / logout ----------
@bp.post("/login")
@rate_limit("auth")
def login():
    data = request_payload()
    username = str(data.get("username") or "").strip()
    password = str(data.get("password") or "")
    if not username or not password:
        raise ValidationError("Username and password are required")

    s = db_session()
    user = s.scalars(
        select(User).where(or_(User.username == username, func.lower(User.email) == username.lower()))
    ).first()
    if not user or not user.is_active or not verify_password(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username[:128],
            reason="Invalid credentials" if user is None or user.is_active else "Inactive user",
        )
        s.commit()
        current_app.logger.warning("Failed login for %r from %s", username, client_ip())
        raise AuthenticationError(INVALID_CREDENTIALS)

    token, sess = _issue_session(s, user)
    user.last_login_at = utcnow()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    limiter().reset("auth", client_ip())
    return success(_token_response(token, sess, user), "Login successful")


@bp.post("/logout")
@require_auth
def logout():
    s = db_session()
    user = current_user()
    g.current_session.is_active = False
    record_event(s, actor=user, action="auth.logout", entity_type="UserSession", entity_id=str(g.current_session.id))
    s.commit()
    return success(None, "Logout successful")


@bp.post("/refresh")
@require_auth
def refresh():
    s = db_session()
    user = current_user()
    old = g.current_session
    token, sess = _issue_session(s, user)
    old.is_active = False
    record_event(s, actor=user, action="auth.refresh", entity_type="UserSession", entity_id=str(sess.id), metadata={"revoked": old.id})
    s.commit()
    return success(_token_response(token, sess, user), "Token refreshed successfully")


# ---------- Profile ----------
@bp.get("/profile")
@require_auth
def profile_get():
    return success({"user": current_user().to_dict()}, "Profile retrieved successfully")


@bp.put("/profile")
@require_auth
def profile_update():
    s = db_session()
    user = current_user()
    data = request_payload()
    errors: list[str] = []

    full_name = data.get("fullName", data.get("full_name"))
    email = data.get("email")
    if full_name is not None:
        full_name = clean_title(str(full_name))
        if not full_name or len(full_name) > 255:
            errors.append("Full name must be between 1 and 255 characters")
    if email is not None:
        email = str(email).strip().lower()
        if not is_valid_email(email):
            errors.append("A valid email address is required")
    if errors:
        raise ValidationError(errors)
    if full_name is None and email is None:
        raise ValidationError("No valid fields to update")

    if email and email != user.email:
        taken = s.scalars(select(User.id).where(func.lower(User.email) == email, User.id != user.id)).first()
        if taken:
            raise ConflictError("Email address is already in use")
        user.email = email
    if full_name:
        user.full_name = full_name
    record_event(s, actor=user, action="auth.profile_update", entity_type="User", entity_id=str(user.id), metadata={"email": user.email, "fullName": user.full_name})
    s.commit()
    return success({"user": user.to_dict()}, "Profile updated successfully")


@bp.post("/change-password")
@require_auth
def change_password():
    s = db_session()
    user = current_user()
    data = request_payload()
    current_pw = str(data.get("currentPassword") or "")
    new_pw = str(data.get("newPassword") or "")
    confirm_pw = str(data.get("confirmPassword") or "")

    if not current_pw or not new_pw or not confirm_pw:
        raise ValidationError("Current password, new password and confirmation are required")
    if new_pw != confirm_pw:
        raise ValidationError("New password and confirmation do not match")
    if not verify_password(user.password_hash, current_pw):
        record_event(s, actor=user, action="auth.password_change_failed", entity_type="User", entity_id=str(user.id), reason="Wrong current password")
        s.commit()
        raise AuthenticationError("Current password is incorrect")
    problems = password_problems(new_pw)
    if problems:
        raise ValidationError(problems)
    if new_pw == current_pw:
        raise ValidationError("New password must be different from the current password")

    user.password_hash = hash_password(new_pw)
    revoked = _revoke_other_sessions(s, user, keep_id=g.current_session.id)
    record_event(s, actor=user, action="auth.password_change", entity_type="User", entity_id=str(user.id), metadata={"revokedSessions": revoked})
    s.commit()
    return success({"revokedSessions": revoked}, "Password changed successfully")


# ---------- Sessions ----------
@bp.get("/sessions")
@require_auth
def sessions_list():
    s = db_session()
    user = current_user()
    rows = s.scalars(
        select(UserSession)
        .where(UserSession.user_id == user.id, UserSession.is_active.is_(True), UserSession.expires_at > utcnow())
        .order_by(UserSession.last_activity.desc())
    ).all()
    items = [r.to_dict(g.current_session.id) for r in rows]
    return success({"sessions": items, "count": len(items)}, "Sessions retrieved successfully")


@bp.delete("/sessions/<int:session_id>")
@require_auth
def session_revoke(session_id: int):
    s = db_session()
    user = current_user()
    sess = s.get(UserSession, session_id)
    if not sess:
        raise NotFoundError("Session not found", error="Session Not Found")
    if sess.user_id != user.id:
        raise AuthorizationError("You can only revoke your own sessions")
    sess.is_active = False
    record_event(s, actor=user, action="auth.session_revoke", entity_type="UserSession", entity_id=str(sess.id))
    s.commit()
    return success({"id": sess.id}, "Session revoked successfully")


@bp.delete("/sessions")
@require_auth
def sessions_revoke_others():
    s = db_session()
    user = current_user()
    revoked = _revoke_other_sessions(s, user, keep_id=g.current_session.id)
    record_event(s, actor=user, action="auth.session_revoke_all", entity_type="User", entity_id=str(user.id), metadata={"revoked": revoked})
    s.commit()
    return success({"revokedSessions": revoked}, "Other sessions revoked successfully")


# ---------- Users ----------
@bp.post("/register")
@require_super_admin
def register():
    s = db_session()
    data = request_payload()
    username = str(data.get("username") or "").strip()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    full_name = clean_title(str(data.get("fullName") or data.get("full_name") or ""))
    role = str(data.get("role") or ROLE_ADMIN).strip()

    errors: list[str] = []
    if not is_valid_username(username):
        errors.append("Username must be 3-100 characters: letters, numbers, dots, dashes or underscores")
    if not is_valid_email(email):
        errors.append("A valid email address is required")
    errors.extend(password_problems(password))
    if not full_name or len(full_name) > 255:
        errors.append("Full name must be between 1 and 255 characters")
    if role not in ROLES:
        errors.append(f"Role must be one of: {', '.join(ROLES)}")
    if errors:
        raise ValidationError(errors)

    if s.scalars(select(User.id).where(User.username == username)).first():
        raise ConflictError("Username already exists")
    if s.scalars(select(User.id).where(func.lower(User.email) == email)).first():
        raise ConflictError("Email address is already in use")

    user = User(username=username, email=email, password_hash=hash_password(password), full_name=full_name, role=role)
    s.add(user)
    s.flush()
    record_event(s, actor=current_user(), action="user.create", entity_type="User", entity_id=str(user.id), metadata={"username": username, "role": role})
    s.commit()
    current_app.logger.info("User %s (%s) registered by %s", username, role, current_user().username)
    return success({"user": user.to_dict()}, "User registered successfully", 201)
