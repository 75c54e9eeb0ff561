"""
auth/dependencies.py -- FastAPI Depends() helpers for sessions and permissions.

get_session() is the soft variant: it resolves the session cookie to a
SessionContext or returns None, and never raises. This is the real validity
check the gatekeeper defers to -- the gatekeeper only looks at whether the
cookie is present.

get_current_session() wraps it and raises UnauthorizedError.
require_permission(resource, action) builds a dependency that also checks the
subject's permissions through AccessControl and raises ForbiddenError,
recording an ACCESS_DENIED failure in the audit log.

open_session()/close_session() and register_user() are plain helpers, not
dependencies; the API and web routers both call them.

Layer rule: no imports from web/, uploads/, or gatekeeper/. auth/dependencies.py
may import from fastapi because it is part of the dependency injection system,
and from rbac/ + audit/ because permission checks are recorded.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from audit.logger import FAILURE, AuditLogger, client_info
from auth.models import SessionContext, User
from auth.store import UserStore
from auth.tokens import (
    clear_session_cookie,
    create_session_token,
    decode_session_token,
    seconds_until,
    set_session_cookie,
)
from core.config import get_settings
from core.errors import ForbiddenError, UnauthorizedError, ValidationError
from rbac.seed import DEFAULT_ROLE
from rbac.service import AccessControl

logger = logging.getLogger("starterkit.auth")

# Short sessions for sign-ins without "remember me".
_SHORT_SESSION_SECONDS = 60 * 60 * 24


def get_session(request: Request) -> SessionContext | None:
    """Resolve the session cookie. Returns None for a missing, forged, expired or revoked session."""
    settings = get_settings()
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    payload = decode_session_token(token)
    if payload is None:
        return None

    user_store: UserStore = request.app.state.user_store
    session = user_store.get_session(payload["sid"])
    if session is None or session.user_id != payload["sub"]:
        return None
    if datetime.fromisoformat(session.expires_at) <= datetime.now(timezone.utc):
        user_store.delete_session(session.id)
        return None
    user = user_store.get_by_id(session.user_id)
    if user is None:
        return None
    return SessionContext(session=session, user=user)


def get_current_session(request: Request) -> SessionContext:
    """Require a valid session. Raises UnauthorizedError otherwise."""
    ctx = get_session(request)
    if ctx is None:
        raise UnauthorizedError()
    return ctx


def get_current_user(ctx: SessionContext = Depends(get_current_session)) -> User:
    return ctx.user


def require_permission(resource: str, action: str):
    """Build a dependency that requires (resource, action) for the current user.

    Usage:
        @router.get("/admin/roles")
        def list_roles(ctx: SessionContext = Depends(require_permission("roles", "read"))): ...
    """

    def dependency(request: Request, ctx: SessionContext = Depends(get_current_session)) -> SessionContext:
        access: AccessControl = request.app.state.access
        if not access.authorize(ctx.user.id, resource, action):
            audit: AuditLogger = request.app.state.audit
            audit.record(
                "ACCESS_DENIED",
                resource,
                user_id=ctx.user.id,
                status=FAILURE,
                details={"action": action, "path": request.url.path},
                client=client_info(request),
            )
            raise ForbiddenError(f"Missing permission {resource}.{action}.")
        return ctx

    return dependency


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


def open_session(request: Request, response: Response, user: User, remember: bool = True) -> str:
    """Create a sessions row for user, set the cookie on response, return the session id."""
    settings = get_settings()
    lifetime = settings.session_max_age_seconds if remember else min(_SHORT_SESSION_SECONDS, settings.session_max_age_seconds)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=lifetime)
    client = client_info(request)
    user_store: UserStore = request.app.state.user_store
    session = user_store.create_session(user.id, expires_at, client.ip_address, client.user_agent)
    token = create_session_token(session.id, user.id, expires_at)
    set_session_cookie(response, token, seconds_until(expires_at))
    return session.id


def close_session(request: Request, response: Response) -> SessionContext | None:
    """Delete the current session row (if any) and clear the cookie."""
    ctx = get_session(request)
    if ctx is not None:
        request.app.state.user_store.delete_session(ctx.session.id)
    clear_session_cookie(response)
    return ctx


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_user(
    request: Request,
    name: str,
    email: str,
    hashed_password: str | None,
    email_verified: bool = False,
    image: str | None = None,
) -> User:
    """Create a user, give it the default role, and record USER_REGISTER.

    Shared by the JSON sign-up endpoint, the HTML register form and the OAuth
    callback so every path into the system ends with the same role state.

    Raises ValidationError if the email is already registered.
    """
    user_store: UserStore = request.app.state.user_store
    access: AccessControl = request.app.state.access
    audit: AuditLogger = request.app.state.audit
    client = client_info(request)

    try:
        user_id = user_store.create_user(
            User(name=name, email=email, hashed_password=hashed_password, email_verified=email_verified, image=image)
        )
    except IntegrityError as exc:
        audit.record(
            "USER_REGISTER",
            "user",
            status=FAILURE,
            details={"email": email.strip().lower(), "reason": "email already registered"},
            client=client,
        )
        raise ValidationError("An account with this email already exists.") from exc

    role = access.get_role_by_name(DEFAULT_ROLE)
    if role is not None:
        access.assign_role(user_id, role.id, client=client)
    else:
        logger.warning("Default role %r missing; user %s has no roles. Run the seed.", DEFAULT_ROLE, user_id)

    audit.record("USER_REGISTER", "user", user_id=user_id, resource_id=user_id, client=client)
    return user_store.get_by_id(user_id)
