"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/sign-up              -- create account; sets session cookie
  POST /api/auth/sign-in              -- password sign-in; sets session cookie
  POST /api/auth/sign-out             -- revoke session row, clear cookie
  GET  /api/auth/session              -- current session or null
  GET  /api/auth/providers            -- list enabled OAuth providers
  GET  /api/auth/oauth/{provider}     -- redirect to the provider
  GET  /api/auth/callback/{provider}  -- provider callback; sets session cookie

All of /api/auth is public in the route table and counted against the tight
"auth" rate-limit class by the gatekeeper, so no per-route limiter here.

Security:
  authenticate_user() provides timing equalization -- use it, never inline.
  Wrong email and wrong password return the same message.
  Cache-Control: no-store on every response that sets a session cookie.
"""

from __future__ import annotations

import logging
from typing import Optional

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError

from api.models import (
    MessageResponse,
    OAuthProviderInfo,
    SessionInfo,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    UserResponse,
)
from audit.logger import FAILURE, AuditLogger, client_info
from auth.dependencies import close_session, get_session, open_session, register_user
from auth.models import SessionContext, User
from auth.oauth import get_enabled_providers, get_oauth_user_info
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password
from core.config import get_settings
from core.errors import UnauthorizedError

logger = logging.getLogger("starterkit.api.auth")

router = APIRouter()


def _session_response(request: Request, user: User, session_id: str) -> SessionResponse:
    session = request.app.state.user_store.get_session(session_id)
    return SessionResponse(
        user=UserResponse.from_user(user),
        session=SessionInfo(id=session.id, expires_at=session.expires_at),
    )


# ---------------------------------------------------------------------------
# Password auth
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=SessionResponse, status_code=201)
def sign_up(request: Request, response: Response, body: SignUpRequest) -> SessionResponse:
    """Create an account with the default role and sign it in."""
    user = register_user(request, body.name, body.email, hash_password(body.password))
    session_id = open_session(request, response, user)
    response.headers["Cache-Control"] = "no-store"
    return _session_response(request, user, session_id)


@router.post("/auth/sign-in", response_model=SessionResponse)
def sign_in(request: Request, response: Response, body: SignInRequest) -> SessionResponse:
    """Authenticate with email and password; set the session cookie."""
    user_store: UserStore = request.app.state.user_store
    audit: AuditLogger = request.app.state.audit
    client = client_info(request)

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        audit.record(
            "USER_LOGIN",
            "user",
            status=FAILURE,
            details={"email": body.email.lower(), "method": "password"},
            client=client,
        )
        raise UnauthorizedError("Invalid email or password.")

    session_id = open_session(request, response, user, remember=body.remember_me)
    audit.record(
        "USER_LOGIN", "user", user_id=user.id, resource_id=user.id, details={"method": "password"}, client=client
    )
    response.headers["Cache-Control"] = "no-store"
    return _session_response(request, user, session_id)


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(request: Request, response: Response) -> MessageResponse:
    """Delete the session row and clear the cookie. Succeeds even without a session."""
    ctx = close_session(request, response)
    if ctx is not None:
        request.app.state.audit.record(
            "USER_LOGOUT", "user", user_id=ctx.user.id, resource_id=ctx.user.id, client=client_info(request)
        )
    return MessageResponse(message="Signed out.")


@router.get("/auth/session", response_model=Optional[SessionResponse])
def current_session(ctx: Optional[SessionContext] = Depends(get_session)) -> Optional[SessionResponse]:
    """Return the current session, or null when there is none."""
    if ctx is None:
        return None
    return SessionResponse(
        user=UserResponse.from_user(ctx.user),
        session=SessionInfo(id=ctx.session.id, expires_at=ctx.session.expires_at),
    )


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return configured OAuth providers. Empty list if none are configured."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/oauth/{provider}")
async def oauth_redirect(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    The provider name is checked against the enabled list first so a spoofed
    name never reaches the registry.
    """
    settings = get_settings()
    enabled = {p["name"] for p in get_enabled_providers()}
    if provider not in enabled:
        return RedirectResponse(f"{settings.login_path}?error=oauth_failed", status_code=302)

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/callback/{provider}", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Handle the provider callback and start a session.

    Flow:
      1. Exchange the code for a token (authlib checks state via the session).
      2. Extract a verified email and stable subject id.
      3. Known (provider, subject) -> that user.
      4. Else known email -> link the provider identity to that user.
      5. Else create a new user with the default role.
      6. Open a session and redirect to the dashboard.
    """
    settings = get_settings()
    failed = RedirectResponse(f"{settings.login_path}?error=oauth_failed", status_code=302)
    enabled = {p["name"] for p in get_enabled_providers()}
    if provider not in enabled:
        return failed

    user_store: UserStore = request.app.state.user_store
    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return failed

    try:
        info = await get_oauth_user_info(client, provider, token)
    except ValueError:
        logger.warning("OAuth sign-in rejected: unverified or missing email from %r", provider)
        return failed

    user: User | None = None
    account = user_store.get_account(provider, info["subject"])
    if account is not None:
        user = user_store.get_by_id(account.user_id)
    if user is None:
        user = user_store.get_by_email(info["email"])
        if user is None:
            user = register_user(
                request, info["name"], info["email"], None, email_verified=True, image=info["image"]
            )
        try:
            user_store.link_account(user.id, provider, info["subject"])
        except IntegrityError:
            logger.warning("OAuth identity %s/%s already linked", provider, info["subject"])

    resp = RedirectResponse(settings.dashboard_path, status_code=302)
    open_session(request, resp, user)
    request.app.state.audit.record(
        "USER_LOGIN", "user", user_id=user.id, resource_id=user.id, details={"method": provider}, client=client_info(request)
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
