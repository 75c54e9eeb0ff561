"""
web/routes.py -- Jinja2 template routes for the starter kit web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same stores, audit log, access control) but return HTML instead of
JSON.

The gatekeeper has already redirected anonymous visitors away from protected
pages and signed-in visitors away from guest-only ones, using only the
presence of the session cookie. Protected pages here validate the session for
real; a stale cookie gets cleared and the visitor is sent to /login.

Routes:
  GET  /                  -- landing page (public)
  GET  /login             -- sign-in form (guest only)
  POST /login             -- handle password sign-in, honouring callbackUrl
  GET  /register          -- sign-up form (guest only)
  POST /register          -- create account, sign in, go to dashboard
  GET  /forgot-password   -- password help page (guest only)
  POST /logout            -- revoke session, redirect /login
  GET  /dashboard         -- roles and permissions overview (protected)
  GET  /profile           -- account details (protected)
  GET  /settings          -- settings overview (protected)
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from audit.logger import FAILURE, client_info
from auth.dependencies import close_session, get_session, open_session, register_user
from auth.models import SessionContext
from auth.oauth import get_enabled_providers
from auth.store import UserStore
from auth.tokens import authenticate_user, check_password_strength, clear_session_cookie, hash_password
from core.config import get_settings
from core.errors import ValidationError

logger = logging.getLogger("starterkit.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_settings = get_settings()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "oauth_failed": "OAuth sign-in failed. Please try again.",
    "session_expired": "Your session has expired. Please sign in again.",
}


def _safe_callback(url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    /login?callbackUrl=https://attacker.com and /login?callbackUrl=//attacker.com
    would both send the user off-site after sign-in.
    """
    if url and url.startswith("/") and not url.startswith("//") and "\\" not in url:
        return url
    return _settings.dashboard_path


def _require_session(request: Request) -> tuple[Optional[SessionContext], Optional[RedirectResponse]]:
    """Load the session for a protected page.

    Returns (ctx, None) when valid, or (None, redirect) where the redirect
    goes to /login with a callbackUrl and clears the stale cookie. Clearing
    it matters: with the cookie still set, the gatekeeper would bounce
    /login straight back to the dashboard.

        ctx, redirect = _require_session(request)
        if redirect:
            return redirect
    """
    ctx = get_session(request)
    if ctx is not None:
        return ctx, None
    query = urlencode({"callbackUrl": request.url.path, "error": "session_expired"})
    resp = RedirectResponse(f"{_settings.login_path}?{query}", status_code=302)
    clear_session_cookie(resp)
    return None, resp


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "index.html", {"app_name": _settings.app_name})


# ---------------------------------------------------------------------------
# Guest-only pages
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the sign-in form with OAuth buttons."""
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": error_msg,
            "providers": get_enabled_providers(),
            "callback_url": _safe_callback(request.query_params.get("callbackUrl")),
        },
    )


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    remember_me: bool = Form(default=False),
    callback_url: str = Form(default="", alias="callbackUrl"),
) -> RedirectResponse:
    """Handle the sign-in form. Failure goes back to /login with the callback preserved."""
    user_store: UserStore = request.app.state.user_store
    target = _safe_callback(callback_url)
    user = authenticate_user(user_store, email, password)
    if user is None:
        request.app.state.audit.record(
            "USER_LOGIN",
            "user",
            status=FAILURE,
            details={"email": email.strip().lower(), "method": "password"},
            client=client_info(request),
        )
        query = urlencode({"error": "bad_credentials", "callbackUrl": target})
        return RedirectResponse(f"{_settings.login_path}?{query}", status_code=302)

    resp = RedirectResponse(target, status_code=302)
    open_session(request, resp, user, remember=remember_me)
    request.app.state.audit.record(
        "USER_LOGIN", "user", user_id=user.id, resource_id=user.id, details={"method": "password"}, client=client_info(request)
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "register.html", {})


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
):
    """Create an account from the form. Validation errors re-render the form."""

    def _fail(message: str) -> HTMLResponse:
        return templates.TemplateResponse(
            request, "register.html", {"error_msg": message, "name": name, "email": email}, status_code=400
        )

    name = name.strip()
    if not 2 <= len(name) <= 100:
        return _fail("Name must be between 2 and 100 characters.")
    if "@" not in email:
        return _fail("Invalid email address.")
    if password != confirm_password:
        return _fail("Passwords do not match.")
    try:
        check_password_strength(password)
    except ValueError as exc:
        return _fail(f"{exc}.")

    try:
        user = register_user(request, name, email, hash_password(password))
    except ValidationError as exc:
        return _fail(exc.message)

    resp = RedirectResponse(_settings.dashboard_path, status_code=302)
    open_session(request, resp, user)
    return resp


@router.get("/forgot-password", response_class=HTMLResponse)
def forgot_password(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "forgot_password.html", {})


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Revoke the session and redirect to the sign-in page."""
    resp = RedirectResponse(_settings.login_path, status_code=302)
    ctx = close_session(request, resp)
    if ctx is not None:
        request.app.state.audit.record(
            "USER_LOGOUT", "user", user_id=ctx.user.id, resource_id=ctx.user.id, client=client_info(request)
        )
    return resp


# ---------------------------------------------------------------------------
# Protected pages
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    ctx, redirect = _require_session(request)
    if redirect:
        return redirect
    access = request.app.state.access
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "user": ctx.user,
            "roles": sorted(r.name for r in access.roles_for_user(ctx.user.id)),
            "permissions": sorted(p.name for p in access.resolve_permissions(ctx.user.id)),
        },
    )


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    ctx, redirect = _require_session(request)
    if redirect:
        return redirect
    accounts = request.app.state.user_store.list_accounts(ctx.user.id)
    return templates.TemplateResponse(request, "profile.html", {"user": ctx.user, "accounts": accounts})


@router.get("/settings", response_class=HTMLResponse)
def settings_page(request: Request) -> HTMLResponse:
    ctx, redirect = _require_session(request)
    if redirect:
        return redirect
    return templates.TemplateResponse(
        request,
        "settings.html",
        {"user": ctx.user, "session": ctx.session, "has_password": ctx.user.hashed_password is not None},
    )
