"""
gatekeeper/gate.py -- Per-request gating decision, independent of any framework.

Gatekeeper.evaluate() runs the stages in fixed order and returns a
GateDecision. It touches nothing but the rate-limit store; turning a decision
into a Starlette response is gatekeeper/middleware.py's job.

Stages:
  1. Security headers   -- always part of the decision, whatever the outcome.
  2. Rate limit         -- API paths only; "auth" vs "api" route class.
  3. Public short-cut   -- RouteKind.PUBLIC paths are allowed as-is.
  4. Session presence   -- cookie present => provisionally authenticated.
                           Validity is checked later by the handler that
                           actually loads the session.
  5. Guest-only         -- provisionally authenticated => redirect to dashboard.
  6. Protected          -- anonymous => 401 JSON (API) or login redirect (pages).

The gatekeeper writes no audit entries; it only gates.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlencode

from core.errors import RateLimitError
from gatekeeper.ratelimit import FixedWindowRateLimiter, RateLimitConfig, RateLimitResult, client_identity
from gatekeeper.routes import RouteKind, RouteTable, under_prefix

ALLOW = "allow"
REDIRECT = "redirect"
REJECT = "reject"

ROUTE_CLASS_AUTH = "auth"
ROUTE_CLASS_API = "api"

SECURITY_HEADERS: dict[str, str] = {
    "X-DNS-Prefetch-Control": "on",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' 'unsafe-eval'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: https: blob:",
        "font-src 'self' data:",
        "connect-src 'self' https:",
        "frame-ancestors 'none'",
    ]
)

UNAUTHORIZED_BODY = {"error": "Unauthorized", "message": "Authentication required"}
INTERNAL_ERROR_BODY = {"error": "Internal server error", "message": "An unexpected error occurred."}


@dataclass
class GateDecision:
    action: str  # ALLOW | REDIRECT | REJECT
    headers: dict[str, str] = field(default_factory=dict)
    status_code: int = 200
    location: str | None = None
    body: dict | None = None
    route_kind: RouteKind | None = None
    rate_limit: RateLimitResult | None = None

    @property
    def allowed(self) -> bool:
        return self.action == ALLOW


@dataclass
class GatekeeperConfig:
    session_cookie_name: str = "starter_kit.session_token"
    login_path: str = "/login"
    dashboard_path: str = "/dashboard"
    api_prefix: str = "/api"
    auth_api_prefix: str = "/api/auth"
    auth_limit: RateLimitConfig = RateLimitConfig(max=5, window_ms=60_000, prefix=ROUTE_CLASS_AUTH)
    api_limit: RateLimitConfig = RateLimitConfig(max=100, window_ms=60_000, prefix=ROUTE_CLASS_API)
    content_security_policy: bool = False

    @classmethod
    def from_settings(cls, settings) -> "GatekeeperConfig":
        auth_max, auth_window = settings.auth_rate_limit
        api_max, api_window = settings.api_rate_limit
        return cls(
            session_cookie_name=settings.session_cookie_name,
            login_path=settings.login_path,
            dashboard_path=settings.dashboard_path,
            api_prefix=settings.api_prefix,
            auth_api_prefix=settings.auth_api_prefix,
            auth_limit=RateLimitConfig(max=auth_max, window_ms=auth_window, prefix=ROUTE_CLASS_AUTH),
            api_limit=RateLimitConfig(max=api_max, window_ms=api_window, prefix=ROUTE_CLASS_API),
            content_security_policy=settings.is_production,
        )


class Gatekeeper:
    """Stateless apart from the limiter it was handed.

    Usage:
        gate = Gatekeeper(RouteTable.from_settings(s), FixedWindowRateLimiter(), GatekeeperConfig.from_settings(s))
        decision = gate.evaluate("/dashboard", request.headers, request.cookies)
    """

    def __init__(self, routes: RouteTable, limiter: FixedWindowRateLimiter, config: GatekeeperConfig) -> None:
        self.routes = routes
        self.limiter = limiter
        self.config = config

    def security_headers(self) -> dict[str, str]:
        headers = dict(SECURITY_HEADERS)
        if self.config.content_security_policy:
            headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        return headers

    def route_class(self, path: str) -> str:
        return ROUTE_CLASS_AUTH if under_prefix(path, self.config.auth_api_prefix) else ROUTE_CLASS_API

    def evaluate(self, path: str, headers: Mapping[str, str], cookies: Mapping[str, str]) -> GateDecision:
        out_headers = self.security_headers()
        is_api = under_prefix(path, self.config.api_prefix)

        # Rate limit (API only)
        rate: RateLimitResult | None = None
        if is_api:
            limit = self.config.auth_limit if self.route_class(path) == ROUTE_CLASS_AUTH else self.config.api_limit
            rate = self.limiter.check(client_identity(headers), limit)
            out_headers.update(rate.headers())
            if not rate.success:
                error = RateLimitError(retry_after=rate.retry_after(self.limiter.now()))
                out_headers["Retry-After"] = str(error.retry_after)
                return GateDecision(
                    action=REJECT,
                    status_code=429,
                    headers=out_headers,
                    body=error.body(),
                    rate_limit=rate,
                )

        kind = self.routes.classify(path)
        if kind is RouteKind.PUBLIC:
            return GateDecision(action=ALLOW, headers=out_headers, route_kind=kind, rate_limit=rate)

        authenticated = bool(cookies.get(self.config.session_cookie_name))

        if kind is RouteKind.GUEST_ONLY and authenticated:
            return GateDecision(
                action=REDIRECT,
                status_code=307,
                location=self.config.dashboard_path,
                headers=out_headers,
                route_kind=kind,
                rate_limit=rate,
            )

        if kind is RouteKind.PROTECTED and not authenticated:
            if is_api:
                return GateDecision(
                    action=REJECT,
                    status_code=401,
                    body=dict(UNAUTHORIZED_BODY),
                    headers=out_headers,
                    route_kind=kind,
                    rate_limit=rate,
                )
            return GateDecision(
                action=REDIRECT,
                status_code=307,
                location=f"{self.config.login_path}?{urlencode({'callbackUrl': path})}",
                headers=out_headers,
                route_kind=kind,
                rate_limit=rate,
            )

        return GateDecision(action=ALLOW, headers=out_headers, route_kind=kind, rate_limit=rate)
