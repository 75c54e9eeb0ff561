"""
tests/test_gatekeeper.py -- Gatekeeper decisions, directly and through the ASGI stack.

Unit tests call Gatekeeper.evaluate() with a fake clock. Integration tests
swap a tight-quota gatekeeper onto app.state for the duration of one test so
limit behaviour is deterministic regardless of what other tests did.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from gatekeeper.gate import (
    ALLOW,
    CONTENT_SECURITY_POLICY,
    REDIRECT,
    REJECT,
    SECURITY_HEADERS,
    Gatekeeper,
    GatekeeperConfig,
)
from gatekeeper.ratelimit import FixedWindowRateLimiter, RateLimitConfig
from gatekeeper.routes import RouteKind, RouteTable

COOKIE = "starter_kit.session_token"


class FakeClock:
    def __init__(self) -> None:
        self.now_ms = 1_000_000.0

    def __call__(self) -> float:
        return self.now_ms


def make_gate(auth_max: int = 5, api_max: int = 100, csp: bool = False, clock=None) -> Gatekeeper:
    config = GatekeeperConfig(
        session_cookie_name=COOKIE,
        auth_limit=RateLimitConfig(max=auth_max, window_ms=60_000, prefix="auth"),
        api_limit=RateLimitConfig(max=api_max, window_ms=60_000, prefix="api"),
        content_security_policy=csp,
    )
    routes = RouteTable.from_settings(Settings(secret_key="x" * 32))
    return Gatekeeper(routes, FixedWindowRateLimiter(clock=clock or FakeClock()), config)


# ---------------------------------------------------------------------------
# evaluate() -- no framework
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_public_auth_api_is_allowed_without_session(self) -> None:
        decision = make_gate().evaluate("/api/auth/sign-in", {}, {})
        assert decision.action == ALLOW
        assert decision.route_kind is RouteKind.PUBLIC
        assert decision.headers["X-RateLimit-Limit"] == "5"
        assert decision.headers["X-RateLimit-Remaining"] == "4"

    def test_protected_page_redirects_to_login_with_callback(self) -> None:
        decision = make_gate().evaluate("/dashboard", {}, {})
        assert decision.action == REDIRECT
        assert decision.status_code == 307
        assert decision.location == "/login?callbackUrl=%2Fdashboard"

    def test_protected_api_rejects_with_401_body(self) -> None:
        decision = make_gate().evaluate("/api/user/me", {}, {})
        assert decision.action == REJECT
        assert decision.status_code == 401
        assert decision.body == {"error": "Unauthorized", "message": "Authentication required"}

    def test_cookie_presence_is_enough_for_protected(self) -> None:
        """Validity is checked downstream; the gate only looks for the cookie."""
        decision = make_gate().evaluate("/api/user/me", {}, {COOKIE: "anything"})
        assert decision.action == ALLOW

    def test_guest_only_redirects_when_session_present(self) -> None:
        decision = make_gate().evaluate("/login", {}, {COOKIE: "anything"})
        assert decision.action == REDIRECT
        assert decision.location == "/dashboard"

    def test_guest_only_allowed_without_session(self) -> None:
        assert make_gate().evaluate("/register", {}, {}).action == ALLOW

    def test_site_root_is_public(self) -> None:
        assert make_gate().evaluate("/", {}, {}).action == ALLOW

    def test_security_headers_on_every_outcome(self) -> None:
        gate = make_gate()
        for path, cookies in (("/", {}), ("/dashboard", {}), ("/api/files", {}), ("/login", {COOKIE: "x"})):
            headers = gate.evaluate(path, {}, cookies).headers
            for name, value in SECURITY_HEADERS.items():
                assert headers[name] == value
            assert "Content-Security-Policy" not in headers

    def test_csp_only_when_enabled(self) -> None:
        headers = make_gate(csp=True).evaluate("/", {}, {}).headers
        assert headers["Content-Security-Policy"] == CONTENT_SECURITY_POLICY

    def test_auth_class_limit_returns_429(self) -> None:
        gate = make_gate(auth_max=5)
        for _ in range(5):
            assert gate.evaluate("/api/auth/sign-in", {"x-forwarded-for": "1.1.1.1"}, {}).allowed
        decision = gate.evaluate("/api/auth/sign-in", {"x-forwarded-for": "1.1.1.1"}, {})
        assert decision.status_code == 429
        assert decision.headers["Retry-After"] == "60"
        assert decision.body["retryAfter"] == 60
        assert decision.body["error"] == "Too many requests"
        assert decision.headers["X-Frame-Options"] == "SAMEORIGIN"

    def test_auth_and_api_classes_count_separately(self) -> None:
        gate = make_gate(auth_max=1, api_max=1)
        headers = {"x-forwarded-for": "2.2.2.2"}
        assert gate.evaluate("/api/auth/session", headers, {}).allowed
        assert gate.evaluate("/api/health", headers, {}).allowed
        assert gate.evaluate("/api/auth/session", headers, {}).status_code == 429
        assert gate.evaluate("/api/health", headers, {}).status_code == 429

    def test_rate_limit_runs_before_session_check(self) -> None:
        gate = make_gate(api_max=1)
        gate.evaluate("/api/user/me", {}, {})
        assert gate.evaluate("/api/user/me", {}, {}).status_code == 429

    def test_pages_are_not_rate_limited(self) -> None:
        gate = make_gate(api_max=1)
        for _ in range(5):
            decision = gate.evaluate("/dashboard", {}, {})
            assert decision.status_code == 307
            assert "X-RateLimit-Limit" not in decision.headers

    def test_window_reset_readmits_client(self) -> None:
        clock = FakeClock()
        gate = make_gate(auth_max=1, clock=clock)
        gate.evaluate("/api/auth/sign-in", {}, {})
        assert not gate.evaluate("/api/auth/sign-in", {}, {}).allowed
        clock.now_ms += 60_000
        assert gate.evaluate("/api/auth/sign-in", {}, {}).allowed


# ---------------------------------------------------------------------------
# Through the ASGI stack
# ---------------------------------------------------------------------------


@pytest.fixture
def tight_gate(api_client):
    app = api_client.client.app
    original = app.state.gatekeeper
    gate = make_gate(auth_max=2, api_max=3)
    app.state.gatekeeper = gate
    yield gate
    app.state.gatekeeper = original


class TestMiddleware:
    def test_page_redirect_has_location_and_headers(self, api_client) -> None:
        resp = api_client.client.get("/dashboard")
        assert resp.status_code == 307
        assert resp.headers["location"] == "/login?callbackUrl=%2Fdashboard"
        assert resp.headers["x-content-type-options"] == "nosniff"

    def test_signed_in_visitor_bounced_from_login(self, api_client) -> None:
        resp = api_client.client.get("/login", cookies=api_client.member_cookies)
        assert resp.status_code == 307
        assert resp.headers["location"] == "/dashboard"

    def test_api_without_session_gets_401_json(self, api_client) -> None:
        resp = api_client.client.get("/api/user/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized", "message": "Authentication required"}
        assert resp.headers["x-frame-options"] == "SAMEORIGIN"
        assert "x-ratelimit-limit" in resp.headers

    def test_auth_endpoint_is_not_redirected(self, api_client) -> None:
        """/api/auth/* is public: a failed sign-in is the handler's 401, not a gate redirect."""
        resp = api_client.client.post("/api/auth/sign-in", json={"email": "nobody@example.com", "password": "x"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password."

    def test_allowed_response_carries_gate_headers(self, api_client) -> None:
        resp = api_client.client.get("/api/health")
        assert resp.status_code == 200
        assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        assert "x-ratelimit-remaining" in resp.headers

    def test_auth_limit_through_stack(self, api_client, tight_gate) -> None:
        client: TestClient = api_client.client
        body = {"email": "nobody@example.com", "password": "wrong"}
        first = client.post("/api/auth/sign-in", json=body)
        second = client.post("/api/auth/sign-in", json=body)
        third = client.post("/api/auth/sign-in", json=body)

        assert first.status_code == 401
        assert first.headers["x-ratelimit-remaining"] == "1"
        assert second.headers["x-ratelimit-remaining"] == "0"
        assert third.status_code == 429
        assert third.headers["retry-after"] == "60"
        assert third.json() == {
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
            "retryAfter": 60,
        }
        assert third.headers["x-dns-prefetch-control"] == "on"

    def test_forwarded_for_gets_its_own_bucket(self, api_client, tight_gate) -> None:
        client: TestClient = api_client.client
        for _ in range(3):
            client.get("/api/health", headers={"X-Forwarded-For": "198.51.100.1"})
        assert client.get("/api/health", headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 429
        assert client.get("/api/health", headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200

    def test_cors_preflight_reaches_cors_layer(self, api_client) -> None:
        """Preflights carry no cookies; they must be answered before the session gate."""
        resp = api_client.client.options(
            "/api/user/me",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert resp.headers["access-control-allow-credentials"] == "true"

    def test_gate_rejection_carries_cors_headers(self, api_client) -> None:
        resp = api_client.client.get("/api/user/me", headers={"Origin": "http://localhost:3000"})
        assert resp.status_code == 401
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_handler_crash_keeps_security_headers(self, api_client, monkeypatch) -> None:
        def explode(user_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(api_client.stack.access, "resolve_permissions", explode)
        resp = api_client.client.get("/api/user/me", cookies=api_client.member_cookies)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "message": "An unexpected error occurred."}
        assert "boom" not in resp.text
        assert resp.headers["x-frame-options"] == "SAMEORIGIN"
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert "x-ratelimit-limit" in resp.headers
