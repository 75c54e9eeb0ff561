"""
tests/test_route_table.py -- Unit tests for gatekeeper route classification.
"""

from __future__ import annotations

import pytest

from core.config import Settings
from gatekeeper.routes import RouteKind, RouteRule, RouteTable, under_prefix


@pytest.fixture(scope="module")
def table() -> RouteTable:
    return RouteTable.from_settings(Settings(secret_key="x" * 32))


class TestDefaultTable:
    @pytest.mark.parametrize(
        "path",
        ["/", "/api/health", "/api/auth/sign-in", "/api/auth/callback/github", "/reset-password", "/static/app.css"],
    )
    def test_public(self, table: RouteTable, path: str) -> None:
        assert table.classify(path) is RouteKind.PUBLIC

    @pytest.mark.parametrize("path", ["/login", "/register", "/forgot-password"])
    def test_guest_only(self, table: RouteTable, path: str) -> None:
        assert table.classify(path) is RouteKind.GUEST_ONLY

    @pytest.mark.parametrize(
        "path",
        ["/dashboard", "/dashboard/reports", "/profile", "/settings", "/api/user/me", "/api/admin/roles", "/api"],
    )
    def test_protected(self, table: RouteTable, path: str) -> None:
        assert table.classify(path) is RouteKind.PROTECTED

    def test_root_is_exact_only(self, table: RouteTable) -> None:
        """"/" being public must not make every path public."""
        assert table.classify("/dashboard") is RouteKind.PROTECTED

    def test_unlisted_path_defaults_to_public(self, table: RouteTable) -> None:
        assert table.classify("/about") is RouteKind.PUBLIC


class TestMatching:
    def test_segment_boundary(self) -> None:
        rule = RouteRule("/api", RouteKind.PROTECTED)
        assert rule.matches("/api")
        assert rule.matches("/api/files")
        assert not rule.matches("/apiary")

    def test_exact_rule(self) -> None:
        rule = RouteRule("/", RouteKind.PUBLIC, exact=True)
        assert rule.matches("/")
        assert not rule.matches("/x")

    def test_first_matching_rule_wins(self) -> None:
        table = RouteTable(
            [
                RouteRule("/api/auth", RouteKind.PUBLIC),
                RouteRule("/api", RouteKind.PROTECTED),
            ]
        )
        assert table.classify("/api/auth/session") is RouteKind.PUBLIC
        assert table.classify("/api/files") is RouteKind.PROTECTED

    def test_from_lists_exact_marker(self) -> None:
        table = RouteTable.from_lists(public=["=/"], guest_only=[], protected=["/app"])
        assert table.classify("/") is RouteKind.PUBLIC
        assert table.classify("/app/x") is RouteKind.PROTECTED

    def test_under_prefix(self) -> None:
        assert under_prefix("/api/auth/sign-in", "/api/auth")
        assert not under_prefix("/api/authz", "/api/auth")
