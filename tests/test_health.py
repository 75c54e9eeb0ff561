"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, timestamp, uptime, version, environment, checks
  - checks.database reports 'ok'
  - No authentication required
  - 503 with status 'unhealthy' when the database probe fails
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

from core.config import APP_VERSION


def test_health_returns_200_with_checks(api_client):
    """Health endpoint returns 200 with every documented field."""
    resp = api_client.client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == APP_VERSION
    assert data["environment"]
    assert data["uptime"] >= 0
    assert data["timestamp"].endswith("+00:00")
    assert data["checks"] == {"database": "ok"}


def test_health_no_auth_required(api_client):
    """Health endpoint is public in the route table: no cookie, no redirect."""
    resp = api_client.client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_reports_database_failure(api_client, monkeypatch):
    """A failing database probe turns the response into a 503."""

    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(api_client.stack.user_store, "ping", broken_ping)
    resp = api_client.client.get("/api/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "unhealthy"
    assert data["checks"] == {"database": "error"}
