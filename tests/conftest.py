"""
tests/conftest.py -- Shared test fixtures for starter kit integration tests.

This module provides:
  - make_stack(): an isolated in-memory database with every store wired up
    and the baseline roles seeded
  - make_user() / session_cookies(): users with roles and ready-made cookies
  - _patch_lifespan(): wires a test stack into app.state, bypassing real startup
  - api_client / web_client: module-scoped TestClients (follow_redirects=False)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any app import: get_settings() is
cached on first call and api/main.py reads it at import time.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import time
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: set before any core/auth import.
os.environ.setdefault("DEBUG", "true")
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="starterkit-test-uploads-")
# Integration tests share one client identity ("unknown"); keep the
# gatekeeper quotas out of their way. Limit behaviour has its own tests.
os.environ["RATE_LIMIT_MAX"] = "100000"
os.environ["AUTH_RATE_LIMIT_MAX"] = "100000"

import pytest
from fastapi.testclient import TestClient

from api.main import build_gatekeeper
from asgi import app
from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_session_token, hash_password
from core.config import get_settings
from db.schema import create_db_engine
from gatekeeper.gate import Gatekeeper
from rbac.seed import seed
from rbac.service import AccessControl
from rbac.store import RBACStore
from uploads.storage import LocalStorage
from uploads.store import FileStore

PASSWORD = "Passw0rdOK"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


@dataclass
class Stack:
    """Everything app.state holds, built against one test database."""

    engine: object
    user_store: UserStore
    audit: AuditLogger
    access: AccessControl
    file_store: FileStore
    storage: LocalStorage
    roles: dict[str, str] = field(default_factory=dict)  # name -> id


def make_stack(db_suffix: str, seeded: bool = True) -> Stack:
    """Create an isolated named shared-memory database and its stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'web').
        seeded:    Run the baseline role/permission seed.
    """
    url = f"sqlite:///file:test_{db_suffix}?mode=memory&cache=shared&uri=true"
    engine = create_db_engine(url)
    audit = AuditLogger(AuditStore(engine))
    access = AccessControl(RBACStore(engine), audit)
    stack = Stack(
        engine=engine,
        user_store=UserStore(engine),
        audit=audit,
        access=access,
        file_store=FileStore(engine),
        storage=LocalStorage(tempfile.mkdtemp(prefix=f"uploads-{db_suffix}-"), get_settings().max_file_size),
    )
    if seeded:
        stack.roles = seed(access).roles
    return stack


def make_user(stack: Stack, name: str, email: str, role: str | None = None, password: str = PASSWORD) -> User:
    uid = stack.user_store.create_user(User(name=name, email=email, hashed_password=hash_password(password)))
    if role is not None:
        stack.access.assign_role(uid, stack.roles[role])
    return stack.user_store.get_by_id(uid)


def session_cookies(stack: Stack, user: User, lifetime: timedelta = timedelta(hours=1)) -> dict[str, str]:
    """Create a sessions row for user and return the matching cookie dict."""
    expires_at = datetime.now(timezone.utc) + lifetime
    session = stack.user_store.create_session(user.id, expires_at, "127.0.0.1", "pytest")
    token = create_session_token(session.id, user.id, expires_at)
    return {get_settings().session_cookie_name: token}


def _patch_lifespan(stack: Stack, gatekeeper: Gatekeeper | None = None):
    """Return an async context manager that replaces the real lifespan.

    The background tasks are long-sleeping coroutines that keep asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = stack.engine
        app.state.user_store = stack.user_store
        app.state.audit = stack.audit
        app.state.access = stack.access
        app.state.file_store = stack.file_store
        app.state.storage = stack.storage
        app.state.oauth = MagicMock()
        app.state.gatekeeper = gatekeeper or build_gatekeeper()
        app.state.started_at = time.monotonic()
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class AppContext:
    client: TestClient
    stack: Stack
    admin: User
    member: User
    admin_cookies: dict[str, str]
    member_cookies: dict[str, str]


def _app_context(db_suffix: str) -> Generator[AppContext, None, None]:
    stack = make_stack(db_suffix)
    admin = make_user(stack, "Test Admin", f"admin@{db_suffix}.example.com", role="admin")
    member = make_user(stack, "Test Member", f"member@{db_suffix}.example.com", role="user")

    app.router.lifespan_context = _patch_lifespan(stack)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppContext(
            client=client,
            stack=stack,
            admin=admin,
            member=member,
            admin_cookies=session_cookies(stack, admin),
            member_cookies=session_cookies(stack, member),
        )

    stack.engine.dispose()


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[AppContext, None, None]:
    """Yield an AppContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    An admin and a plain member are created up front, each with a session
    cookie to pass per request.
    """
    yield from _app_context(f"api_{request.module.__name__.rsplit('.', 1)[-1]}")


@pytest.fixture(scope="module")
def web_client(request: pytest.FixtureRequest) -> Generator[AppContext, None, None]:
    """Yield an AppContext for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 307 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    yield from _app_context(f"web_{request.module.__name__.rsplit('.', 1)[-1]}")
