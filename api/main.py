"""
api/main.py -- FastAPI application entry point for the starter kit.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost, as a request sees it):
  1. log_requests          -- method, path, status, latency, client
  2. gatekeeper            -- security headers, fixed-window limits, route gating
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins
  5. SlowAPIMiddleware     -- enforces per-route limits from api.limiter
  6. SessionMiddleware     -- authlib's OAuth state storage

Lifespan handles startup (engine, stores, seed, gatekeeper, background loops)
and shutdown (cancel loops, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.files import router as files_router
from api.routes.user import router as user_router
from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.oauth import oauth as oauth_client
from auth.store import UserStore
from core.config import APP_VERSION, get_settings
from core.errors import AppError, RateLimitError
from db.schema import create_db_engine
from gatekeeper.gate import Gatekeeper, GatekeeperConfig
from gatekeeper.middleware import gatekeeper_middleware, sweep_loop
from gatekeeper.ratelimit import FixedWindowRateLimiter
from gatekeeper.routes import RouteTable
from rbac.seed import seed
from rbac.service import AccessControl
from rbac.store import RBACStore
from uploads.storage import LocalStorage
from uploads.store import FileStore

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("starterkit.api")

# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------


async def _session_purge_loop(app: FastAPI) -> None:
    """Delete expired session rows every hour.

    get_session() already rejects expired rows on read; this only keeps the
    table from growing without bound.
    """
    while True:
        await asyncio.sleep(60 * 60)
        removed = app.state.user_store.purge_expired_sessions()
        if removed:
            logger.info("Purged %d expired sessions", removed)


def build_gatekeeper() -> Gatekeeper:
    """Gatekeeper wired from settings with a fresh in-memory limiter."""
    return Gatekeeper(RouteTable.from_settings(settings), FixedWindowRateLimiter(), GatekeeperConfig.from_settings(settings))


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- every store shares it.
      2. Audit before access control -- AccessControl records through it.
      3. Seed -- the default role must exist before the first sign-up.
      4. Gatekeeper, then the loops that reference app.state.
    """
    logger.info("Starter kit API starting up (environment=%s)", settings.environment)
    engine = create_db_engine(settings.database_url)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.audit = AuditLogger(AuditStore(engine))
    app.state.access = AccessControl(RBACStore(engine), app.state.audit)
    app.state.file_store = FileStore(engine)
    app.state.storage = LocalStorage(settings.upload_dir, settings.max_file_size)
    app.state.oauth = oauth_client
    seed(app.state.access)
    app.state.gatekeeper = build_gatekeeper()
    app.state.started_at = time.monotonic()
    app.state.sweep_task = asyncio.create_task(sweep_loop(app.state.gatekeeper, settings.rate_limit_sweep_seconds))
    app.state.purge_task = asyncio.create_task(_session_purge_loop(app))

    yield

    app.state.sweep_task.cancel()
    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("Starter kit API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=f"{settings.app_name} API",
    description="Authentication, role-based access control, audit logging and file uploads.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() and @app.middleware both insert at the outside of the
# stack, so the last one registered is the first one a request meets.
# ---------------------------------------------------------------------------

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback.
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, https_only=settings.secure_cookies)

app.add_middleware(SlowAPIMiddleware)

# Registered before CORS so CORS wraps it: preflights never reach the gate.
app.middleware("http")(gatekeeper_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix=settings.api_prefix, tags=["Auth"])
app.include_router(user_router, prefix=settings.api_prefix, tags=["User"])
app.include_router(admin_router, prefix=settings.api_prefix, tags=["Admin"])
app.include_router(files_router, prefix=settings.api_prefix, tags=["Files"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error", "message"} envelope so API clients
# can parse errors uniformly without inspecting status codes.
# ---------------------------------------------------------------------------


def _error(status_code: int, error: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, RateLimitError):
        return JSONResponse(status_code=429, content=exc.body(), headers={"Retry-After": str(exc.retry_after)})
    return _error(exc.status_code, exc.title, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Per-route slowapi limits render like the gatekeeper's 429.

    Retry-After is the length of the limit's window, the longest a client
    can have to wait.
    """
    retry_after = getattr(exc, "retry_after", 0) or exc.limit.limit.get_expiry()
    return await app_error_handler(request, RateLimitError(retry_after=retry_after))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one {field, message} entry per failed constraint."""
    details = [
        FieldError(field=".".join(str(part) for part in err["loc"] if part != "body"), message=err["msg"])
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Validation error",
            message="Request validation failed.",
            details=details,
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    try:
        title = HTTPStatus(exc.status_code).phrase
    except ValueError:
        title = "Error"
    return _error(exc.status_code, title, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. Public in the route table.
# ---------------------------------------------------------------------------


@app.get(f"{settings.api_prefix}/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Liveness plus a database probe. 503 when the database is unreachable."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        database = "error"

    healthy = database == "ok"
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        version=APP_VERSION,
        environment=settings.environment,
        checks={"database": database},
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
