"""
gatekeeper/middleware.py -- Starlette glue for Gatekeeper.evaluate().

Registered in api/main.py with:
    app.middleware("http")(gatekeeper_middleware)

The Gatekeeper instance lives on app.state.gatekeeper (created in the
lifespan), so tests can swap in one with a fake clock or tighter limits
without re-importing the app.

Terminal decisions (401, 429, redirects) are built here and returned without
calling the downstream app -- no exception ever crosses into route code.
Allowed requests continue, and the security and X-RateLimit-* headers are
stamped onto whatever response comes back, including the generic 500 built
here when a handler raises.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from gatekeeper.gate import INTERNAL_ERROR_BODY, REDIRECT, GateDecision, Gatekeeper

logger = logging.getLogger("starterkit.gatekeeper")


def decision_response(decision: GateDecision) -> Response:
    """Build the terminal response for a non-ALLOW decision."""
    if decision.action == REDIRECT:
        response: Response = RedirectResponse(decision.location, status_code=decision.status_code)
    else:
        response = JSONResponse(status_code=decision.status_code, content=decision.body)
    response.headers.update(decision.headers)
    return response


async def gatekeeper_middleware(request: Request, call_next):
    gate: Gatekeeper = request.app.state.gatekeeper
    decision = gate.evaluate(request.url.path, request.headers, request.cookies)
    if not decision.allowed:
        logger.debug(
            "Gate %s %s -> %s %d",
            request.method,
            request.url.path,
            decision.action,
            decision.status_code,
        )
        return decision_response(decision)

    try:
        response = await call_next(request)
    except Exception:
        # A 500 carries the gate headers like every other response.
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        response = JSONResponse(status_code=500, content=dict(INTERNAL_ERROR_BODY))
    response.headers.update(decision.headers)
    return response


async def sweep_loop(gate: Gatekeeper, interval_seconds: float) -> None:
    """Drop expired rate-limit windows every interval_seconds.

    Runs as a background asyncio task started in the lifespan. Each sweep is a
    short synchronous pass under the store lock. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        removed = gate.limiter.sweep()
        if removed:
            logger.debug("Rate limit sweep removed %d expired keys", removed)
