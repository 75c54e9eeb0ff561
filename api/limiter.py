"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/files.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

The key function reuses the gatekeeper's client identity (X-Forwarded-For,
then X-Real-IP, then "unknown") so both limiters bucket clients the same way.
"""

from slowapi import Limiter
from starlette.requests import Request

from gatekeeper.ratelimit import client_identity


def client_key(request: Request) -> str:
    return client_identity(request.headers)


limiter = Limiter(key_func=client_key, storage_uri="memory://")
