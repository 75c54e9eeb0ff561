"""
core/errors.py -- Typed error taxonomy shared by every layer.

Domain code (rbac/, auth/, uploads/) raises these; api/main.py owns the single
exception handler that turns them into JSON responses. Each class carries the
HTTP status and the short title used as the "error" field of the response body,
so route handlers never build error envelopes by hand.

The gatekeeper does not raise any of these past the request boundary -- it
builds its 401/429 responses directly.
"""

from __future__ import annotations

import math


class AppError(Exception):
    """Base class for expected, client-facing failures."""

    status_code: int = 500
    title: str = "Internal error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.title)
        self.message = message or self.title


class ValidationError(AppError):
    """Malformed input to a core operation (bad action, empty name, weak password)."""

    status_code = 400
    title = "Validation error"


class UnauthorizedError(AppError):
    """No session, or a session that no longer validates."""

    status_code = 401
    title = "Unauthorized"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(AppError):
    """Authenticated, but the subject lacks the required permission."""

    status_code = 403
    title = "Forbidden"


class NotFoundError(AppError):
    """A referenced entity (user, role, permission, file) does not exist."""

    status_code = 404
    title = "Not found"



class RateLimitError(AppError):
    """Quota exceeded. retry_after is whole seconds, ceiling-rounded."""

    status_code = 429
    title = "Too many requests"

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: float = 60) -> None:
        super().__init__(message)
        self.retry_after = max(0, math.ceil(retry_after))

    def body(self) -> dict:
        return {"error": self.title, "message": self.message, "retryAfter": self.retry_after}
