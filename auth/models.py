"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and routes do the work.

Layer rule: no imports from api/, web/, rbac/, audit/, uploads/, or gatekeeper/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A Subject: an identity that can sign in and hold roles.

    hashed_password is None for OAuth-only users (they have no local password).
    The hash itself is opaque to everything except auth/tokens.py.
    """

    name: str
    email: str
    id: str | None = None
    email_verified: bool = False
    image: str | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """A server-side session row. The cookie carries a signed token naming it.

    Deleting the row revokes the session even if the signed token has not
    expired yet.
    """

    user_id: str
    expires_at: str  # ISO 8601
    id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str | None = None


@dataclass
class Account:
    """Links a User to a credential provider.

    provider_id is "credential" for email/password users (account_id is the
    email) or the OAuth provider name, with account_id holding the provider's
    stable subject id.
    """

    user_id: str
    provider_id: str
    account_id: str
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SessionContext:
    """What the gatekeeper's downstream handlers consume: the session and its user."""

    session: Session
    user: User
