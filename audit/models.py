"""
audit/models.py -- Domain dataclasses for the audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AuditLogEntry:
    """Immutable record of a security-relevant action.

    Entries are never updated or deleted -- only inserted. user_id is None
    for system actions (seed, CLI bootstrap). details is a free-form JSON
    object.

    id is None before the record is written to the database.
    """

    action: str  # verb, e.g. "ROLE_ASSIGN", "USER_LOGIN"
    resource: str  # resource type, e.g. "role", "user", "file"
    status: str = "success"  # "success" | "failure"
    user_id: str | None = None
    resource_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict = field(default_factory=dict)
    created_at: str | None = None
    id: int | None = None


@dataclass
class ClientInfo:
    """Network metadata copied from the request onto audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None
