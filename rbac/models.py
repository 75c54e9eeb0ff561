"""
rbac/models.py -- Domain dataclasses for the access control model.

Pure data containers. The one piece of policy (manage subsumes CRUD) lives in
rbac/policy.py, not here.

Permission is frozen so resolved permission sets can be real Python sets.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Role:
    """Named bundle of permissions (admin, moderator, user, ...)."""

    name: str
    id: str | None = None
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Permission:
    """Atomic (resource, action) capability. name is "<resource>.<action>"."""

    name: str
    resource: str
    action: str  # "create" | "read" | "update" | "delete" | "manage"
    id: str | None = None
    description: str | None = None
    created_at: str | None = None


@dataclass
class RoleAssignment:
    """One row of user_roles. assigned_by is None for system/seed assignments."""

    user_id: str
    role_id: str
    assigned_at: str | None = None
    assigned_by: str | None = None


@dataclass
class RolePermission:
    """One row of role_permissions."""

    role_id: str
    permission_id: str
    created_at: str | None = None
