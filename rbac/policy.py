"""
rbac/policy.py -- The authorization rule, as pure functions.

Every permission check in the project goes through action_satisfies(). The
rule is policy, not data: storage never expands "manage" into CRUD rows, so
changing the rule means changing this file only.

    action_satisfies("manage", "delete")  -> True
    action_satisfies("read", "read")      -> True
    action_satisfies("read", "update")    -> False
"""

from __future__ import annotations

from collections.abc import Iterable

from core.errors import ValidationError
from rbac.models import Permission

CRUD_ACTIONS: tuple[str, ...] = ("create", "read", "update", "delete")
MANAGE = "manage"
ACTIONS: tuple[str, ...] = CRUD_ACTIONS + (MANAGE,)


def action_satisfies(granted: str, requested: str) -> bool:
    """Return True if holding `granted` on a resource allows `requested` on it."""
    return granted == requested or granted == MANAGE


def holds(permissions: Iterable[Permission], resource: str, action: str) -> bool:
    """True iff some permission on `resource` satisfies `action`.

    An empty iterable authorizes nothing (fail-closed).
    """
    return any(p.resource == resource and action_satisfies(p.action, action) for p in permissions)


def permission_name(resource: str, action: str) -> str:
    return f"{resource}.{action}"


def validate_permission(resource: str, action: str) -> None:
    """Raise ValidationError unless (resource, action) is well-formed."""
    if not resource or not resource.strip():
        raise ValidationError("Permission resource must not be empty.")
    if "." in resource:
        raise ValidationError(f"Permission resource may not contain '.': {resource!r}")
    if action not in ACTIONS:
        raise ValidationError(f"Unknown action {action!r}. Expected one of: {', '.join(ACTIONS)}.")


def parse_permission_name(name: str) -> tuple[str, str]:
    """Split "files.create" into ("files", "create"), validating both halves."""
    resource, sep, action = name.rpartition(".")
    if not sep:
        raise ValidationError(f"Permission name must look like 'resource.action', got {name!r}.")
    validate_permission(resource, action)
    return resource, action
