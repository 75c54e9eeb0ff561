"""
rbac/seed.py -- Baseline permission catalogue and roles.

The catalogue below is this project's canonical RBAC rule set. seed() is safe
to re-run: permissions and roles are matched by their unique names, existing
rows get their description refreshed through AccessControl.update_role() and
update_permission() (audited like every other change), and grants go through
the idempotent AccessControl.grant_permission().

Roles:
  admin      -- every permission in the catalogue
  moderator  -- content management plus read-only users/audit/dashboard/files
  user       -- read content, upload and list own files, dashboard, settings

Run with:  python main.py seed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rbac.models import Permission, Role
from rbac.policy import permission_name
from rbac.service import AccessControl

logger = logging.getLogger("starterkit.rbac.seed")

# resource -> {action: description}
PERMISSION_CATALOGUE: dict[str, dict[str, str]] = {
    "users": {
        "create": "Create users",
        "read": "View users",
        "update": "Edit users",
        "delete": "Delete users",
        "manage": "Full control over users",
    },
    "roles": {
        "read": "View roles and permissions",
        "manage": "Create roles, grant permissions, assign roles",
    },
    "content": {
        "create": "Create content",
        "read": "View content",
        "update": "Edit content",
        "delete": "Delete content",
        "manage": "Full control over content",
    },
    "files": {
        "create": "Upload files",
        "read": "View own files",
        "delete": "Delete files",
        "manage": "Full control over all files",
    },
    "settings": {
        "read": "View settings",
        "update": "Edit settings",
    },
    "dashboard": {
        "read": "Access dashboard",
    },
    "audit": {
        "read": "View audit logs",
    },
}

ALL = "*"

ROLE_DEFINITIONS: dict[str, dict] = {
    "admin": {
        "description": "Full system administrator",
        "permissions": [ALL],
    },
    "moderator": {
        "description": "Content moderation access",
        "permissions": [
            "content.manage",
            "users.read",
            "audit.read",
            "dashboard.read",
            "files.read",
            "settings.read",
        ],
    },
    "user": {
        "description": "Standard user access",
        "permissions": [
            "content.read",
            "files.create",
            "files.read",
            "dashboard.read",
            "settings.read",
        ],
    },
}

DEFAULT_ROLE = "user"


@dataclass
class SeedReport:
    permissions_created: int = 0
    permissions_updated: int = 0
    roles_created: int = 0
    roles_updated: int = 0
    grants: int = 0
    roles: dict[str, str] = field(default_factory=dict)  # name -> id


def seed(access: AccessControl) -> SeedReport:
    """Create or refresh the baseline catalogue. Returns what changed."""
    report = SeedReport()
    store = access.store

    by_name: dict[str, Permission] = {}
    for resource, actions in PERMISSION_CATALOGUE.items():
        for action, description in actions.items():
            name = permission_name(resource, action)
            existing = store.get_permission_by_name(name)
            if existing is None:
                by_name[name] = access.create_permission(resource, action, description)
                report.permissions_created += 1
            else:
                if existing.description != description:
                    existing = access.update_permission(existing.id, description)
                    report.permissions_updated += 1
                by_name[name] = existing

    for role_name, definition in ROLE_DEFINITIONS.items():
        role: Role | None = store.get_role_by_name(role_name)
        if role is None:
            role = access.create_role(role_name, definition["description"])
            report.roles_created += 1
        elif role.description != definition["description"]:
            role = access.update_role(role.id, definition["description"])
            report.roles_updated += 1
        report.roles[role_name] = role.id

        wanted = definition["permissions"]
        names = sorted(by_name) if ALL in wanted else wanted
        already = {p.id for p in store.permissions_for_role(role.id)}
        for name in names:
            permission = by_name[name]
            if permission.id in already:
                continue
            access.grant_permission(role.id, permission.id)
            report.grants += 1

    logger.info(
        "Seed complete: %d permissions created, %d updated; %d roles created, %d updated; %d new grants",
        report.permissions_created,
        report.permissions_updated,
        report.roles_created,
        report.roles_updated,
        report.grants,
    )
    return report
