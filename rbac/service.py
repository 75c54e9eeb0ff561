"""
rbac/service.py -- Access control operations: assign, grant, resolve, authorize.

AccessControl is the one object route handlers, the CLI and the seed talk to.
It layers three things over RBACStore:
  - reference checks (NotFoundError for unknown users/roles/permissions),
  - the authorization rule from rbac/policy.py,
  - an audit entry for every mutation, success or failure.

Read operations (resolve_permissions, authorize) never write audit entries;
the caller decides whether a denial is worth recording.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from audit.logger import FAILURE, AuditLogger
from audit.models import ClientInfo
from core.errors import ForbiddenError, NotFoundError, ValidationError
from rbac.models import Permission, Role, RoleAssignment, RolePermission
from rbac.policy import holds, permission_name, validate_permission
from rbac.store import RBACStore

logger = logging.getLogger("starterkit.rbac")


class AccessControl:
    """Role/permission graph maintenance and permission checks.

    Usage:
        access = AccessControl(RBACStore(engine), AuditLogger(AuditStore(engine)))
        access.assign_role(user_id, role.id, assigned_by=admin_id)
        access.authorize(user_id, "content", "update")
    """

    def __init__(self, store: RBACStore, audit: AuditLogger) -> None:
        self.store = store
        self.audit = audit

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def assign_role(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str | None = None,
        client: ClientInfo | None = None,
    ) -> RoleAssignment:
        """Give user_id the role role_id. Calling it again is a no-op.

        Raises NotFoundError if either id does not exist; a failure entry is
        written to the audit log first.
        """
        details = {"role_id": role_id, "target_user_id": user_id}
        if not self.store.user_exists(user_id):
            self._record_failure("ROLE_ASSIGN", "user", user_id, assigned_by, details, client, "user not found")
            raise NotFoundError(f"User {user_id!r} not found.")
        role = self.store.get_role(role_id)
        if role is None:
            self._record_failure("ROLE_ASSIGN", "role", role_id, assigned_by, details, client, "role not found")
            raise NotFoundError(f"Role {role_id!r} not found.")

        created = self.store.upsert_role_assignment(user_id, role_id, assigned_by)
        self.audit.record(
            "ROLE_ASSIGN",
            "role",
            user_id=assigned_by,
            resource_id=role_id,
            details={**details, "role": role.name, "created": created},
            client=client,
        )
        if created:
            logger.info("Assigned role %s to user %s", role.name, user_id)
        return self.store.get_role_assignment(user_id, role_id)

    def grant_permission(
        self,
        role_id: str,
        permission_id: str,
        actor_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> RolePermission:
        """Add permission_id to role_id. Calling it again is a no-op."""
        details = {"permission_id": permission_id}
        role = self.store.get_role(role_id)
        if role is None:
            self._record_failure("PERMISSION_GRANT", "role", role_id, actor_id, details, client, "role not found")
            raise NotFoundError(f"Role {role_id!r} not found.")
        permission = self.store.get_permission(permission_id)
        if permission is None:
            self._record_failure("PERMISSION_GRANT", "role", role_id, actor_id, details, client, "permission not found")
            raise NotFoundError(f"Permission {permission_id!r} not found.")

        created = self.store.upsert_role_permission(role_id, permission_id)
        self.audit.record(
            "PERMISSION_GRANT",
            "role",
            user_id=actor_id,
            resource_id=role_id,
            details={**details, "role": role.name, "permission": permission.name, "created": created},
            client=client,
        )
        return self.store.get_role_permission(role_id, permission_id)

    def create_role(
        self,
        name: str,
        description: str | None = None,
        actor_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> Role:
        name = name.strip()
        if not name:
            raise ValidationError("Role name must not be empty.")
        try:
            role_id = self.store.create_role(Role(name=name, description=description))
        except IntegrityError as exc:
            self._record_failure("ROLE_CREATE", "role", None, actor_id, {"name": name}, client, "duplicate name")
            raise ValidationError(f"A role named {name!r} already exists.") from exc
        self.audit.record("ROLE_CREATE", "role", user_id=actor_id, resource_id=role_id, details={"name": name}, client=client)
        return self.store.get_role(role_id)

    def create_permission(
        self,
        resource: str,
        action: str,
        description: str | None = None,
        actor_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> Permission:
        validate_permission(resource, action)
        name = permission_name(resource, action)
        try:
            permission_id = self.store.create_permission(
                Permission(name=name, resource=resource, action=action, description=description)
            )
        except IntegrityError as exc:
            self._record_failure("PERMISSION_CREATE", "permission", None, actor_id, {"name": name}, client, "duplicate name")
            raise ValidationError(f"A permission named {name!r} already exists.") from exc
        self.audit.record(
            "PERMISSION_CREATE", "permission", user_id=actor_id, resource_id=permission_id, details={"name": name}, client=client
        )
        return self.store.get_permission(permission_id)

    def update_role(
        self,
        role_id: str,
        description: str | None,
        actor_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> Role:
        """Replace a role's description. Raises NotFoundError for an unknown id."""
        role = self.store.get_role(role_id)
        if role is None:
            self._record_failure("ROLE_UPDATE", "role", role_id, actor_id, {}, client, "role not found")
            raise NotFoundError(f"Role {role_id!r} not found.")
        self.store.update_role_description(role_id, description)
        self.audit.record(
            "ROLE_UPDATE",
            "role",
            user_id=actor_id,
            resource_id=role_id,
            details={"name": role.name, "description": description},
            client=client,
        )
        return self.store.get_role(role_id)

    def update_permission(
        self,
        permission_id: str,
        description: str | None,
        actor_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> Permission:
        """Replace a permission's description. Raises NotFoundError for an unknown id."""
        permission = self.store.get_permission(permission_id)
        if permission is None:
            self._record_failure("PERMISSION_UPDATE", "permission", permission_id, actor_id, {}, client, "permission not found")
            raise NotFoundError(f"Permission {permission_id!r} not found.")
        self.store.update_permission_description(permission_id, description)
        self.audit.record(
            "PERMISSION_UPDATE",
            "permission",
            user_id=actor_id,
            resource_id=permission_id,
            details={"name": permission.name, "description": description},
            client=client,
        )
        return self.store.get_permission(permission_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve_permissions(self, user_id: str) -> set[Permission]:
        """Union of permissions across every role the user holds. Empty if none."""
        return set(self.store.permissions_for_user(user_id))

    def authorize(self, user_id: str, resource: str, action: str) -> bool:
        return holds(self.resolve_permissions(user_id), resource, action)

    def require(self, user_id: str, resource: str, action: str) -> None:
        """Raise ForbiddenError unless authorize() passes."""
        if not self.authorize(user_id, resource, action):
            raise ForbiddenError(f"Missing permission {permission_name(resource, action)}.")

    def roles_for_user(self, user_id: str) -> list[Role]:
        return self.store.roles_for_user(user_id)

    def list_roles(self) -> list[Role]:
        return self.store.list_roles()

    def list_permissions(self) -> list[Permission]:
        return self.store.list_permissions()

    def permissions_for_role(self, role_id: str) -> list[Permission]:
        return self.store.permissions_for_role(role_id)

    def get_role_by_name(self, name: str) -> Role | None:
        return self.store.get_role_by_name(name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_failure(
        self,
        action: str,
        resource: str,
        resource_id: str | None,
        actor_id: str | None,
        details: dict,
        client: ClientInfo | None,
        reason: str,
    ) -> None:
        self.audit.record(
            action,
            resource,
            user_id=actor_id,
            resource_id=resource_id,
            status=FAILURE,
            details={**details, "reason": reason},
            client=client,
        )
