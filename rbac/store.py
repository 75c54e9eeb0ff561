"""
rbac/store.py -- SQLAlchemy Core persistence for roles, permissions and their joins.

Pattern: Repository + Data Mapper (same as auth/store.py). RBACStore is the
repository; _row_to_* functions are the mappers. rbac/service.py owns the
rules (existence checks, audit, policy); this module only talks SQL.

Join rows are written with insert_ignore(), so assigning the same role twice
-- even from two concurrent requests -- leaves exactly one row. The composite
primary keys in db/schema.py are what make that hold.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from db.schema import insert_ignore, now_iso, permissions, role_permissions, roles, user_roles, users
from rbac.models import Permission, Role, RoleAssignment, RolePermission


def _new_id() -> str:
    return uuid.uuid4().hex


class RBACStore:
    """Repository for Role, Permission, RoleAssignment and RolePermission."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> str:
        """Insert a role and return its id.

        Raises sqlalchemy.exc.IntegrityError if the name already exists.
        """
        role_id = role.id or _new_id()
        ts = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                roles.insert().values(
                    id=role_id, name=role.name, description=role.description, created_at=ts, updated_at=ts
                )
            )
            conn.commit()
        return role_id

    def update_role_description(self, role_id: str, description: str | None) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                roles.update().where(roles.c.id == role_id).values(description=description, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def get_role(self, role_id: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> str:
        """Insert a permission and return its id. Raises IntegrityError on duplicate name."""
        permission_id = permission.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                permissions.insert().values(
                    id=permission_id,
                    name=permission.name,
                    description=permission.description,
                    resource=permission.resource,
                    action=permission.action,
                    created_at=now_iso(),
                )
            )
            conn.commit()
        return permission_id

    def update_permission_description(self, permission_id: str, description: str | None) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                permissions.update().where(permissions.c.id == permission_id).values(description=description)
            )
            conn.commit()
        return result.rowcount > 0

    def get_permission(self, permission_id: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(permissions.select().where(permissions.c.id == permission_id)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permission_by_name(self, name: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(permissions.select().where(permissions.c.name == name)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def list_permissions(self) -> list[Permission]:
        with self.engine.connect() as conn:
            rows = conn.execute(permissions.select().order_by(permissions.c.resource, permissions.c.action)).fetchall()
        return [_row_to_permission(r) for r in rows]

    # ------------------------------------------------------------------
    # Subjects (read-only view of users, for existence checks)
    # ------------------------------------------------------------------

    def user_exists(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.id == user_id)).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # user_roles
    # ------------------------------------------------------------------

    def upsert_role_assignment(self, user_id: str, role_id: str, assigned_by: str | None = None) -> bool:
        """Write the (user, role) row unless it exists. Returns True if it was new."""
        with self.engine.connect() as conn:
            created = insert_ignore(
                conn,
                user_roles,
                {"user_id": user_id, "role_id": role_id, "assigned_at": now_iso(), "assigned_by": assigned_by},
                ["user_id", "role_id"],
            )
            conn.commit()
        return created

    def get_role_assignment(self, user_id: str, role_id: str) -> RoleAssignment | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                user_roles.select().where((user_roles.c.user_id == user_id) & (user_roles.c.role_id == role_id))
            ).fetchone()
        return _row_to_assignment(row) if row is not None else None

    def count_role_assignments(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(user_roles).where(user_roles.c.user_id == user_id)
            ).scalar()
        return result or 0

    def roles_for_user(self, user_id: str) -> list[Role]:
        stmt = (
            select(roles)
            .join(user_roles, user_roles.c.role_id == roles.c.id)
            .where(user_roles.c.user_id == user_id)
            .order_by(roles.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_role(r) for r in rows]

    # ------------------------------------------------------------------
    # role_permissions
    # ------------------------------------------------------------------

    def upsert_role_permission(self, role_id: str, permission_id: str) -> bool:
        """Write the (role, permission) row unless it exists. Returns True if it was new."""
        with self.engine.connect() as conn:
            created = insert_ignore(
                conn,
                role_permissions,
                {"role_id": role_id, "permission_id": permission_id, "created_at": now_iso()},
                ["role_id", "permission_id"],
            )
            conn.commit()
        return created

    def get_role_permission(self, role_id: str, permission_id: str) -> RolePermission | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                role_permissions.select().where(
                    (role_permissions.c.role_id == role_id) & (role_permissions.c.permission_id == permission_id)
                )
            ).fetchone()
        return _row_to_role_permission(row) if row is not None else None

    def permissions_for_role(self, role_id: str) -> list[Permission]:
        stmt = (
            select(permissions)
            .join(role_permissions, role_permissions.c.permission_id == permissions.c.id)
            .where(role_permissions.c.role_id == role_id)
            .order_by(permissions.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_permission(r) for r in rows]

    def permissions_for_user(self, user_id: str) -> list[Permission]:
        """Every permission reachable through any of the user's roles, deduplicated.

        One join query (user_roles -> role_permissions -> permissions) rather
        than a query per role.
        """
        stmt = (
            select(permissions)
            .distinct()
            .join(role_permissions, role_permissions.c.permission_id == permissions.c.id)
            .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
            .where(user_roles.c.user_id == user_id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_permission(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        resource=row.resource,
        action=row.action,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_assignment(row) -> RoleAssignment:
    return RoleAssignment(
        user_id=row.user_id,
        role_id=row.role_id,
        assigned_at=row.assigned_at,
        assigned_by=row.assigned_by,
    )


def _row_to_role_permission(row) -> RolePermission:
    return RolePermission(role_id=row.role_id, permission_id=row.permission_id, created_at=row.created_at)
