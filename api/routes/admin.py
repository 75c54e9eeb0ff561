"""
api/routes/admin.py -- User, role and audit administration endpoints.

Routes:
  GET  /api/admin/users                         -- users.read   (paginated)
  GET  /api/admin/roles                         -- roles.read
  GET  /api/admin/permissions                   -- roles.read
  POST /api/admin/roles                         -- roles.manage
  POST /api/admin/users/{user_id}/roles         -- roles.manage (idempotent)
  POST /api/admin/roles/{role_id}/permissions   -- roles.manage (idempotent)
  GET  /api/admin/audit-logs                    -- audit.read   (filtered, paginated)

Authorization goes through require_permission(), which records an
ACCESS_DENIED failure entry before raising ForbiddenError. Mutations are
audited by AccessControl itself.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AssignRoleRequest,
    AuditEntryResponse,
    AuditLogListResponse,
    CreateRoleRequest,
    GrantPermissionRequest,
    PaginationMeta,
    PermissionResponse,
    RoleAssignmentResponse,
    RolePermissionResponse,
    RoleResponse,
    UserListResponse,
    UserResponse,
)
from audit.logger import client_info
from audit.store import AuditStore
from auth.dependencies import require_permission
from auth.models import SessionContext
from auth.store import UserStore
from rbac.service import AccessControl

router = APIRouter()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    ctx: SessionContext = Depends(require_permission("users", "read")),
) -> UserListResponse:
    user_store: UserStore = request.app.state.user_store
    users = user_store.list_users(limit=limit, offset=(page - 1) * limit)
    return UserListResponse(
        items=[UserResponse.from_user(u) for u in users],
        pagination=PaginationMeta.build(page, limit, user_store.count_users()),
    )


@router.post("/admin/users/{user_id}/roles", response_model=RoleAssignmentResponse)
def assign_role(
    request: Request,
    user_id: str,
    body: AssignRoleRequest,
    ctx: SessionContext = Depends(require_permission("roles", "manage")),
) -> RoleAssignmentResponse:
    """Assign a role to a user. Assigning a role the user already holds is a no-op."""
    access: AccessControl = request.app.state.access
    assignment = access.assign_role(user_id, body.role_id, assigned_by=ctx.user.id, client=client_info(request))
    return RoleAssignmentResponse.from_assignment(assignment)


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------


@router.get("/admin/roles", response_model=list[RoleResponse])
def list_roles(
    request: Request,
    ctx: SessionContext = Depends(require_permission("roles", "read")),
) -> list[RoleResponse]:
    access: AccessControl = request.app.state.access
    return [RoleResponse.from_role(r, access.permissions_for_role(r.id)) for r in access.list_roles()]


@router.post("/admin/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request,
    body: CreateRoleRequest,
    ctx: SessionContext = Depends(require_permission("roles", "manage")),
) -> RoleResponse:
    access: AccessControl = request.app.state.access
    role = access.create_role(body.name, body.description, actor_id=ctx.user.id, client=client_info(request))
    return RoleResponse.from_role(role)


@router.post("/admin/roles/{role_id}/permissions", response_model=RolePermissionResponse)
def grant_permission(
    request: Request,
    role_id: str,
    body: GrantPermissionRequest,
    ctx: SessionContext = Depends(require_permission("roles", "manage")),
) -> RolePermissionResponse:
    """Grant a permission to a role. Granting an existing pair is a no-op."""
    access: AccessControl = request.app.state.access
    grant = access.grant_permission(role_id, body.permission_id, actor_id=ctx.user.id, client=client_info(request))
    return RolePermissionResponse.from_grant(grant)


@router.get("/admin/permissions", response_model=list[PermissionResponse])
def list_permissions(
    request: Request,
    ctx: SessionContext = Depends(require_permission("roles", "read")),
) -> list[PermissionResponse]:
    access: AccessControl = request.app.state.access
    return [PermissionResponse.from_permission(p) for p in access.list_permissions()]


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@router.get("/admin/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    request: Request,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource: Optional[str] = None,
    status: Optional[str] = Query(default=None, pattern="^(success|failure)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    ctx: SessionContext = Depends(require_permission("audit", "read")),
) -> AuditLogListResponse:
    """Newest-first audit entries. Filters combine with AND."""
    store: AuditStore = request.app.state.audit.store
    filters = {"user_id": user_id, "action": action, "resource": resource, "status": status}
    entries = store.list_entries(**filters, limit=limit, offset=(page - 1) * limit)
    return AuditLogListResponse(
        items=[AuditEntryResponse.from_entry(e) for e in entries],
        pagination=PaginationMeta.build(page, limit, store.count(**filters)),
    )
