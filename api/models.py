"""
API request and response models for the starter kit REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/, rbac/, audit/
and uploads/, which own the internal domain representation. Route handlers
map between the two with the from_* factory methods below.

Separation of concerns: domain models = storage truth; api/ models = API contract.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from audit.models import AuditLogEntry
from auth.models import User
from auth.tokens import PASSWORD_MAX_LENGTH, check_password_strength
from rbac.models import Permission, Role, RoleAssignment, RolePermission
from uploads.models import UploadedFile

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /api/auth/sign-up."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class SignInRequest(BaseModel):
    """Request body for POST /api/auth/sign-in."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    remember_me: bool = False


# ---------------------------------------------------------------------------
# User request models
# ---------------------------------------------------------------------------


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/user/profile. Omitted fields are left unchanged.

    image accepts an http(s) URL, or "" to clear the current image.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    image: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("image")
    @classmethod
    def image_url(cls, value: Optional[str]) -> Optional[str]:
        if value and not re.match(r"^https?://\S+$", value):
            raise ValueError("Invalid image URL")
        return value


class PasswordChange(BaseModel):
    """Request body for PATCH /api/user/password."""

    current_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordChange":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


# ---------------------------------------------------------------------------
# Admin request models
# ---------------------------------------------------------------------------


class CreateRoleRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)


class AssignRoleRequest(BaseModel):
    """Request body for POST /api/admin/users/{user_id}/roles."""

    role_id: str = Field(min_length=1, max_length=64)


class GrantPermissionRequest(BaseModel):
    """Request body for POST /api/admin/roles/{role_id}/permissions."""

    permission_id: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class UserResponse(BaseModel):
    """Public view of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    email_verified: bool
    image: Optional[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            email_verified=user.email_verified,
            image=user.image,
            created_at=user.created_at or "",
        )


class SessionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    expires_at: str


class SessionResponse(BaseModel):
    """Response for GET /api/auth/session and a successful sign-in/sign-up."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    session: SessionInfo


class MeResponse(BaseModel):
    """Response for GET /api/user/me: the user plus its effective access."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    roles: list[str]
    permissions: list[str]


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    created_at: str
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_role(cls, role: Role, permissions: Optional[list[Permission]] = None) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            created_at=role.created_at or "",
            permissions=sorted(p.name for p in permissions or []),
        )


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    resource: str
    action: str
    description: Optional[str]

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            name=permission.name,
            resource=permission.resource,
            action=permission.action,
            description=permission.description,
        )


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    role_id: str
    assigned_at: str
    assigned_by: Optional[str]

    @classmethod
    def from_assignment(cls, assignment: RoleAssignment) -> "RoleAssignmentResponse":
        return cls(
            user_id=assignment.user_id,
            role_id=assignment.role_id,
            assigned_at=assignment.assigned_at or "",
            assigned_by=assignment.assigned_by,
        )


class RolePermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role_id: str
    permission_id: str

    @classmethod
    def from_grant(cls, grant: RolePermission) -> "RolePermissionResponse":
        return cls(role_id=grant.role_id, permission_id=grant.permission_id)


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: Optional[str]
    action: str
    resource: str
    resource_id: Optional[str]
    status: str
    details: dict
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: str

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            action=entry.action,
            resource=entry.resource,
            resource_id=entry.resource_id,
            status=entry.status,
            details=entry.details,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at or "",
        )


class FileMetadataResponse(BaseModel):
    """Metadata for an uploaded file. The on-disk path is not exposed."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    original_name: str
    mime_type: str
    size: int
    uploaded_by: str
    created_at: str

    @classmethod
    def from_file(cls, record: UploadedFile) -> "FileMetadataResponse":
        return cls(
            id=record.id,
            name=record.name,
            original_name=record.original_name,
            mime_type=record.mime_type,
            size=record.size,
            uploaded_by=record.uploaded_by,
            created_at=record.created_at or "",
        )


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class PaginationMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, total_pages=max(1, (total + limit - 1) // limit))


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[UserResponse]
    pagination: PaginationMeta


class AuditLogListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[AuditEntryResponse]
    pagination: PaginationMeta


class FileListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[FileMetadataResponse]
    pagination: PaginationMeta


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses: {"error", "message"}."""

    model_config = ConfigDict(frozen=True)

    error: str
    message: str
    details: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    timestamp: str
    uptime: float
    version: str
    environment: str
    checks: dict[str, str]
