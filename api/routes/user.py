"""
api/routes/user.py -- Self-service endpoints for the signed-in user.

Routes:
  GET   /api/user/me        -- profile, role names, effective permission names
  PATCH /api/user/profile   -- update name / image
  PATCH /api/user/password  -- change password; revokes the user's other sessions

Every route requires a valid session (get_current_session). The gatekeeper
only checked that a cookie was present.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse, MessageResponse, PasswordChange, ProfileUpdate, UserResponse
from audit.logger import FAILURE, AuditLogger, client_info
from auth.dependencies import get_current_session
from auth.models import SessionContext
from auth.store import UserStore
from auth.tokens import hash_password, verify_password
from core.errors import ValidationError
from rbac.service import AccessControl

router = APIRouter()


@router.get("/user/me", response_model=MeResponse)
def me(request: Request, ctx: SessionContext = Depends(get_current_session)) -> MeResponse:
    access: AccessControl = request.app.state.access
    return MeResponse(
        user=UserResponse.from_user(ctx.user),
        roles=sorted(r.name for r in access.roles_for_user(ctx.user.id)),
        permissions=sorted(p.name for p in access.resolve_permissions(ctx.user.id)),
    )


@router.patch("/user/profile", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    ctx: SessionContext = Depends(get_current_session),
) -> UserResponse:
    """Update the caller's name and/or image. image="" clears the image."""
    user_store: UserStore = request.app.state.user_store
    updates: dict = {}
    if body.name is not None:
        updates["name"] = body.name
    if body.image is not None:
        updates["image"] = body.image or None
    if not updates:
        raise ValidationError("No fields to update.")

    user_store.update_user(ctx.user.id, **updates)
    request.app.state.audit.record(
        "PROFILE_UPDATE",
        "user",
        user_id=ctx.user.id,
        resource_id=ctx.user.id,
        details={"fields": sorted(updates)},
        client=client_info(request),
    )
    return UserResponse.from_user(user_store.get_by_id(ctx.user.id))


@router.patch("/user/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    ctx: SessionContext = Depends(get_current_session),
) -> MessageResponse:
    """Change the caller's password after checking the current one.

    Other sessions of the same user are revoked; the caller's session stays.
    """
    user_store: UserStore = request.app.state.user_store
    audit: AuditLogger = request.app.state.audit
    client = client_info(request)

    if ctx.user.hashed_password is None or not verify_password(body.current_password, ctx.user.hashed_password):
        audit.record(
            "PASSWORD_CHANGE",
            "user",
            user_id=ctx.user.id,
            resource_id=ctx.user.id,
            status=FAILURE,
            details={"reason": "current password incorrect"},
            client=client,
        )
        raise ValidationError("Current password is incorrect.")

    user_store.update_user(ctx.user.id, hashed_password=hash_password(body.new_password))
    revoked = user_store.delete_user_sessions(ctx.user.id, keep=ctx.session.id)
    audit.record(
        "PASSWORD_CHANGE",
        "user",
        user_id=ctx.user.id,
        resource_id=ctx.user.id,
        details={"sessions_revoked": revoked},
        client=client,
    )
    return MessageResponse(message="Password updated.")
