"""
api/routes/v1/admin.py -- Account administration endpoints.

Routes:
  GET   /api/v1/admin/users                        -- list accounts (users.manage)
  PATCH /api/v1/admin/users/{user_id}/status       -- set account status (users.manage)
  PATCH /api/v1/admin/users/{user_id}/role         -- set role (users.manage)
  POST  /api/v1/admin/users/{user_id}/unlock       -- clear lock + counter (users.manage)
  POST  /api/v1/admin/maintenance/mark-inactive    -- run the inactivity job now (system_settings.manage)

Security:
  [M4] An admin cannot take their own account out of active status, and the
       last active admin can be neither deactivated nor demoted. Either would
       leave no recovery path short of direct database access.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import MarkInactiveResponse, UserResponse, UserRolePatch, UserStatusPatch
from auth.dependencies import require_permission
from auth.models import AccountStatus, Role, User
from auth.permissions import AccessDecision, Operation, Permission, Resource

router = APIRouter()

_MANAGE_USERS = require_permission(Permission(Resource.USERS, Operation.MANAGE))
_MANAGE_SYSTEM = require_permission(Permission(Resource.SYSTEM_SETTINGS, Operation.MANAGE))


def _load_user(request: Request, user_id: int) -> User:
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return user


def _guard_last_admin(request: Request, target: User) -> None:
    """[M4] Refuse a change that would leave no active admin."""
    if target.role == Role.ADMIN and target.is_active:
        if request.app.state.user_store.count_active_admins() <= 1:
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot remove the last active admin account."},
            )


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(request: Request, decision: AccessDecision = Depends(_MANAGE_USERS)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in request.app.state.user_store.list_users()]


@router.patch("/admin/users/{user_id}/status", response_model=UserResponse)
def set_status(
    request: Request,
    user_id: int,
    body: UserStatusPatch,
    decision: AccessDecision = Depends(_MANAGE_USERS),
) -> UserResponse:
    """Move an account to active, locked, suspended or inactive.

    Setting active also zeroes the failed-attempt counter. Setting locked
    starts a fresh lockout window from now.
    """
    target = _load_user(request, user_id)
    status = AccountStatus(body.status.value)
    if status != AccountStatus.ACTIVE:
        if target.id == decision.user.id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
            )
        _guard_last_admin(request, target)

    request.app.state.lockout.set_status(user_id, status)
    return UserResponse.from_user(_load_user(request, user_id))


@router.patch("/admin/users/{user_id}/role", response_model=UserResponse)
def set_role(
    request: Request,
    user_id: int,
    body: UserRolePatch,
    decision: AccessDecision = Depends(_MANAGE_USERS),
) -> UserResponse:
    target = _load_user(request, user_id)
    role = Role(body.role.value)
    if role != Role.ADMIN:
        _guard_last_admin(request, target)
    request.app.state.user_store.update_user(user_id, role=role)
    return UserResponse.from_user(_load_user(request, user_id))


@router.post("/admin/users/{user_id}/unlock", response_model=UserResponse)
def unlock_user(
    request: Request,
    user_id: int,
    decision: AccessDecision = Depends(_MANAGE_USERS),
) -> UserResponse:
    _load_user(request, user_id)
    request.app.state.lockout.unlock(user_id)
    return UserResponse.from_user(_load_user(request, user_id))


@router.post("/admin/maintenance/mark-inactive", response_model=MarkInactiveResponse)
def mark_inactive(request: Request, decision: AccessDecision = Depends(_MANAGE_SYSTEM)) -> MarkInactiveResponse:
    """Run the inactivity job immediately instead of waiting for the daily timer."""
    return MarkInactiveResponse(marked_inactive=request.app.state.lockout.mark_inactive_accounts())
