"""
api/routes/v1/users.py -- Self-service account endpoints.

Routes:
  GET   /api/v1/users/{user_id}   -- view a profile (owner or users.manage)
  PATCH /api/v1/users/{user_id}   -- edit email/bio (owner or users.manage)

Both routes show the ownership contract of the permission engine: the
dependency gates on the coarse permission, the handler loads the record and
finishes the check with decision.ensure_owner() [IDOR guard].
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import ProfileUpdate, UserResponse
from auth.dependencies import require_permission
from auth.models import User
from auth.permissions import AccessDecision, Operation, Permission, Resource

router = APIRouter()

_READ = Permission(Resource.USERS, Operation.READ)
_UPDATE = Permission(Resource.USERS, Operation.UPDATE)


def _load_user(request: Request, user_id: int) -> User:
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return user


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    decision: AccessDecision = Depends(require_permission(_READ, check_ownership=True)),
) -> UserResponse:
    target = _load_user(request, user_id)
    decision.ensure_owner(target.id)
    return UserResponse.from_user(target)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_profile(
    request: Request,
    user_id: int,
    body: ProfileUpdate,
    decision: AccessDecision = Depends(require_permission(_UPDATE, check_ownership=True)),
) -> UserResponse:
    """Update the caller's own email or bio. Role and status are admin-only (see admin.py)."""
    user_store = request.app.state.user_store
    target = _load_user(request, user_id)
    decision.ensure_owner(target.id)

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    try:
        user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "That email is already registered."},
        ) from exc
    return UserResponse.from_user(_load_user(request, user_id))
