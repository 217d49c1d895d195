"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and RBAC.

Two credential carriers are checked in priority order:
  1. JWT cookie ("access_token") -- set by login/register for browser clients.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on a User loaded fresh from the store, so a suspension or lock
applied after the token was issued takes effect on the next request.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises UnauthorizedAccess (401).
require_permission() builds a dependency that gates on one permission.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import UnauthorizedAccess
from auth.models import User
from auth.permissions import AccessDecision, PermissionEngine, PermissionLike
from auth.tokens import AUTH_COOKIE, SessionClaims, SessionTokenManager


def _extract_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(AUTH_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_session_claims(request: Request) -> SessionClaims | None:
    """Return verified claims for the request's token, or None."""
    tokens: SessionTokenManager = request.app.state.tokens
    return tokens.decode(_extract_token(request))


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via cookie or Bearer token.

    Returns the authenticated User on success, None on any failure. A valid
    token whose account is no longer active yields None.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    claims = get_session_claims(request)
    if claims is None:
        return None
    user = request.app.state.user_store.get_by_id(claims.user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises UnauthorizedAccess (401) if absent.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise UnauthorizedAccess()
    return user


def require_permission(permission: PermissionLike, check_ownership: bool = False) -> Callable[[Request], AccessDecision]:
    """Build a dependency that gates a route on one permission.

    The returned AccessDecision is also stored on request.state.access. When
    check_ownership is set, the handler must call decision.ensure_owner() with
    the owner of the resource it loaded.

        @router.patch("/games/{game_id}")
        def edit(decision: AccessDecision = Depends(require_permission("games.update", check_ownership=True))):
            decision.ensure_owner(game.owner_id)
    """

    def dependency(request: Request) -> AccessDecision:
        engine: PermissionEngine = request.app.state.permissions
        decision = engine.authorize(try_get_current_user(request), permission, check_ownership=check_ownership)
        request.state.access = decision
        return decision

    return dependency
