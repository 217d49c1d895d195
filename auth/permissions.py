"""
auth/permissions.py -- Role-based access control for the game portal.

Provides:
  Resource, Operation   -- enums; a Permission is one immutable pair of them
  ROLE_PERMISSIONS      -- static role table (admin is a superset of user)
  PermissionEngine      -- pure, total permission checks

Ownership ("users may only edit their own games") is not decided here. The
engine gates on the coarse permission and reports, through AccessDecision,
that the handler still has to compare the caller with the resource owner.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.errors import ForbiddenAccess, UnauthorizedAccess
from auth.models import Role, User


class Resource(str, Enum):
    USERS = "users"
    GAMES = "games"
    CATEGORIES = "categories"
    DOWNLOAD_LINKS = "download_links"
    SYSTEM_SETTINGS = "system_settings"


class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    PUBLISH = "publish"
    MANAGE = "manage"


@dataclass(frozen=True)
class Permission:
    """A {resource, operation} pair, written "resource.operation"."""

    resource: Resource
    operation: Operation

    def __str__(self) -> str:
        return f"{self.resource.value}.{self.operation.value}"

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """Parse "games.delete" into a Permission. Raises ValueError if malformed."""
        resource, sep, operation = value.partition(".")
        if not sep:
            raise ValueError(f"Permission must look like 'resource.operation', got {value!r}")
        return cls(Resource(resource), Operation(operation))


PermissionLike = Permission | str


def _grant(resource: Resource, *operations: Operation) -> set[Permission]:
    return {Permission(resource, op) for op in operations}


R, O = Resource, Operation

_USER_PERMISSIONS: set[Permission] = (
    _grant(R.USERS, O.READ, O.UPDATE)
    # Update on games and update / delete on links apply to the caller's own
    # records; routes enforce that with check_ownership. Deleting a game is
    # admin-only.
    | _grant(R.GAMES, O.CREATE, O.READ, O.UPDATE, O.PUBLISH)
    | _grant(R.CATEGORIES, O.READ)
    | _grant(R.DOWNLOAD_LINKS, O.CREATE, O.READ, O.UPDATE, O.DELETE)
)

_ADMIN_PERMISSIONS: set[Permission] = (
    _USER_PERMISSIONS
    | _grant(R.USERS, O.CREATE, O.READ, O.UPDATE, O.DELETE, O.MANAGE)
    | _grant(R.GAMES, O.CREATE, O.READ, O.UPDATE, O.DELETE, O.APPROVE, O.REJECT, O.PUBLISH, O.MANAGE)
    | _grant(R.CATEGORIES, O.CREATE, O.READ, O.UPDATE, O.DELETE, O.MANAGE)
    | _grant(R.DOWNLOAD_LINKS, O.CREATE, O.READ, O.UPDATE, O.DELETE, O.MANAGE)
    | _grant(R.SYSTEM_SETTINGS, O.READ, O.UPDATE, O.MANAGE)
)

# Map each role to its permissions
ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.USER: frozenset(_USER_PERMISSIONS),
}


@dataclass(frozen=True)
class AccessDecision:
    """Result of a successful authorize() call."""

    user: User
    permission: Permission
    ownership_required: bool = False
    can_manage: bool = False

    def ensure_owner(self, owner_id: int | None) -> None:
        """Finish the ownership half of the check.

        Passes when ownership was not requested, when the caller owns the
        resource, or when the caller holds <resource>.manage. Raises
        ForbiddenAccess otherwise.
        """
        if not self.ownership_required or self.can_manage:
            return
        if owner_id is None or owner_id != self.user.id:
            raise ForbiddenAccess("You can only modify your own resources.")


class PermissionEngine:
    """Checks whether a user may perform an operation on a resource.

    Constructed once at startup; the table is read-only afterwards.
    """

    def __init__(self, role_permissions: dict[Role, frozenset[Permission]] | None = None) -> None:
        self.role_permissions = role_permissions or ROLE_PERMISSIONS

    def permissions_for(self, role: Role | str | None) -> frozenset[Permission]:
        """Return the permission set for a role (empty for unknown roles)."""
        try:
            return self.role_permissions.get(Role(role), frozenset())
        except ValueError:
            return frozenset()

    def has_permission(self, user: User | None, permission: PermissionLike) -> bool:
        """True if user holds permission (a Permission or "resource.operation").

        Anonymous callers, unknown roles and malformed strings are False; never raises.
        """
        if user is None:
            return False
        try:
            perm = permission if isinstance(permission, Permission) else Permission.parse(permission)
        except ValueError:
            return False
        return perm in self.permissions_for(user.role)

    def authorize(
        self,
        user: User | None,
        permission: PermissionLike,
        check_ownership: bool = False,
    ) -> AccessDecision:
        """Gate a request on permission.

        No caller is UnauthorizedAccess (401); a caller without the permission
        is ForbiddenAccess (403). A malformed permission string is a
        programming error and raises ValueError.
        """
        if user is None:
            raise UnauthorizedAccess()
        perm = permission if isinstance(permission, Permission) else Permission.parse(permission)
        if not self.has_permission(user, perm):
            raise ForbiddenAccess()
        return AccessDecision(
            user=user,
            permission=perm,
            ownership_required=check_ownership,
            can_manage=self.has_permission(user, Permission(perm.resource, Operation.MANAGE)),
        )
