"""
Roles, permissions and the static role-to-permission table.

The table is closed: roles and permissions are fixed enums and the mapping
is built once at startup by `build_permission_table()`. Lookups fail closed:
an unknown role or permission is never granted anything.
"""
import enum
from types import MappingProxyType
from typing import Mapping


class Role(str, enum.Enum):
    """Role of a user inside a team."""
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"

    @classmethod
    def _missing_(cls, value):
        # Older seed data stored roles upper-cased ("OWNER")
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class Permission(str, enum.Enum):
    """Atomic capability checked by the authorization guard."""
    VIEW_INVOICES = "view_invoices"
    UPLOAD_INVOICES = "upload_invoices"
    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_TEAM = "manage_team"
    BILLING_ACCESS = "billing_access"
    SETTINGS_ACCESS = "settings_access"


DEFAULT_ROLE_PERMISSIONS: dict[Role, tuple[Permission, ...]] = {
    Role.OWNER: tuple(Permission),
    Role.ADMIN: tuple(Permission),
    Role.MANAGER: (
        Permission.VIEW_INVOICES,
        Permission.UPLOAD_INVOICES,
        Permission.MANAGE_CATEGORIES,
    ),
    Role.MEMBER: (Permission.VIEW_INVOICES, Permission.UPLOAD_INVOICES),
    Role.VIEWER: (Permission.VIEW_INVOICES,),
}


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


class PermissionTable:
    """
    Immutable role -> permissions mapping.

    Usage:
        table = build_permission_table()
        table.has_permission(Role.VIEWER, Permission.MANAGE_TEAM)  # False
    """
    __slots__ = ("_grants",)

    def __init__(self, grants: Mapping[Role, tuple[Permission, ...]]):
        frozen = {Role(role): frozenset(perms) for role, perms in grants.items()}
        object.__setattr__(self, "_grants", MappingProxyType(frozen))

    def __setattr__(self, name, value):
        raise AttributeError("PermissionTable is immutable")

    def has_permission(self, role: Role | str | None, permission: Permission | str) -> bool:
        """Return True only when `role` is known and grants `permission`."""
        resolved_role = _coerce(Role, role) if role is not None else None
        resolved_permission = _coerce(Permission, permission)
        if resolved_role is None or resolved_permission is None:
            return False
        return resolved_permission in self._grants.get(resolved_role, frozenset())

    def permissions_for(self, role: Role | str | None) -> frozenset[Permission]:
        resolved_role = _coerce(Role, role) if role is not None else None
        if resolved_role is None:
            return frozenset()
        return self._grants.get(resolved_role, frozenset())

    def as_dict(self) -> dict[str, list[str]]:
        """Role name -> sorted permission names, in role declaration order."""
        return {
            role.value: sorted(p.value for p in self.permissions_for(role))
            for role in Role
        }


def build_permission_table() -> PermissionTable:
    """Build the application's permission table. Called once at startup."""
    return PermissionTable(DEFAULT_ROLE_PERMISSIONS)
