from enum import Enum
from typing import Literal, NewType

from pydantic import field_validator

from ecolend.domain.base import Entity, require_text
from ecolend.error import ConfigurationError

UserId = NewType("UserId", str)
UserKind = Literal["admin", "employee", "external"]


class Permission(str, Enum):
    """Capabilities granted through roles. Stable, business-facing names."""

    MANAGE_SYSTEM = "MANAGE_SYSTEM"
    MANAGE_USERS = "MANAGE_USERS"
    VIEW_USERS = "VIEW_USERS"
    VIEW_DATA = "VIEW_DATA"
    EDIT_DATA = "EDIT_DATA"
    MANAGE_OPERATIONS = "MANAGE_OPERATIONS"
    EXECUTE_OPERATIONS = "EXECUTE_OPERATIONS"
    VIEW_ASSIGNED_TASKS = "VIEW_ASSIGNED_TASKS"
    VIEW_REPORTS = "VIEW_REPORTS"
    MANAGE_COMPLIANCE = "MANAGE_COMPLIANCE"


def permission_implies(a: Permission, b: Permission) -> bool:
    # MANAGE_SYSTEM 覆盖一切，其余只蕴含自身
    if a == Permission.MANAGE_SYSTEM:
        return True
    return a == b


class RoleName(str, Enum):
    ADMIN = "ADMIN"
    OPERATIONS_MANAGER = "OPERATIONS_MANAGER"
    FIELD_TECHNICIAN = "FIELD_TECHNICIAN"
    COMPLIANCE_ESG = "COMPLIANCE_ESG"


ROLE_PERMISSIONS: dict[RoleName, tuple[Permission, ...]] = {
    RoleName.ADMIN: (Permission.MANAGE_SYSTEM,),
    RoleName.OPERATIONS_MANAGER: (Permission.MANAGE_OPERATIONS, Permission.VIEW_REPORTS),
    RoleName.FIELD_TECHNICIAN: (Permission.EXECUTE_OPERATIONS, Permission.VIEW_ASSIGNED_TASKS),
    RoleName.COMPLIANCE_ESG: (Permission.VIEW_REPORTS, Permission.MANAGE_COMPLIANCE),
}


def default_permissions(name: RoleName | str) -> tuple[Permission, ...]:
    """Permission set a role is provisioned with.

    An unknown role name means the deployment and the code disagree about
    which roles exist, so it is raised as a configuration error.
    """
    try:
        return ROLE_PERMISSIONS[RoleName(name)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unknown role: {name}")


class Role(Entity):
    name: RoleName
    permissions: tuple[Permission, ...]

    @field_validator("permissions", mode="after")
    @classmethod
    def _dedupe(cls, v: tuple[Permission, ...]) -> tuple[Permission, ...]:
        if not v:
            raise ValueError("Role must define at least one permission.")
        return tuple(dict.fromkeys(v))

    @classmethod
    def for_name(cls, name: RoleName | str) -> "Role":
        return cls.create(name=name, permissions=default_permissions(name))

    def has_permission(self, permission: Permission) -> bool:
        return any(permission_implies(p, permission) for p in self.permissions)


class User(Entity):
    """Identity attributes only; roles are stored in their own table."""

    id: UserId
    email: str
    display_name: str
    kind: UserKind = "employee"
    is_active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        if not isinstance(v, str) or "@" not in v:
            raise ValueError("User email must be a non-empty, valid email address.")
        return v.strip().lower()

    @field_validator("display_name", mode="before")
    @classmethod
    def _check_display_name(cls, v):
        return require_text(v, "User displayName must be a non-empty string.")

    def is_admin(self) -> bool:
        return self.kind == "admin"

    def deactivate(self) -> "User":
        return self._replace(is_active=False)

    def activate(self) -> "User":
        return self._replace(is_active=True)


def has_permission(roles: list[Role], permission: Permission) -> bool:
    return any(role.has_permission(permission) for role in roles)
