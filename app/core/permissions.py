from dataclasses import dataclass, field
from typing import Set
import uuid


# Permission codes are "<module>:<action>"
PICKING_PERMISSIONS = ("picking:view", "picking:assign_manage", "picking:execute")
SUPER_ADMIN_PERMISSION = "*"


@dataclass
class AuthenticatedUser:
    """Caller identity as supplied by the identity service."""
    id: uuid.UUID
    permissions: Set[str] = field(default_factory=set)
    email: str | None = None


class PermissionChecker:
    """
    Permission checker utility for RBAC.
    A wildcard grant ("*") acts as super admin.
    """

    def __init__(self, user: AuthenticatedUser):
        self.user = user
        self.permissions = user.permissions

    def is_super_admin(self) -> bool:
        return SUPER_ADMIN_PERMISSION in self.permissions

    def has_permission(self, permission_code: str) -> bool:
        """
        Check if user has a specific permission.

        A module wildcard ("packing:*") grants every action in that module.
        """
        if self.is_super_admin():
            return True

        if permission_code in self.permissions:
            return True

        module = permission_code.split(":", 1)[0]
        return f"{module}:*" in self.permissions

