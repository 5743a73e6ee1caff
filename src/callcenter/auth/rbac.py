"""
Role-Based Access Control (RBAC) dependencies.
"""

from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from callcenter.auth.middleware import CurrentUser, get_current_user
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    """User roles with hierarchical ordering."""

    ADMIN = "admin"
    AGENT = "agent"

    @classmethod
    def from_string(cls, role_str: str) -> "Role":
        """Convert string to Role enum.

        Raises:
            ValueError: If role string is invalid.
        """
        try:
            return cls(role_str)
        except ValueError:
            raise ValueError(f"Invalid role: {role_str}")

    def has_permission(self, required_role: "Role") -> bool:
        """Check if this role has permission for the required role.

        Role hierarchy: admin > agent
        """
        hierarchy = {
            Role.ADMIN: 2,
            Role.AGENT: 1,
        }
        return hierarchy.get(self, 0) >= hierarchy.get(required_role, 0)


def check_role_permission(user_role: str, required_role: Role) -> bool:
    """Check if a user role string satisfies a required role."""
    try:
        return Role.from_string(user_role).has_permission(required_role)
    except ValueError:
        return False


class RBACChecker:
    """Dependency class for role-based access control checks."""

    def __init__(self, minimum_role: Role) -> None:
        self.minimum_role = minimum_role

    async def __call__(
        self,
        request: Request,
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        """Return the current user if their role is sufficient, else 403."""
        if not check_role_permission(current_user.role, self.minimum_role):
            logger.warning(
                "Access denied",
                extra={
                    "user_id": str(current_user.id),
                    "user_role": current_user.role,
                    "required_role": self.minimum_role.value,
                    "endpoint": str(request.url.path),
                    "method": request.method,
                    "client_ip": request.client.host if request.client else "unknown",
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": f"Role '{self.minimum_role.value}' or higher required",
                    "required_role": self.minimum_role.value,
                    "current_role": current_user.role,
                },
            )

        return current_user


# Pre-configured dependency instances
require_admin = RBACChecker(Role.ADMIN)
require_agent = RBACChecker(Role.AGENT)
