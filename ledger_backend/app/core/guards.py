"""
Security guards for role-based access control.

Provides dependencies for protecting ledger endpoints.
"""

from typing import List
from fastapi import Depends
from ledger_backend.app.models.enums import UserRole
from ledger_backend.app.core.dependencies import get_current_user
from ledger_backend.app.core.exceptions import InsufficientPermissionsError

# Role groups used by the ledger routers
LEDGER_APPROVERS = [UserRole.ADMIN, UserRole.MANAGER]
LEDGER_WRITERS = [UserRole.ADMIN, UserRole.MANAGER, UserRole.ACCOUNTANT]


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/{record_id}/approve")
        async def approve(current_user: dict = Depends(require_role(LEDGER_APPROVERS))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        InsufficientPermissionsError (403) if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise InsufficientPermissionsError("Role information missing from token")

        # Convert string role to UserRole enum
        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise InsufficientPermissionsError("Invalid role in token")

        if user_role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}",
                {"role": user_role.value}
            )

        return current_user

    return role_checker
