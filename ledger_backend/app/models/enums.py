"""
User roles enumeration.

Defines the role claims issued by the identity provider.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Full access, including approvals and the manual overdue sweep
        MANAGER: Approves and cancels ledger records
        ACCOUNTANT: Creates records, registers payments and installment plans
        VIEWER: Read-only access to listings and totals
    """
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    ACCOUNTANT = "ACCOUNTANT"
    VIEWER = "VIEWER"
