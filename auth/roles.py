# Role-Based Access Control for Dexter Settlement API
# This module defines caller roles and the money permissions each one holds

from enum import Enum
from typing import List, Set


class UserType(str, Enum):
    """User types in the marketplace."""
    BRAND = "brand"
    INFLUENCER = "influencer"
    ADMIN = "admin"


class Permission(str, Enum):
    """Fine-grained permissions for the settlement API."""

    # Brand permissions
    MANAGE_CAMPAIGNS = "manage_campaigns"
    DEPOSIT_FUNDS = "deposit_funds"
    FULFILL_ORDERS = "fulfill_orders"

    # Influencer permissions
    PLACE_BIDS = "place_bids"
    SUBMIT_DELIVERABLES = "submit_deliverables"
    WITHDRAW_FUNDS = "withdraw_funds"

    # Common permissions
    VIEW_OWN_WALLET = "view_own_wallet"
    VIEW_OWN_TRANSACTIONS = "view_own_transactions"
    VIEW_NOTIFICATIONS = "view_notifications"
    RAISE_DISPUTES = "raise_disputes"

    # Admin permissions
    RESOLVE_DISPUTES = "resolve_disputes"
    MANAGE_ESCROW = "manage_escrow"


COMMON_PERMISSIONS = {
    Permission.VIEW_OWN_WALLET,
    Permission.VIEW_OWN_TRANSACTIONS,
    Permission.VIEW_NOTIFICATIONS,
    Permission.RAISE_DISPUTES,
}

# Role to permissions mapping
ROLE_PERMISSIONS: dict[UserType, Set[Permission]] = {
    UserType.BRAND: {
        Permission.MANAGE_CAMPAIGNS,
        Permission.DEPOSIT_FUNDS,
        Permission.FULFILL_ORDERS,
        Permission.WITHDRAW_FUNDS,  # Refunded budget can be cashed out
        *COMMON_PERMISSIONS,
    },

    UserType.INFLUENCER: {
        Permission.PLACE_BIDS,
        Permission.SUBMIT_DELIVERABLES,
        Permission.WITHDRAW_FUNDS,
        *COMMON_PERMISSIONS,
    },

    UserType.ADMIN: {
        # Admin has ALL permissions
        *Permission.__members__.values()
    },
}


def get_permissions_for_role(user_type: UserType) -> Set[Permission]:
    """Get all permissions for a given user type."""
    return ROLE_PERMISSIONS.get(user_type, set())


def has_permission(user_type: UserType, permission: Permission) -> bool:
    """Check if a user type has a specific permission."""
    return permission in get_permissions_for_role(user_type)


def has_any_permission(user_type: UserType, permissions: List[Permission]) -> bool:
    """Check if a user type has any of the given permissions."""
    user_permissions = get_permissions_for_role(user_type)
    return any(p in user_permissions for p in permissions)
