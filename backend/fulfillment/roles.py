# Overview: Role definitions and the role groups that gate operations.

"""
Roles are a closed set carried on User.role. Unlike per-permission grants,
every gate in this system is expressed as "one of these roles", so the groups
below are the single place where those decisions live.
"""

PLATFORM_ADMIN = "PLATFORM_ADMIN"
MERCHANT_ADMIN = "MERCHANT_ADMIN"
MERCHANT_STAFF = "MERCHANT_STAFF"
WAREHOUSE_STAFF = "WAREHOUSE_STAFF"
LOGISTICS_PARTNER = "LOGISTICS_PARTNER"

ALL_ROLES = (
    PLATFORM_ADMIN,
    MERCHANT_ADMIN,
    MERCHANT_STAFF,
    WAREHOUSE_STAFF,
    LOGISTICS_PARTNER,
)

# Merchant-side roles are tenant-scoped via User.merchant_id.
MERCHANT_ROLES = frozenset({MERCHANT_ADMIN, MERCHANT_STAFF})

# Platform-side roles see every merchant's orders.
PLATFORM_ROLES = frozenset({PLATFORM_ADMIN, WAREHOUSE_STAFF, LOGISTICS_PARTNER})

# Only fulfilment operators drive order status; merchants never do.
ORDER_STATUS_ROLES = frozenset({PLATFORM_ADMIN, WAREHOUSE_STAFF, LOGISTICS_PARTNER})

ORDER_SPLIT_ROLES = frozenset({PLATFORM_ADMIN, WAREHOUSE_STAFF})

ORDER_CREATE_ROLES = frozenset({PLATFORM_ADMIN, MERCHANT_ADMIN, MERCHANT_STAFF})

WEBHOOK_VIEW_ROLES = frozenset({PLATFORM_ADMIN, MERCHANT_ADMIN, MERCHANT_STAFF})
WEBHOOK_MANAGE_ROLES = frozenset({PLATFORM_ADMIN, MERCHANT_ADMIN})

MERCHANT_DELETE_ROLES = frozenset({PLATFORM_ADMIN, MERCHANT_ADMIN})


def is_valid_role(role: str | None) -> bool:
    return role in ALL_ROLES
