"""
Multi-Tenant Service: Merchant Scoping Helpers

Every merchant-owned read or write goes through one of these helpers so the
cross-tenant rule lives in one place:

1. Merchant users (MERCHANT_ADMIN, MERCHANT_STAFF) act only on their own
   merchant. A mismatching merchant_id is an AuthorizationError.
2. Platform staff act on any merchant, but must name it explicitly when the
   operation creates merchant-owned data.

USAGE:
    merchant_id = resolve_merchant_scope(g.current_user, data.get("merchant_id"))
    require_merchant_access(g.current_user, order.merchant_id, not_found="Order not found")
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Merchant, User
from ..roles import MERCHANT_ROLES, PLATFORM_ROLES
from ..errors import AuthorizationError, NotFoundError, ValidationError


def is_platform_user(user: User) -> bool:
    return user.role in PLATFORM_ROLES


def can_see_merchant(user: User, merchant_id: int) -> bool:
    if is_platform_user(user):
        return True
    return user.role in MERCHANT_ROLES and user.merchant_id == merchant_id


def require_merchant_access(user: User, merchant_id: int, *, not_found: str = "Not found") -> None:
    """
    Raise NotFoundError when the user cannot see the merchant's data.

    Cross-tenant reads look like missing rows so ids cannot be probed.
    """
    if not can_see_merchant(user, merchant_id):
        current_app.logger.warning(
            "Cross-tenant access denied: user_id=%s merchant_id=%s target_merchant_id=%s",
            user.id, user.merchant_id, merchant_id,
        )
        raise NotFoundError(not_found)


def resolve_merchant_scope(user: User, requested_merchant_id: int | None) -> int:
    """
    Decide which merchant a create/list operation applies to.

    Merchant users get their own merchant; naming another one is forbidden.
    Platform users must supply one, and it must exist.
    """
    if user.role in MERCHANT_ROLES:
        if requested_merchant_id is not None and int(requested_merchant_id) != user.merchant_id:
            raise AuthorizationError("Cannot act on another merchant's data")
        return user.merchant_id

    if requested_merchant_id is None:
        raise ValidationError("merchant_id is required")
    try:
        merchant_id = int(requested_merchant_id)
    except (TypeError, ValueError):
        raise ValidationError("merchant_id must be an integer")

    if not db.session.get(Merchant, merchant_id):
        raise NotFoundError("Merchant not found")
    return merchant_id
