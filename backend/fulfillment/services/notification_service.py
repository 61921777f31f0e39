# Overview: Service-layer operations for in-app notifications.

"""
Notification Dispatcher

Targets are a tagged union:
- ById(user_id)                     one row for that user
- ByRole(role, merchant_id=None)    one row per active user holding the role,
                                    optionally restricted to one merchant
- Global()                          a single row visible to everyone

Visibility for reads and mutations: a user sees rows where they are the
recipient, plus every global row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Union

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Notification, User
from ..errors import ValidationError, NotFoundError
from ..roles import is_valid_role
from fulfillment.time_utils import utcnow


NOTIFICATION_TYPES = frozenset({
    "ORDER_CREATED",
    "ORDER_UPDATED",
    "ORDER_DELIVERED",
    "ORDER_CANCELLED",
    "STOCK_LOW",
    "STOCK_OUT",
    "PRODUCT_CREATED",
    "PRODUCT_UPDATED",
    "MERCHANT_REGISTERED",
    "MERCHANT_APPROVED",
    "MERCHANT_SUSPENDED",
    "PAYMENT_RECEIVED",
    "PAYMENT_FAILED",
    "RETURN_REQUESTED",
    "RETURN_APPROVED",
    "RETURN_REJECTED",
    "WAREHOUSE_ALERT",
    "SYSTEM_ALERT",
    "BILLING_ALERT",
    "SUBSCRIPTION_EXPIRED",
    "SUBSCRIPTION_RENEWED",
})

PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")

TARGET_USER = "USER"
TARGET_ROLE = "ROLE"
TARGET_GLOBAL = "GLOBAL"


@dataclass(frozen=True)
class ById:
    user_id: int


@dataclass(frozen=True)
class ByRole:
    role: str
    merchant_id: int | None = None


@dataclass(frozen=True)
class Global:
    pass


Target = Union[ById, ByRole, Global]


def _validate(type_: str, priority: str) -> None:
    if type_ not in NOTIFICATION_TYPES:
        raise ValidationError(f"Invalid notification type: {type_}")
    if priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority}")


def notify(
    target: Target,
    *,
    title: str,
    message: str,
    type: str,
    priority: str = "MEDIUM",
    metadata: dict | None = None,
    commit: bool = True,
) -> list[Notification]:
    """
    Create notification rows for a target. Returns the created rows.

    A role target with no matching active users yields an empty list.
    """
    _validate(type, priority)
    if not title or not message:
        raise ValidationError("title and message are required")

    base = dict(title=title, message=message, type=type, priority=priority, meta=dict(metadata or {}))

    if isinstance(target, ById):
        if not db.session.get(User, target.user_id):
            raise NotFoundError("Recipient not found")
        rows = [Notification(target_type=TARGET_USER, recipient_id=target.user_id, **base)]

    elif isinstance(target, ByRole):
        if not is_valid_role(target.role):
            raise ValidationError(f"Invalid role: {target.role}")
        q = db.session.query(User.id).filter(User.role == target.role, User.is_active.is_(True))
        if target.merchant_id is not None:
            q = q.filter(User.merchant_id == target.merchant_id)
        rows = [
            Notification(target_type=TARGET_ROLE, recipient_id=user_id, recipient_role=target.role, **base)
            for (user_id,) in q.order_by(User.id).all()
        ]

    elif isinstance(target, Global):
        rows = [Notification(target_type=TARGET_GLOBAL, is_global=True, **base)]

    else:
        raise ValidationError(f"Unsupported notification target: {target!r}")

    if rows:
        db.session.add_all(rows)
        if commit:
            db.session.commit()

    current_app.logger.info("Notification %s %r created for %d recipient(s)", type, title, len(rows))
    return rows


# =============================================================================
# READ SIDE
# =============================================================================

def _visible_to(user_id: int):
    return or_(Notification.recipient_id == user_id, Notification.is_global.is_(True))


def list_for_user(user_id: int, *, limit: int = 50, offset: int = 0, unread_only: bool = False) -> list[Notification]:
    q = db.session.query(Notification).filter(_visible_to(user_id))
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(max(offset, 0))
        .limit(max(min(limit, 200), 1))
        .all()
    )


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(_visible_to(user_id), Notification.is_read.is_(False))
        .count()
    )


def total_count(user_id: int) -> int:
    return db.session.query(Notification).filter(_visible_to(user_id)).count()


def _get_visible(notification_id: int, user_id: int) -> Notification:
    n = (
        db.session.query(Notification)
        .filter(Notification.id == notification_id, _visible_to(user_id))
        .first()
    )
    if not n:
        raise NotFoundError("Notification not found")
    return n


def mark_read(notification_id: int, user_id: int) -> Notification:
    n = _get_visible(notification_id, user_id)
    if not n.is_read:
        n.is_read = True
        n.read_at = utcnow()
        db.session.commit()
    return n


def mark_all_read(user_id: int) -> int:
    """
    Mark every unread row visible to the user as read. Returns the count.

    A global notification is one shared row, so marking it read here (or
    through mark_read) marks it read for every user.
    """
    updated = (
        db.session.query(Notification)
        .filter(_visible_to(user_id), Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(notification_id: int, user_id: int) -> None:
    n = _get_visible(notification_id, user_id)
    db.session.delete(n)
    db.session.commit()


def purge_read_notifications(retention_days: int | None = None) -> int:
    """Delete read notifications older than the retention window. Unread rows are kept."""
    if retention_days is None:
        retention_days = current_app.config.get("NOTIFICATION_RETENTION_DAYS", 30)
    cutoff = utcnow() - timedelta(days=retention_days)

    deleted = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Purged %d read notification(s) older than %d days", deleted, retention_days)
    return deleted


# =============================================================================
# TEMPLATES
# =============================================================================

def format_amount(amount_cents: int) -> str:
    return f"₦{amount_cents / 100:,.2f}"


def order_created(order_number: str, customer_name: str) -> dict:
    return {
        "title": "New Order Received",
        "message": f"Order {order_number} has been placed by {customer_name}",
        "type": "ORDER_CREATED",
        "priority": "HIGH",
    }


def order_delivered(order_number: str, customer_name: str) -> dict:
    return {
        "title": "Order Delivered",
        "message": f"Order {order_number} has been successfully delivered to {customer_name}",
        "type": "ORDER_DELIVERED",
        "priority": "MEDIUM",
    }


def order_cancelled(order_number: str) -> dict:
    return {
        "title": "Order Cancelled",
        "message": f"Order {order_number} has been cancelled",
        "type": "ORDER_CANCELLED",
        "priority": "HIGH",
    }


def order_updated(order_number: str, status: str) -> dict:
    return {
        "title": "Order Status Updated",
        "message": f"Order {order_number} status changed to {status.replace('_', ' ')}",
        "type": "ORDER_UPDATED",
        "priority": "MEDIUM",
    }


def stock_low(product_name: str, current_stock: int, reorder_level: int) -> dict:
    return {
        "title": "Low Stock Alert",
        "message": f"{product_name} is running low. Current stock: {current_stock}, Reorder level: {reorder_level}",
        "type": "STOCK_LOW",
        "priority": "HIGH",
    }


def stock_out(product_name: str) -> dict:
    return {
        "title": "Out of Stock",
        "message": f"{product_name} is out of stock and needs immediate attention",
        "type": "STOCK_OUT",
        "priority": "URGENT",
    }

