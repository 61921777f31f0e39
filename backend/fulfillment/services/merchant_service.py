# Overview: Service-layer operations for merchants; guarded hard deletion.

"""
Merchant Deletion Guard

Two authorised paths:

SELF-DELETE (MERCHANT_ADMIN of the target merchant). Checked in order, the
first failure wins:
  a. password supplied and matching
  b. if 2FA is enabled: a valid TOTP code or an unused backup code
     (a consumed backup code is removed and committed immediately)
  c. no outstanding PENDING/OVERDUE billing amount
  d. no ACTIVE service subscription updated within SUBSCRIPTION_COOLDOWN_HOURS

ADMIN DELETE (PLATFORM_ADMIN not belonging to the target merchant):
  admin_password supplied and matching. Debt and cooldown do not apply.

The cascade is a hard delete in dependency order inside one transaction.
Any failure rolls everything back (PersistenceError). The closing audit
entry is best-effort.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    ApiKey,
    ApiKeyLog,
    AuditLog,
    BillingRecord,
    Merchant,
    MerchantServiceSubscription,
    Notification,
    Order,
    OrderItem,
    OrderSplit,
    OrderStatusHistory,
    PasswordResetToken,
    Product,
    Return,
    SerialNumber,
    Service,
    SessionToken,
    StockItem,
    StockMovement,
    Subscription,
    SubscriptionAddon,
    User,
    Warehouse,
    Webhook,
    WebhookLog,
)
from ..roles import MERCHANT_ADMIN, MERCHANT_STAFF, PLATFORM_ADMIN
from ..errors import (
    AuthorizationError,
    InvalidCredentialsError,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    ValidationError,
)
from . import audit_service, auth_service, billing_service
from .notification_service import format_amount
from .side_effects import run_side_effect
from fulfillment.time_utils import utcnow, as_naive_utc


@dataclass
class DeletionCredentials:
    password: str | None = None
    two_factor_token: str | None = None
    admin_password: str | None = None

    @classmethod
    def from_payload(cls, data: dict | None) -> "DeletionCredentials":
        data = data or {}
        return cls(
            password=data.get("password"),
            two_factor_token=data.get("twoFactorToken", data.get("two_factor_token")),
            admin_password=data.get("adminPassword", data.get("admin_password")),
        )


@dataclass
class DeletionResult:
    merchant_id: int
    deleted_staff_count: int
    self_deletion: bool

    @property
    def message(self) -> str:
        if self.self_deletion:
            return "Your account and all associated staff accounts have been permanently deleted."
        return "Merchant account and all associated staff accounts have been permanently deleted."


# =============================================================================
# PRECONDITIONS
# =============================================================================

def _check_self_delete(merchant_id: int, user: User, credentials: DeletionCredentials) -> None:
    if not credentials.password:
        raise ValidationError("Password is required to delete your account")
    if not auth_service.verify_password(credentials.password, user.password_hash):
        raise InvalidCredentialsError("Invalid password")

    if user.two_factor_enabled:
        if not credentials.two_factor_token:
            raise ValidationError("2FA verification code is required")
        result = auth_service.verify_second_factor(user, credentials.two_factor_token)
        if not result.verified:
            raise InvalidCredentialsError("Invalid 2FA verification code or backup code")

    outstanding = billing_service.outstanding_balance_cents(merchant_id)
    if outstanding > 0:
        raise PreconditionError(
            f"Cannot delete account. You have outstanding debts totaling {format_amount(outstanding)}. "
            "Please clear all debts before deleting your account."
        )

    recent = recently_active_services(merchant_id)
    if recent:
        raise PreconditionError(
            f"Cannot delete account. You have active subscriptions ({', '.join(recent)}) "
            f"that must be inactive for at least {_cooldown_hours()} hours before account deletion."
        )


def _cooldown_hours() -> int:
    return current_app.config.get("SUBSCRIPTION_COOLDOWN_HOURS", 24)


def recently_active_services(merchant_id: int) -> list[str]:
    """Names of ACTIVE service subscriptions updated inside the cooldown window."""
    cutoff = utcnow() - timedelta(hours=_cooldown_hours())
    rows = (
        db.session.query(MerchantServiceSubscription, Service.name)
        .join(Service, Service.id == MerchantServiceSubscription.service_id)
        .filter(
            MerchantServiceSubscription.merchant_id == merchant_id,
            MerchantServiceSubscription.status == "ACTIVE",
        )
        .order_by(Service.name)
        .all()
    )
    return [name for sub, name in rows if as_naive_utc(sub.updated_at) > cutoff]


def _check_admin_delete(user: User, credentials: DeletionCredentials) -> None:
    if not credentials.admin_password:
        raise ValidationError("Admin password is required to delete a merchant account")
    if not auth_service.verify_password(credentials.admin_password, user.password_hash):
        raise InvalidCredentialsError("Invalid admin password")


# =============================================================================
# CASCADE
# =============================================================================

def _ids(query) -> list[int]:
    return [row[0] for row in query.all()]


def _delete_in(model, column, ids) -> int:
    if not ids:
        return 0
    return db.session.query(model).filter(column.in_(ids)).delete(synchronize_session=False)


def _cascade(merchant_id: int) -> int:
    """Hard-delete everything the merchant owns. Caller commits. Returns deleted staff count."""
    q = db.session.query

    # Orders and order-level data
    order_ids = _ids(q(Order.id).filter(Order.merchant_id == merchant_id))
    _delete_in(OrderItem, OrderItem.order_id, order_ids)
    _delete_in(OrderStatusHistory, OrderStatusHistory.order_id, order_ids)
    _delete_in(OrderSplit, OrderSplit.original_order_id, order_ids)
    _delete_in(Return, Return.order_id, order_ids)
    _delete_in(Order, Order.id, order_ids)

    # Products and product-level data
    product_ids = _ids(q(Product.id).filter(Product.merchant_id == merchant_id))
    warehouse_ids = _ids(q(Warehouse.id).filter(Warehouse.merchant_id == merchant_id))
    stock_item_ids = _ids(q(StockItem.id).filter(db.or_(
        StockItem.product_id.in_(product_ids or [-1]),
        StockItem.warehouse_id.in_(warehouse_ids or [-1]),
    )))
    _delete_in(StockMovement, StockMovement.stock_item_id, stock_item_ids)
    _delete_in(StockItem, StockItem.id, stock_item_ids)
    _delete_in(SerialNumber, SerialNumber.product_id, product_ids)
    _delete_in(Product, Product.id, product_ids)

    # Users and per-user data
    users = q(User.id, User.role).filter(User.merchant_id == merchant_id).all()
    user_ids = [u.id for u in users]
    staff_count = sum(1 for u in users if u.role in (MERCHANT_ADMIN, MERCHANT_STAFF))

    _delete_in(SessionToken, SessionToken.user_id, user_ids)
    _delete_in(Notification, Notification.recipient_id, user_ids)
    _delete_in(PasswordResetToken, PasswordResetToken.user_id, user_ids)
    if user_ids:
        # Keep the trail, drop the reference
        q(AuditLog).filter(AuditLog.user_id.in_(user_ids)).update(
            {AuditLog.user_id: None}, synchronize_session=False)
        q(OrderStatusHistory).filter(OrderStatusHistory.updated_by_user_id.in_(user_ids)).update(
            {OrderStatusHistory.updated_by_user_id: None}, synchronize_session=False)
        q(OrderSplit).filter(OrderSplit.created_by_user_id.in_(user_ids)).update(
            {OrderSplit.created_by_user_id: None}, synchronize_session=False)
        q(StockMovement).filter(StockMovement.performed_by_user_id.in_(user_ids)).update(
            {StockMovement.performed_by_user_id: None}, synchronize_session=False)
    _delete_in(User, User.id, user_ids)

    # Integrations
    api_key_ids = _ids(q(ApiKey.id).filter(ApiKey.merchant_id == merchant_id))
    _delete_in(ApiKeyLog, ApiKeyLog.api_key_id, api_key_ids)
    _delete_in(ApiKey, ApiKey.id, api_key_ids)

    webhook_ids = _ids(q(Webhook.id).filter(Webhook.merchant_id == merchant_id))
    _delete_in(WebhookLog, WebhookLog.webhook_id, webhook_ids)
    _delete_in(Webhook, Webhook.id, webhook_ids)

    # Billing
    subscription_ids = _ids(q(Subscription.id).filter(Subscription.merchant_id == merchant_id))
    _delete_in(SubscriptionAddon, SubscriptionAddon.subscription_id, subscription_ids)
    # Billing rows point at subscriptions; remove them first
    q(BillingRecord).filter(BillingRecord.merchant_id == merchant_id).delete(synchronize_session=False)
    _delete_in(Subscription, Subscription.id, subscription_ids)
    q(MerchantServiceSubscription).filter(
        MerchantServiceSubscription.merchant_id == merchant_id).delete(synchronize_session=False)

    # Warehouses: splits routed to them go with them
    _delete_in(OrderSplit, OrderSplit.warehouse_id, warehouse_ids)
    _delete_in(Warehouse, Warehouse.id, warehouse_ids)

    q(Merchant).filter(Merchant.id == merchant_id).delete(synchronize_session=False)
    return staff_count


# =============================================================================
# ENTRY POINT
# =============================================================================

def delete_merchant(merchant_id: int, requesting_user: User, credentials: DeletionCredentials) -> DeletionResult:
    merchant = db.session.get(Merchant, merchant_id)
    if not merchant:
        raise NotFoundError("Merchant not found")

    is_self = requesting_user.merchant_id == merchant_id

    if requesting_user.role == MERCHANT_ADMIN and is_self:
        _check_self_delete(merchant_id, requesting_user, credentials)
    elif requesting_user.role == PLATFORM_ADMIN:
        if is_self:
            raise AuthorizationError("Admin cannot delete their own merchant account")
        _check_admin_delete(requesting_user, credentials)
    else:
        current_app.logger.warning(
            "Merchant deletion denied: user_id=%s role=%s merchant_id=%s",
            requesting_user.id, requesting_user.role, merchant_id,
        )
        raise AuthorizationError("Forbidden")

    actor_id = requesting_user.id
    actor_email = requesting_user.email
    business_name = merchant.business_name

    try:
        staff_count = _cascade(merchant_id)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to delete merchant %s", merchant_id)
        raise PersistenceError("Failed to delete merchant") from e

    current_app.logger.info(
        "Merchant %s (%s) permanently deleted by %s; %d staff user(s) removed",
        merchant_id, business_name, actor_email, staff_count,
    )

    run_side_effect("audit", lambda: audit_service.log_action(
        # A self-deleting user no longer exists
        user_id=None if is_self else actor_id,
        action="SELF_DELETE_MERCHANT" if is_self else "DELETE_MERCHANT",
        entity_type="Merchant",
        entity_id=merchant_id,
        old_values={
            "business_name": business_name,
            "deleted_staff_count": staff_count,
            "deleted_by": actor_email,
        },
    ).id, context=f"for merchant {merchant_id}")

    return DeletionResult(merchant_id=merchant_id, deleted_staff_count=staff_count, self_deletion=is_self)
