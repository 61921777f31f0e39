# Overview: Service-layer operations for orders; intake, status state machine and splits.

"""
Order Lifecycle Service

STATUS STATE MACHINE:
    transition_order_status() is the only sanctioned way to change
    Order.status. One call:
      1. persists the new status (+ tracking number, + delivered_at on the
         first DELIVERED) and appends exactly one OrderStatusHistory row,
         in one commit. A failed commit rolls back and raises
         PersistenceError; nothing else happens.
      2. then runs best-effort side effects, each independently:
         billing (DELIVERED only), audit, in-app notification, customer
         email, merchant email, webhooks.
    Side-effect failures never fail the transition. They are logged and
    returned in TransitionResult.side_effects.

    Any status may follow any other. The order row is locked FOR UPDATE
    while the transition is applied (ignored by SQLite, honored by
    row-locking databases).

ROLES:
    Only PLATFORM_ADMIN, WAREHOUSE_STAFF and LOGISTICS_PARTNER drive
    status. Merchant roles are rejected here, not just at the route.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderSplit,
    Product,
    User,
    Warehouse,
    ORDER_STATUSES,
)
from ..roles import (
    MERCHANT_ADMIN,
    WAREHOUSE_STAFF,
    MERCHANT_ROLES,
    ORDER_STATUS_ROLES,
    ORDER_SPLIT_ROLES,
    ORDER_CREATE_ROLES,
)
from ..errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    SideEffectError,
    ValidationError,
)
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    require_positive_int,
    require_amount_cents,
    MAX_AMOUNT_CENTS,
)
from . import (
    audit_service,
    billing_service,
    email_service,
    notification_service,
    tenant_service,
    webhook_service,
)
from .notification_service import ByRole
from .side_effects import SideEffectLog, SideEffectOutcome
from fulfillment.time_utils import utcnow


ORDER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "customer_name",
        "customer_email",
        "customer_phone",
        "shipping_address",
        "delivery_fee_cents",
        "payment_method",
        "notes",
    }),
    required_on_create=frozenset({"customer_name", "customer_phone", "shipping_address"}),
    aliases={
        "customerName": "customer_name",
        "customerEmail": "customer_email",
        "customerPhone": "customer_phone",
        "shippingAddress": "shipping_address",
        "deliveryFeeCents": "delivery_fee_cents",
        "paymentMethod": "payment_method",
    },
)

PAYMENT_METHODS = ("CASH_ON_DELIVERY", "PREPAID", "BANK_TRANSFER", "CARD")

ORDER_NUMBER_ATTEMPTS = 5


@dataclass
class TransitionResult:
    order: Order
    previous_status: str
    side_effects: list[SideEffectOutcome] = field(default_factory=list)


@dataclass
class CreateOrderResult:
    order: Order
    side_effects: list[SideEffectOutcome] = field(default_factory=list)


def _commit_primary(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        raise PersistenceError(f"Failed to {action}") from e


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int, user: User) -> Order:
    """Platform staff see every order; merchant users only their merchant's."""
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    tenant_service.require_merchant_access(user, order.merchant_id, not_found="Order not found")
    return order


def list_orders(
    user: User,
    *,
    status: str | None = None,
    merchant_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    q = db.session.query(Order)

    if user.role in MERCHANT_ROLES:
        q = q.filter(Order.merchant_id == tenant_service.resolve_merchant_scope(user, merchant_id))
    elif merchant_id is not None:
        q = q.filter(Order.merchant_id == merchant_id)

    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter(Order.status == status)

    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    total = q.count()
    orders = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


# =============================================================================
# INTAKE
# =============================================================================

def generate_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _unique_order_number() -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number()
        if not db.session.query(Order.id).filter_by(order_number=candidate).first():
            return candidate
    raise PersistenceError("Could not allocate a unique order number")


def _parse_order_items(merchant_id: int, raw_items) -> list[tuple[Product, int, int]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = require_positive_int(raw.get("product_id", raw.get("productId")), f"items[{idx}].product_id")
        quantity = require_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        parsed.append((idx, product_id, quantity, raw.get("unit_price_cents", raw.get("unitPriceCents"))))

    product_ids = {p for _, p, _, _ in parsed}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(
            Product.id.in_(product_ids),
            Product.merchant_id == merchant_id,
        ).all()
    }

    lines = []
    for idx, product_id, quantity, unit_price in parsed:
        product = products.get(product_id)
        if product is None:
            raise ValidationError(f"items[{idx}]: product {product_id} does not belong to this merchant")
        if not product.is_active:
            raise ValidationError(f"items[{idx}]: product {product.sku} is inactive")
        if unit_price is None:
            unit_price = product.unit_price_cents
        unit_price = require_amount_cents(unit_price, f"items[{idx}].unit_price_cents")
        lines.append((product, quantity, unit_price))
    return lines


def create_order(merchant_id: int | None, data: dict, acting_user: User) -> CreateOrderResult:
    """
    Create an order with its items and the initial PENDING history row.

    order_value = sum(quantity * unit_price); total = order_value + delivery_fee.
    Side effects (best-effort): audit, ORDER_CREATED notification to warehouse
    staff, order.created webhook.
    """
    if acting_user.role not in ORDER_CREATE_ROLES:
        raise AuthorizationError("Insufficient role to create orders")

    merchant_id = tenant_service.resolve_merchant_scope(acting_user, merchant_id)

    data = dict(data or {})
    raw_items = data.pop("items", None)
    data.pop("merchant_id", None)
    data.pop("merchantId", None)

    fields = validate_payload(model=Order, payload=data, policy=ORDER_POLICY, partial=False)
    if not isinstance(fields.get("shipping_address"), dict):
        raise ValidationError("shipping_address must be an object")

    payment_method = fields.get("payment_method") or "CASH_ON_DELIVERY"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment_method: {payment_method}")
    fields["payment_method"] = payment_method

    delivery_fee = require_amount_cents(fields.pop("delivery_fee_cents", None) or 0, "delivery_fee_cents")
    lines = _parse_order_items(merchant_id, raw_items)

    order_value = sum(quantity * unit_price for _, quantity, unit_price in lines)
    total = order_value + delivery_fee
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Order total cannot exceed {MAX_AMOUNT_CENTS}")

    order = Order(
        order_number=_unique_order_number(),
        merchant_id=merchant_id,
        order_value_cents=order_value,
        delivery_fee_cents=delivery_fee,
        total_amount_cents=total,
        status="PENDING",
        **fields,
    )
    db.session.add(order)
    db.session.flush()

    for product, quantity, unit_price in lines:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price,
            total_price_cents=quantity * unit_price,
        ))

    db.session.add(OrderStatusHistory(
        order_id=order.id,
        status="PENDING",
        updated_by_user_id=acting_user.id,
        notes="Order created",
    ))

    _commit_primary("create order")

    order_id = order.id
    order_number = order.order_number
    customer_name = order.customer_name
    payload = order.to_dict()

    effects = SideEffectLog()
    context = f"for order {order_number}"
    effects.run("audit", lambda: audit_service.log_action(
        user_id=acting_user.id,
        action="CREATE_ORDER",
        entity_type="Order",
        entity_id=order_id,
        new_values={"order_number": order_number, "total_amount_cents": total, "items": len(lines)},
    ).id, context=context)
    effects.run("notification", lambda: len(notification_service.notify(
        ByRole(WAREHOUSE_STAFF),
        metadata={"orderId": order_id, "orderNumber": order_number, "merchantId": merchant_id},
        **notification_service.order_created(order_number, customer_name),
    )), context=context)
    effects.run("webhook", lambda: [
        o.to_dict() for o in webhook_service.trigger_webhooks(merchant_id, "order.created", payload)
    ], context=context)

    current_app.logger.info("Order %s created for merchant %s (total=%s)", order_number, merchant_id, total)
    return CreateOrderResult(order=db.session.get(Order, order_id), side_effects=effects.outcomes)


# =============================================================================
# STATUS STATE MACHINE
# =============================================================================

def _merchant_admins(merchant_id: int) -> list[User]:
    return (
        db.session.query(User)
        .filter(User.merchant_id == merchant_id, User.role == MERCHANT_ADMIN, User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )


def _status_notification(order_number: str, customer_name: str, status: str) -> dict:
    if status == "DELIVERED":
        return notification_service.order_delivered(order_number, customer_name)
    if status == "CANCELLED":
        return notification_service.order_cancelled(order_number)
    return notification_service.order_updated(order_number, status)


def _send_checked(to_email: str, subject: str, html: str) -> bool:
    sent = email_service.send_email(to_email, subject, html)
    if sent is False:
        raise SideEffectError(f"Email to {to_email} failed")
    return bool(sent)


def _email_customer(order_id: int, status: str):
    order = db.session.get(Order, order_id)
    if not order.customer_email:
        return {"skipped": "no customer email"}
    subject, html = email_service.customer_status_email(order, status)
    return {"sent": _send_checked(order.customer_email, subject, html)}


def _email_merchant_admins(order_id: int, status: str):
    order = db.session.get(Order, order_id)
    subject, html = email_service.merchant_status_email(order, status)
    failed = []
    sent = 0
    for admin in _merchant_admins(order.merchant_id):
        try:
            if _send_checked(admin.email, subject, html):
                sent += 1
        except SideEffectError:
            failed.append(admin.email)
    if failed:
        raise SideEffectError(f"Email to {', '.join(failed)} failed")
    return {"sent": sent}


def _billing(order_id: int):
    order = db.session.get(Order, order_id)
    record = billing_service.record_delivery_fee(order)
    if record is None:
        return {"skipped": "no active subscription"}
    return {"billing_record_id": record.id, "amount_cents": record.amount_cents}


def _webhook_events(status: str) -> list[str]:
    events = ["order.status_changed"]
    if status == "DELIVERED":
        events.append("order.delivered")
    elif status == "CANCELLED":
        events.append("order.cancelled")
    return events


def transition_order_status(
    order_id: int,
    new_status: str,
    acting_user: User,
    *,
    notes: str | None = None,
    tracking_number: str | None = None,
) -> TransitionResult:
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {new_status}")

    if acting_user.role not in ORDER_STATUS_ROLES:
        current_app.logger.warning(
            "Order status change denied: user_id=%s role=%s order_id=%s",
            acting_user.id, acting_user.role, order_id,
        )
        raise AuthorizationError("Only platform staff can update order status")

    order = (
        db.session.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")

    previous_status = order.status
    now = utcnow()

    order.status = new_status
    if tracking_number:
        order.tracking_number = str(tracking_number).strip()[:64]
    if new_status == "DELIVERED" and order.delivered_at is None:
        order.delivered_at = now

    db.session.add(OrderStatusHistory(
        order_id=order.id,
        status=new_status,
        updated_by_user_id=acting_user.id,
        notes=notes or f"Status updated to {new_status}",
    ))

    _commit_primary(f"update order {order_id} status")

    merchant_id = order.merchant_id
    order_number = order.order_number
    customer_name = order.customer_name
    acting_user_id = acting_user.id
    context = f"for order {order_number} -> {new_status}"

    effects = SideEffectLog()

    if new_status == "DELIVERED":
        effects.run("billing", lambda: _billing(order_id), context=context)

    effects.run("audit", lambda: audit_service.log_action(
        user_id=acting_user_id,
        action="UPDATE_ORDER_STATUS",
        entity_type="Order",
        entity_id=order_id,
        old_values={"status": previous_status},
        new_values={"status": new_status, "notes": notes, "tracking_number": tracking_number},
    ).id, context=context)

    effects.run("notification", lambda: len(notification_service.notify(
        ByRole(MERCHANT_ADMIN, merchant_id=merchant_id),
        metadata={"orderId": order_id, "orderNumber": order_number, "status": new_status},
        **_status_notification(order_number, customer_name, new_status),
    )), context=context)

    effects.run("email_customer", lambda: _email_customer(order_id, new_status), context=context)
    effects.run("email_merchant", lambda: _email_merchant_admins(order_id, new_status), context=context)

    def _webhooks():
        payload = {
            "order": db.session.get(Order, order_id).to_dict(),
            "previousStatus": previous_status,
            "newStatus": new_status,
        }
        delivered = []
        for event in _webhook_events(new_status):
            delivered.extend(o.to_dict() for o in webhook_service.trigger_webhooks(merchant_id, event, payload))
        return delivered

    effects.run("webhook", _webhooks, context=context)

    if effects.failures:
        current_app.logger.warning(
            "Order %s -> %s committed with %d failed side effect(s): %s",
            order_number, new_status, len(effects.failures), [o.kind for o in effects.failures],
        )

    return TransitionResult(
        order=db.session.get(Order, order_id),
        previous_status=previous_status,
        side_effects=effects.outcomes,
    )


# =============================================================================
# SPLITS
# =============================================================================

def split_order(order_id: int, warehouse_id, items, acting_user: User) -> OrderSplit:
    """
    Assign a subset of an order's items to a warehouse.

    All-or-nothing: one invalid item fails the whole request.
    """
    if acting_user.role not in ORDER_SPLIT_ROLES:
        raise AuthorizationError("Only platform admins and warehouse staff can split orders")

    if warehouse_id is None or warehouse_id == "":
        raise ValidationError("Warehouse ID and items are required")
    if not isinstance(items, list) or not items:
        raise ValidationError("Warehouse ID and items are required")
    warehouse_id = require_positive_int(warehouse_id, "warehouse_id")

    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")

    if not db.session.get(Warehouse, warehouse_id):
        raise NotFoundError("Warehouse not found")

    item_quantities = {item.id: item.quantity for item in order.items}
    recorded = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        order_item_id = require_positive_int(raw.get("order_item_id", raw.get("orderItemId")), f"items[{idx}].order_item_id")
        quantity = require_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        if order_item_id not in item_quantities:
            raise ValidationError("Some items do not belong to this order")
        if quantity > item_quantities[order_item_id]:
            raise ValidationError(f"items[{idx}].quantity exceeds the ordered quantity")
        recorded.append({"order_item_id": order_item_id, "quantity": quantity})

    split = OrderSplit(
        original_order_id=order.id,
        warehouse_id=warehouse_id,
        status="PENDING",
        items=recorded,
        created_by_user_id=acting_user.id,
    )
    db.session.add(split)
    _commit_primary(f"create split for order {order_id}")

    split_id = split.id
    effects = SideEffectLog()
    effects.run("audit", lambda: audit_service.log_action(
        user_id=acting_user.id,
        action="CREATE_ORDER_SPLIT",
        entity_type="OrderSplit",
        entity_id=split_id,
        new_values={"order_id": order_id, "warehouse_id": warehouse_id, "items": recorded},
    ).id, context=f"for split {split_id}")

    return db.session.get(OrderSplit, split_id)
