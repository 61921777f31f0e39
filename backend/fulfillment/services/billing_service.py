# Overview: Service-layer operations for merchant billing records.

from __future__ import annotations

from ..extensions import db
from ..models import BillingRecord, Subscription, OUTSTANDING_BILLING_STATUSES
from fulfillment.time_utils import utcnow


def active_subscription(merchant_id: int) -> Subscription | None:
    """Most recently started ACTIVE subscription, if any."""
    return (
        db.session.query(Subscription)
        .filter(Subscription.merchant_id == merchant_id, Subscription.status == "ACTIVE")
        .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        .first()
    )


def record_delivery_fee(order) -> BillingRecord | None:
    """
    Raise the per-delivery DAILY_SERVICE_FEE charge for a delivered order.

    Amount is the base price of the merchant's active plan. Returns None
    (and writes nothing) when the merchant has no active subscription.
    """
    subscription = active_subscription(order.merchant_id)
    if subscription is None:
        return None

    record = BillingRecord(
        merchant_id=order.merchant_id,
        subscription_id=subscription.id,
        billing_type="DAILY_SERVICE_FEE",
        description=f"Delivery fee for order {order.order_number}",
        amount_cents=subscription.plan.base_price_cents,
        due_date=utcnow(),
        status="PENDING",
        reference_number=order.order_number,
    )
    db.session.add(record)
    db.session.commit()
    return record


def outstanding_balance_cents(merchant_id: int) -> int:
    """Sum of PENDING + OVERDUE billing amounts for a merchant."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(BillingRecord.amount_cents), 0))
        .filter(
            BillingRecord.merchant_id == merchant_id,
            BillingRecord.status.in_(OUTSTANDING_BILLING_STATUSES),
        )
        .scalar()
    )
    return int(total or 0)
