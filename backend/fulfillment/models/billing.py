from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


BILLING_TYPES = ("DAILY_SERVICE_FEE", "SUBSCRIPTION", "ADDON", "OTHER")
BILLING_STATUSES = ("PENDING", "PAID", "OVERDUE")
OUTSTANDING_BILLING_STATUSES = ("PENDING", "OVERDUE")


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    base_price_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "base_price_cents": self.base_price_cents,
            "is_active": self.is_active,
        }


class Subscription(db.Model):
    """A merchant's subscription to a plan. The plan's base price is the per-delivery fee."""
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_merchant_status", "merchant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("subscription_plans.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, CANCELLED, EXPIRED
    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("subscriptions", lazy=True))
    plan = db.relationship("SubscriptionPlan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SubscriptionAddon(db.Model):
    __tablename__ = "subscription_addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class Service(db.Model):
    """Catalog of platform services a merchant can subscribe to (e.g. "API Access")."""
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class MerchantServiceSubscription(db.Model):
    """
    A merchant's subscription to one platform service.

    updated_at drives the self-deletion cooldown: an ACTIVE row touched in
    the last SUBSCRIPTION_COOLDOWN_HOURS blocks merchant self-deletion.
    """
    __tablename__ = "merchant_service_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "service_id", name="uq_merchant_service"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("service_subscriptions", lazy=True))
    service = db.relationship("Service")


class BillingRecord(db.Model):
    """
    A single charge raised against a merchant.

    DAILY_SERVICE_FEE rows are created by order delivery; reference_number is
    the delivered order's order_number.
    """
    __tablename__ = "billing_records"
    __table_args__ = (
        db.Index("ix_billing_records_merchant_status", "merchant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=True, index=True)
    billing_type = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    reference_number = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("billing_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "subscription_id": self.subscription_id,
            "billing_type": self.billing_type,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
