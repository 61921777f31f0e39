from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


ORDER_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "PROCESSING",
    "READY_FOR_DISPATCH",
    "IN_TRANSIT",
    "DELIVERED",
    "CANCELLED",
    "RETURNED",
)


class Order(db.Model):
    """
    Customer order placed with a merchant.

    INVARIANT: total_amount_cents == order_value_cents + delivery_fee_cents.
    The only sanctioned way to change status is
    order_service.transition_order_status(), which appends exactly one
    OrderStatusHistory row per call.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_merchant_status", "merchant_id", "status"),
        db.CheckConstraint(
            "total_amount_cents = order_value_cents + delivery_fee_cents",
            name="ck_orders_total_amount",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False)

    order_value_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH_ON_DELIVERY")

    status = db.Column(db.String(32), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)

    # Stamped once, on the first transition to DELIVERED
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self, *, expand: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "merchant_id": self.merchant_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "order_value_cents": self.order_value_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "tracking_number": self.tracking_number,
            "delivered_at": to_utc_z(self.delivered_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if expand:
            data["merchant"] = self.merchant.to_summary_dict() if self.merchant else None
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item of an order. Immutable once the order exists."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product": {
                "id": self.product.id,
                "sku": self.product.sku,
                "name": self.product.name,
            } if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class OrderStatusHistory(db.Model):
    """
    One row per status transition.

    IMMUTABLE: append-only. Rows go away only with their merchant.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("status_history", lazy=True, order_by="OrderStatusHistory.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "updated_by_user_id": self.updated_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class OrderSplit(db.Model):
    """A portion of an order assigned to one warehouse for fulfilment."""
    __tablename__ = "order_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    original_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    items = db.Column(db.JSON, nullable=False, default=list)  # [{"order_item_id": int, "quantity": int}]
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    original_order = db.relationship("Order", backref=db.backref("splits", lazy=True))
    warehouse = db.relationship("Warehouse")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_order_id": self.original_order_id,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "items": self.items,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Return(db.Model):
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "reason": self.reason,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
