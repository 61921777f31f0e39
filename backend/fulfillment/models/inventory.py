from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data, scoped to a merchant.

    SKUs are unique within a merchant.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "sku", name="uq_products_merchant_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} merchant_id={self.merchant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "is_active": self.is_active,
        }


class StockItem(db.Model):
    """
    Quantity of one product held in one warehouse.

    INVARIANT: available_quantity == quantity - reserved_quantity.
    Maintained by the before_insert/before_update listener below, so
    inventory collaborators only ever set quantity and reserved_quantity.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_items_product_warehouse"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_stock_items_reserved_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0, index=True)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_items", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("stock_items", lazy=True))

    def recompute_available(self) -> None:
        self.available_quantity = (self.quantity or 0) - (self.reserved_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "reorder_level": self.reorder_level,
            "expiry_date": to_utc_z(self.expiry_date),
        }


@event.listens_for(StockItem, "before_insert")
@event.listens_for(StockItem, "before_update")
def _sync_available_quantity(mapper, connection, target: StockItem) -> None:
    target.recompute_available()


class StockMovement(db.Model):
    """Append-only log of stock changes (owned by inventory collaborators)."""
    __tablename__ = "stock_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(32), nullable=False)  # STOCK_IN, STOCK_OUT, ADJUSTMENT, TRANSFER
    quantity = db.Column(db.Integer, nullable=False)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class SerialNumber(db.Model):
    __tablename__ = "serial_numbers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "serial", name="uq_serial_numbers_product_serial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    serial = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="IN_STOCK")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
