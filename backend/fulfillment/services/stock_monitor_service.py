# Overview: Stock sweep; flags low, out-of-stock and expired items and raises role notifications.

"""
Stock Monitor

Classification of one stock item (mutually exclusive for out/low):
- out-of-stock: available == 0
- low-stock:    0 < available <= reorder_level
- expired:      expiry_date <= now and available > 0

Per merchant (the product's merchant):
- one MERCHANT_ADMIN batch per out-of-stock item (STOCK_OUT, URGENT) and per
  low-stock item (STOCK_LOW, HIGH), scoped to that merchant's admins
- one URGENT WAREHOUSE_ALERT batch to WAREHOUSE_STAFF listing the flagged
  items at or below CRITICAL_STOCK_THRESHOLD, if any
- for expired items, one HIGH WAREHOUSE_ALERT batch to the merchant's
  admins and one to WAREHOUSE_STAFF

Read-only apart from notification rows. Scheduling is external (CLI or the
admin endpoint).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import StockItem, Product
from ..roles import MERCHANT_ADMIN, WAREHOUSE_STAFF
from . import notification_service
from .notification_service import ByRole
from fulfillment.time_utils import utcnow, as_naive_utc


@dataclass
class SweepReport:
    items_scanned: int = 0
    out_of_stock: int = 0
    low_stock: int = 0
    critical: int = 0
    expired: int = 0
    merchants_affected: int = 0
    notifications_created: int = 0

    def to_dict(self) -> dict:
        return {
            "items_scanned": self.items_scanned,
            "out_of_stock": self.out_of_stock,
            "low_stock": self.low_stock,
            "critical": self.critical,
            "expired": self.expired,
            "merchants_affected": self.merchants_affected,
            "notifications_created": self.notifications_created,
        }


def classify(item: StockItem, now) -> tuple[bool, bool, bool]:
    """Returns (out_of_stock, low_stock, expired) for one stock item."""
    available = item.available_quantity or 0
    out_of_stock = available <= 0
    low_stock = 0 < available <= (item.reorder_level or 0)
    expiry = as_naive_utc(item.expiry_date)
    expired = expiry is not None and expiry <= now and available > 0
    return out_of_stock, low_stock, expired


def _item_meta(item: StockItem, merchant_id: int) -> dict:
    return {
        "productId": item.product.id,
        "productName": item.product.name,
        "sku": item.product.sku,
        "warehouseId": item.warehouse.id,
        "warehouseName": item.warehouse.name,
        "currentStock": item.available_quantity,
        "reorderLevel": item.reorder_level,
        "merchantId": merchant_id,
    }


def _notify(target, **kwargs) -> int:
    return len(notification_service.notify(target, commit=False, **kwargs))


def sweep() -> SweepReport:
    logger = current_app.logger
    now = utcnow()
    threshold = current_app.config.get("CRITICAL_STOCK_THRESHOLD", 5)

    items = (
        db.session.query(StockItem)
        .options(joinedload(StockItem.product), joinedload(StockItem.warehouse))
        .join(Product, Product.id == StockItem.product_id)
        .order_by(Product.merchant_id, StockItem.id)
        .all()
    )

    report = SweepReport(items_scanned=len(items))
    flagged = defaultdict(list)
    expired = defaultdict(list)

    for item in items:
        is_out, is_low, is_expired = classify(item, now)
        merchant_id = item.product.merchant_id
        if is_out or is_low:
            flagged[merchant_id].append((item, is_out))
        if is_expired:
            expired[merchant_id].append(item)

    for merchant_id in sorted(set(flagged) | set(expired)):
        admins = ByRole(MERCHANT_ADMIN, merchant_id=merchant_id)

        for item, is_out in flagged.get(merchant_id, []):
            meta = _item_meta(item, merchant_id)
            if is_out:
                report.out_of_stock += 1
                template = notification_service.stock_out(item.product.name)
            else:
                report.low_stock += 1
                template = notification_service.stock_low(item.product.name, item.available_quantity, item.reorder_level)
            report.notifications_created += _notify(admins, metadata=meta, **template)

        critical = [item for item, _ in flagged.get(merchant_id, []) if item.available_quantity <= threshold]
        if critical:
            report.critical += len(critical)
            report.notifications_created += _notify(
                ByRole(WAREHOUSE_STAFF),
                title="Critical Stock Alert",
                message=f"{len(critical)} items are critically low in stock and need immediate attention",
                type="WAREHOUSE_ALERT",
                priority="URGENT",
                metadata={
                    "merchantId": merchant_id,
                    "criticalItems": [
                        {
                            "productId": item.product.id,
                            "productName": item.product.name,
                            "sku": item.product.sku,
                            "currentStock": item.available_quantity,
                            "warehouseName": item.warehouse.name,
                        }
                        for item in critical
                    ],
                },
            )

        expired_items = expired.get(merchant_id, [])
        if expired_items:
            report.expired += len(expired_items)
            expired_meta = {
                "merchantId": merchant_id,
                "expiredItems": [
                    {
                        "productId": item.product.id,
                        "productName": item.product.name,
                        "sku": item.product.sku,
                        "quantity": item.available_quantity,
                        "expiryDate": item.expiry_date.isoformat() if item.expiry_date else None,
                        "warehouseName": item.warehouse.name,
                    }
                    for item in expired_items
                ],
            }
            report.notifications_created += _notify(
                admins,
                title="Expired Products Alert",
                message=f"{len(expired_items)} products have expired and need to be removed from inventory",
                type="WAREHOUSE_ALERT",
                priority="HIGH",
                metadata=expired_meta,
            )
            report.notifications_created += _notify(
                ByRole(WAREHOUSE_STAFF),
                title="Expired Products Removal Required",
                message=f"{len(expired_items)} expired products need to be removed from warehouse inventory",
                type="WAREHOUSE_ALERT",
                priority="HIGH",
                metadata=expired_meta,
            )

        report.merchants_affected += 1

    db.session.commit()

    logger.info(
        "Stock sweep: scanned=%d out=%d low=%d critical=%d expired=%d notifications=%d",
        report.items_scanned, report.out_of_stock, report.low_stock,
        report.critical, report.expired, report.notifications_created,
    )
    return report
