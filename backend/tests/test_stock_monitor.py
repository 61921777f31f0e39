# Overview: Pytest coverage for the stock sweep.

from datetime import timedelta

import pytest

from fulfillment.models import Notification, Product, StockItem
from fulfillment.services import stock_monitor_service
from fulfillment.time_utils import utcnow


def _stock(db_session, merchant, warehouse, sku, *, quantity, reorder_level, reserved=0, expiry=None):
    product = Product(merchant_id=merchant.id, sku=sku, name=f"Product {sku}", unit_price_cents=1000)
    db_session.add(product)
    db_session.flush()
    item = StockItem(
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=quantity,
        reserved_quantity=reserved,
        reorder_level=reorder_level,
        expiry_date=expiry,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def stocked(db_session, merchant_a, warehouse, merchant_admin, merchant_staff, warehouse_staff):
    """One item per classification for merchant A."""
    return {
        "out": _stock(db_session, merchant_a, warehouse, "OUT", quantity=4, reserved=4, reorder_level=5),
        "low": _stock(db_session, merchant_a, warehouse, "LOW", quantity=3, reorder_level=10),
        "ok": _stock(db_session, merchant_a, warehouse, "OK", quantity=100, reorder_level=10),
        "expired": _stock(
            db_session, merchant_a, warehouse, "EXP",
            quantity=20, reorder_level=5, expiry=utcnow() - timedelta(days=1),
        ),
    }


class TestClassify:

    def test_available_is_derived(self, db_session, stocked):
        item = db_session.get(StockItem, stocked["out"].id)
        assert item.available_quantity == 0

        item.quantity = 10
        db_session.commit()
        assert db_session.get(StockItem, item.id).available_quantity == 6

    def test_classification(self, db_session, stocked):
        now = utcnow()

        assert stock_monitor_service.classify(stocked["out"], now) == (True, False, False)
        assert stock_monitor_service.classify(stocked["low"], now) == (False, True, False)
        assert stock_monitor_service.classify(stocked["ok"], now) == (False, False, False)
        assert stock_monitor_service.classify(stocked["expired"], now) == (False, False, True)

    def test_low_stock_boundary_is_inclusive(self, db_session, merchant_a, warehouse):
        item = _stock(db_session, merchant_a, warehouse, "EDGE", quantity=10, reorder_level=10)

        assert stock_monitor_service.classify(item, utcnow()) == (False, True, False)

    def test_oversold_item_is_out_of_stock(self, db_session, merchant_a, warehouse):
        item = _stock(db_session, merchant_a, warehouse, "OVER", quantity=2, reserved=5, reorder_level=5)

        assert item.available_quantity == -3
        assert stock_monitor_service.classify(item, utcnow()) == (True, False, False)

    def test_expired_requires_available_stock(self, db_session, merchant_a, warehouse):
        item = _stock(
            db_session, merchant_a, warehouse, "GONE",
            quantity=0, reorder_level=0, expiry=utcnow() - timedelta(days=3),
        )

        out_of_stock, _, expired = stock_monitor_service.classify(item, utcnow())
        assert out_of_stock is True
        assert expired is False


class TestSweep:

    def test_report_counts(self, db_session, stocked):
        report = stock_monitor_service.sweep()

        assert report.to_dict() == {
            "items_scanned": 4,
            "out_of_stock": 1,
            "low_stock": 1,
            "critical": 2,
            "expired": 1,
            "merchants_affected": 1,
            "notifications_created": 5,
        }

    def test_merchant_admin_alerts(self, db_session, stocked, merchant_admin, merchant_staff):
        stock_monitor_service.sweep()

        admin_rows = db_session.query(Notification).filter_by(recipient_id=merchant_admin.id).all()
        by_type = sorted((n.type, n.priority) for n in admin_rows)
        assert by_type == [("STOCK_LOW", "HIGH"), ("STOCK_OUT", "URGENT"), ("WAREHOUSE_ALERT", "HIGH")]

        expired_alert = next(n for n in admin_rows if n.type == "WAREHOUSE_ALERT")
        assert expired_alert.title == "Expired Products Alert"
        assert [i["sku"] for i in expired_alert.meta["expiredItems"]] == ["EXP"]

        assert db_session.query(Notification).filter_by(recipient_id=merchant_staff.id).count() == 0

    def test_warehouse_staff_alerts(self, db_session, stocked, warehouse_staff):
        stock_monitor_service.sweep()

        rows = {n.title: n for n in db_session.query(Notification).filter_by(recipient_id=warehouse_staff.id)}
        assert set(rows) == {"Critical Stock Alert", "Expired Products Removal Required"}

        critical = rows["Critical Stock Alert"]
        assert critical.priority == "URGENT"
        assert critical.message == "2 items are critically low in stock and need immediate attention"
        assert sorted(i["sku"] for i in critical.meta["criticalItems"]) == ["LOW", "OUT"]

    def test_critical_threshold_from_config(self, app, db_session, stocked, warehouse_staff, monkeypatch):
        monkeypatch.setitem(app.config, "CRITICAL_STOCK_THRESHOLD", 0)

        report = stock_monitor_service.sweep()

        assert report.critical == 1

    def test_healthy_inventory_creates_nothing(self, db_session, merchant_a, warehouse, merchant_admin):
        _stock(db_session, merchant_a, warehouse, "FINE", quantity=50, reorder_level=5)

        report = stock_monitor_service.sweep()

        assert report.notifications_created == 0
        assert report.merchants_affected == 0
        assert db_session.query(Notification).count() == 0

    def test_oversold_item_alerts_admins_and_warehouse(
        self, db_session, merchant_a, warehouse, merchant_admin, warehouse_staff
    ):
        _stock(db_session, merchant_a, warehouse, "OVER", quantity=2, reserved=5, reorder_level=5)

        report = stock_monitor_service.sweep()

        assert (report.out_of_stock, report.low_stock, report.critical) == (1, 0, 1)
        assert db_session.query(Notification).filter_by(recipient_id=merchant_admin.id, type="STOCK_OUT").count() == 1
        critical = db_session.query(Notification).filter_by(
            recipient_id=warehouse_staff.id, title="Critical Stock Alert"
        ).one()
        assert [i["sku"] for i in critical.meta["criticalItems"]] == ["OVER"]

    def test_alerts_stay_with_their_merchant(
        self, db_session, merchant_a, merchant_b, warehouse, merchant_admin, merchant_admin_b
    ):
        _stock(db_session, merchant_b, warehouse, "B-OUT", quantity=0, reorder_level=5)

        stock_monitor_service.sweep()

        assert db_session.query(Notification).filter_by(recipient_id=merchant_admin.id).count() == 0
        assert db_session.query(Notification).filter_by(recipient_id=merchant_admin_b.id, type="STOCK_OUT").count() == 1


class TestStockMonitorRoute:

    def test_admin_runs_sweep(self, client, db_session, stocked, platform_admin, auth_headers):
        response = client.post("/api/admin/stock-monitor", headers=auth_headers(platform_admin))

        assert response.status_code == 200
        assert response.get_json()["report"]["items_scanned"] == 4

    def test_non_admin_forbidden(self, client, db_session, warehouse_staff, auth_headers):
        response = client.post("/api/admin/stock-monitor", headers=auth_headers(warehouse_staff))

        assert response.status_code == 403
