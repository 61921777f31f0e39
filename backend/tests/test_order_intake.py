# Overview: Pytest coverage for order creation, listing and tenant-scoped reads.

import re

import pytest

from fulfillment.models import AuditLog, Notification, Order, OrderItem, OrderStatusHistory
from fulfillment.errors import AuthorizationError, NotFoundError, ValidationError
from fulfillment.services import order_service


def _payload(product_id, **overrides):
    data = {
        "customerName": "Tunde Bello",
        "customerPhone": "+2348022222222",
        "shippingAddress": {"line1": "4 Allen Ave", "city": "Ikeja"},
        "items": [{"productId": product_id, "quantity": 2}],
    }
    data.update(overrides)
    return data


class TestCreateOrder:

    def test_totals_items_and_initial_history(self, db_session, merchant_admin, product_a, warehouse_staff):
        result = order_service.create_order(None, _payload(
            product_a.id,
            deliveryFeeCents=1500,
            items=[
                {"productId": product_a.id, "quantity": 2},
                {"productId": product_a.id, "quantity": 1, "unitPriceCents": 4000},
            ],
        ), merchant_admin)

        order = result.order
        assert re.match(r"^ORD-\d{8}-[0-9A-F]{6}$", order.order_number)
        assert order.status == "PENDING"
        assert order.order_value_cents == 2 * 5000 + 4000
        assert order.delivery_fee_cents == 1500
        assert order.total_amount_cents == order.order_value_cents + order.delivery_fee_cents
        assert order.payment_method == "CASH_ON_DELIVERY"

        items = db_session.query(OrderItem).filter_by(order_id=order.id).order_by(OrderItem.id).all()
        assert [(i.quantity, i.unit_price_cents, i.total_price_cents) for i in items] == [
            (2, 5000, 10000),
            (1, 4000, 4000),
        ]

        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert [(h.status, h.notes) for h in history] == [("PENDING", "Order created")]

    def test_side_effects_notify_warehouse_and_audit(self, db_session, merchant_admin, product_a, warehouse_staff):
        result = order_service.create_order(None, _payload(product_a.id), merchant_admin)

        assert [o.kind for o in result.side_effects] == ["audit", "notification", "webhook"]
        assert all(o.ok for o in result.side_effects)

        note = db_session.query(Notification).filter_by(recipient_id=warehouse_staff.id).one()
        assert note.type == "ORDER_CREATED"
        assert note.title == "New Order Received"
        assert result.order.order_number in note.message

        assert db_session.query(AuditLog).filter_by(action="CREATE_ORDER", entity_id=str(result.order.id)).count() == 1

    def test_platform_admin_must_name_merchant(self, db_session, platform_admin, merchant_a, product_a):
        with pytest.raises(ValidationError):
            order_service.create_order(None, _payload(product_a.id), platform_admin)

        result = order_service.create_order(merchant_a.id, _payload(product_a.id), platform_admin)
        assert result.order.merchant_id == merchant_a.id

    def test_merchant_user_cannot_order_for_other_merchant(self, db_session, merchant_staff, merchant_b, product_a):
        with pytest.raises(AuthorizationError):
            order_service.create_order(merchant_b.id, _payload(product_a.id), merchant_staff)

        assert db_session.query(Order).count() == 0

    def test_foreign_product_rejected(self, db_session, merchant_admin, product_b):
        with pytest.raises(ValidationError, match="does not belong"):
            order_service.create_order(None, _payload(product_b.id), merchant_admin)

        assert db_session.query(Order).count() == 0

    def test_inactive_product_rejected(self, db_session, merchant_admin, product_a):
        product_a.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError, match="inactive"):
            order_service.create_order(None, _payload(product_a.id), merchant_admin)

    def test_missing_required_fields(self, db_session, merchant_admin, product_a):
        data = _payload(product_a.id)
        del data["customerPhone"]

        with pytest.raises(ValidationError, match="Missing required fields: customer_phone"):
            order_service.create_order(None, data, merchant_admin)

    @pytest.mark.parametrize("items", [None, [], [{"productId": 1, "quantity": 0}], ["x"]])
    def test_bad_items_rejected(self, db_session, merchant_admin, product_a, items):
        data = _payload(product_a.id)
        data["items"] = items

        with pytest.raises(ValidationError):
            order_service.create_order(None, data, merchant_admin)

    def test_unknown_field_rejected(self, db_session, merchant_admin, product_a):
        with pytest.raises(ValidationError, match="Field not allowed"):
            order_service.create_order(None, _payload(product_a.id, status="DELIVERED"), merchant_admin)

    def test_invalid_payment_method(self, db_session, merchant_admin, product_a):
        with pytest.raises(ValidationError):
            order_service.create_order(None, _payload(product_a.id, paymentMethod="BARTER"), merchant_admin)

    def test_logistics_partner_cannot_create(self, db_session, logistics_partner, merchant_a, product_a):
        with pytest.raises(AuthorizationError):
            order_service.create_order(merchant_a.id, _payload(product_a.id), logistics_partner)


class TestOrderReads:

    def test_list_is_tenant_scoped(
        self, db_session, order_a, merchant_admin, merchant_admin_b, warehouse_staff
    ):
        own, own_total = order_service.list_orders(merchant_admin)
        other, other_total = order_service.list_orders(merchant_admin_b)
        platform, platform_total = order_service.list_orders(warehouse_staff)

        assert own_total == 1 and own[0].id == order_a.id
        assert other_total == 0 and other == []
        assert platform_total == 1

    def test_list_filters_by_status(self, db_session, order_a, warehouse_staff):
        assert order_service.list_orders(warehouse_staff, status="PENDING")[1] == 1
        assert order_service.list_orders(warehouse_staff, status="DELIVERED")[1] == 0

        with pytest.raises(ValidationError):
            order_service.list_orders(warehouse_staff, status="NOPE")

    def test_cross_tenant_get_looks_missing(self, db_session, order_a, merchant_admin_b):
        with pytest.raises(NotFoundError):
            order_service.get_order(order_a.id, merchant_admin_b)

    def test_platform_staff_can_read_any_order(self, db_session, order_a, logistics_partner):
        assert order_service.get_order(order_a.id, logistics_partner).id == order_a.id


class TestOrderRoutes:

    def test_post_creates_order(self, client, db_session, merchant_staff, product_a, auth_headers):
        response = client.post("/api/orders", json=_payload(product_a.id), headers=auth_headers(merchant_staff))

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "PENDING"
        assert body["total_amount_cents"] == 10000
        assert body["merchant"]["business_name"] == "Acme Stores"
        assert len(body["items"]) == 1
        assert [s["kind"] for s in body["sideEffects"]] == ["audit", "notification", "webhook"]

    def test_post_validation_error(self, client, db_session, merchant_staff, product_a, auth_headers):
        response = client.post(
            "/api/orders",
            json=_payload(product_a.id, shippingAddress="somewhere"),
            headers=auth_headers(merchant_staff),
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_get_includes_history_and_splits(self, client, db_session, order_a, merchant_admin, auth_headers):
        response = client.get(f"/api/orders/{order_a.id}", headers=auth_headers(merchant_admin))

        assert response.status_code == 200
        body = response.get_json()
        assert [h["status"] for h in body["status_history"]] == ["PENDING"]
        assert body["splits"] == []

    def test_get_other_tenant_is_404(self, client, db_session, order_a, merchant_admin_b, auth_headers):
        response = client.get(f"/api/orders/{order_a.id}", headers=auth_headers(merchant_admin_b))

        assert response.status_code == 404

    def test_list_paginates(self, client, db_session, order_a, warehouse_staff, auth_headers):
        response = client.get("/api/orders?page=1&limit=500", headers=auth_headers(warehouse_staff))

        assert response.status_code == 200
        body = response.get_json()
        assert body["pagination"] == {"page": 1, "limit": 100, "total": 1}
        assert body["orders"][0]["id"] == order_a.id
