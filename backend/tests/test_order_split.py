# Overview: Pytest coverage for assigning order items to warehouses.

import pytest

from fulfillment.models import AuditLog, OrderSplit
from fulfillment.errors import AuthorizationError, NotFoundError, ValidationError
from fulfillment.services import order_service


def _item_id(order):
    return order.items[0].id


class TestSplitOrder:

    def test_split_records_items_and_audit(self, db_session, order_a, warehouse, warehouse_staff):
        split = order_service.split_order(
            order_a.id,
            warehouse.id,
            [{"orderItemId": _item_id(order_a), "quantity": 1}],
            warehouse_staff,
        )

        assert split.original_order_id == order_a.id
        assert split.warehouse_id == warehouse.id
        assert split.status == "PENDING"
        assert split.items == [{"order_item_id": _item_id(order_a), "quantity": 1}]
        assert split.created_by_user_id == warehouse_staff.id

        audit = db_session.query(AuditLog).filter_by(action="CREATE_ORDER_SPLIT").one()
        assert audit.entity_id == str(split.id)
        assert audit.new_values["warehouse_id"] == warehouse.id

    def test_foreign_item_rejects_whole_request(self, db_session, order_a, warehouse, platform_admin):
        items = [
            {"order_item_id": _item_id(order_a), "quantity": 1},
            {"order_item_id": 987654, "quantity": 1},
        ]

        with pytest.raises(ValidationError, match="Some items do not belong to this order"):
            order_service.split_order(order_a.id, warehouse.id, items, platform_admin)

        assert db_session.query(OrderSplit).count() == 0

    @pytest.mark.parametrize("warehouse_id, items", [
        (None, [{"order_item_id": 1, "quantity": 1}]),
        ("", [{"order_item_id": 1, "quantity": 1}]),
        (1, []),
        (1, None),
    ])
    def test_warehouse_and_items_required(self, db_session, order_a, warehouse_staff, warehouse_id, items):
        with pytest.raises(ValidationError, match="Warehouse ID and items are required"):
            order_service.split_order(order_a.id, warehouse_id, items, warehouse_staff)

    def test_unknown_warehouse(self, db_session, order_a, warehouse_staff):
        with pytest.raises(NotFoundError, match="Warehouse not found"):
            order_service.split_order(
                order_a.id, 555555, [{"order_item_id": _item_id(order_a), "quantity": 1}], warehouse_staff,
            )

    def test_unknown_order(self, db_session, warehouse, warehouse_staff):
        with pytest.raises(NotFoundError, match="Order not found"):
            order_service.split_order(555555, warehouse.id, [{"order_item_id": 1, "quantity": 1}], warehouse_staff)

    def test_non_positive_quantity(self, db_session, order_a, warehouse, warehouse_staff):
        with pytest.raises(ValidationError):
            order_service.split_order(
                order_a.id, warehouse.id, [{"order_item_id": _item_id(order_a), "quantity": 0}], warehouse_staff,
            )

    def test_quantity_cannot_exceed_ordered_quantity(self, db_session, order_a, warehouse, warehouse_staff):
        ordered = order_a.items[0].quantity
        items = [
            {"order_item_id": _item_id(order_a), "quantity": 1},
            {"order_item_id": _item_id(order_a), "quantity": ordered + 1},
        ]

        with pytest.raises(ValidationError, match="exceeds the ordered quantity"):
            order_service.split_order(order_a.id, warehouse.id, items, warehouse_staff)

        assert db_session.query(OrderSplit).count() == 0

    @pytest.mark.parametrize("fixture_name", ["merchant_admin", "logistics_partner"])
    def test_role_gate(self, request, db_session, order_a, warehouse, fixture_name):
        user = request.getfixturevalue(fixture_name)

        with pytest.raises(AuthorizationError):
            order_service.split_order(
                order_a.id, warehouse.id, [{"order_item_id": _item_id(order_a), "quantity": 1}], user,
            )


class TestSplitRoute:

    def test_post_split(self, client, db_session, order_a, warehouse, warehouse_staff, auth_headers):
        response = client.post(
            f"/api/orders/{order_a.id}/split",
            json={"warehouseId": warehouse.id, "items": [{"orderItemId": _item_id(order_a), "quantity": 2}]},
            headers=auth_headers(warehouse_staff),
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Order split created successfully"
        assert body["split"]["items"] == [{"order_item_id": _item_id(order_a), "quantity": 2}]

    def test_post_split_forbidden_for_logistics(
        self, client, db_session, order_a, warehouse, logistics_partner, auth_headers
    ):
        response = client.post(
            f"/api/orders/{order_a.id}/split",
            json={"warehouseId": warehouse.id, "items": [{"orderItemId": _item_id(order_a), "quantity": 1}]},
            headers=auth_headers(logistics_partner),
        )

        assert response.status_code == 403

    def test_post_split_missing_fields(self, client, db_session, order_a, warehouse_staff, auth_headers):
        response = client.post(f"/api/orders/{order_a.id}/split", json={}, headers=auth_headers(warehouse_staff))

        assert response.status_code == 400
        assert response.get_json()["message"] == "Warehouse ID and items are required"
