# Overview: Pytest coverage for notification targets, visibility, retention and routes.

from datetime import timedelta

import pytest

from fulfillment.models import Notification
from fulfillment.errors import NotFoundError, ValidationError
from fulfillment.services import notification_service
from fulfillment.services.notification_service import ById, ByRole, Global
from fulfillment.roles import MERCHANT_ADMIN, WAREHOUSE_STAFF
from fulfillment.time_utils import utcnow


def _alert(**overrides):
    data = {"title": "Heads up", "message": "Something happened", "type": "SYSTEM_ALERT", "priority": "HIGH"}
    data.update(overrides)
    return data


class TestTargets:

    def test_by_id_creates_one_row(self, db_session, merchant_admin):
        rows = notification_service.notify(ById(merchant_admin.id), metadata={"k": "v"}, **_alert())

        assert len(rows) == 1
        assert rows[0].target_type == "USER"
        assert rows[0].recipient_id == merchant_admin.id
        assert rows[0].meta == {"k": "v"}

    def test_by_id_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            notification_service.notify(ById(424242), **_alert())

    def test_by_role_fans_out_to_active_users(self, db_session, merchant_admin, merchant_admin_b, merchant_staff):
        inactive = merchant_admin_b
        inactive.is_active = False
        db_session.commit()

        rows = notification_service.notify(ByRole(MERCHANT_ADMIN), **_alert())

        assert [r.recipient_id for r in rows] == [merchant_admin.id]
        assert rows[0].recipient_role == MERCHANT_ADMIN

    def test_by_role_scoped_to_merchant(self, db_session, merchant_admin, merchant_admin_b, merchant_b):
        rows = notification_service.notify(ByRole(MERCHANT_ADMIN, merchant_id=merchant_b.id), **_alert())

        assert [r.recipient_id for r in rows] == [merchant_admin_b.id]

    def test_by_role_without_users_is_empty(self, db_session):
        assert notification_service.notify(ByRole(WAREHOUSE_STAFF), **_alert()) == []

    def test_global_is_single_row(self, db_session, merchant_admin, warehouse_staff):
        rows = notification_service.notify(Global(), **_alert())

        assert len(rows) == 1
        assert rows[0].is_global is True
        assert rows[0].recipient_id is None

    @pytest.mark.parametrize("overrides", [
        {"type": "NOT_A_TYPE"},
        {"priority": "CRITICAL"},
        {"title": ""},
    ])
    def test_invalid_input(self, db_session, merchant_admin, overrides):
        with pytest.raises(ValidationError):
            notification_service.notify(ById(merchant_admin.id), **_alert(**overrides))

    def test_invalid_role(self, db_session):
        with pytest.raises(ValidationError):
            notification_service.notify(ByRole("JANITOR"), **_alert())


class TestVisibility:

    def test_user_sees_own_and_global(self, db_session, merchant_admin, warehouse_staff):
        notification_service.notify(ById(merchant_admin.id), **_alert(title="Mine"))
        notification_service.notify(ById(warehouse_staff.id), **_alert(title="Theirs"))
        notification_service.notify(Global(), **_alert(title="Everyone"))

        titles = {n.title for n in notification_service.list_for_user(merchant_admin.id)}
        assert titles == {"Mine", "Everyone"}
        assert notification_service.unread_count(merchant_admin.id) == 2
        assert notification_service.total_count(merchant_admin.id) == 2

    def test_cannot_mark_someone_elses(self, db_session, merchant_admin, warehouse_staff):
        (row,) = notification_service.notify(ById(warehouse_staff.id), **_alert())

        with pytest.raises(NotFoundError):
            notification_service.mark_read(row.id, merchant_admin.id)
        with pytest.raises(NotFoundError):
            notification_service.delete_notification(row.id, merchant_admin.id)

    def test_mark_read_sets_read_at(self, db_session, merchant_admin):
        (row,) = notification_service.notify(ById(merchant_admin.id), **_alert())

        updated = notification_service.mark_read(row.id, merchant_admin.id)

        assert updated.is_read is True
        assert updated.read_at is not None
        assert notification_service.unread_count(merchant_admin.id) == 0

    def test_mark_all_read_counts_rows(self, db_session, merchant_admin):
        notification_service.notify(ById(merchant_admin.id), **_alert())
        notification_service.notify(ById(merchant_admin.id), **_alert())
        notification_service.notify(Global(), **_alert())

        assert notification_service.mark_all_read(merchant_admin.id) == 3
        assert notification_service.unread_count(merchant_admin.id) == 0
        assert notification_service.mark_all_read(merchant_admin.id) == 0

    def test_unread_only_filter(self, db_session, merchant_admin):
        (first,) = notification_service.notify(ById(merchant_admin.id), **_alert(title="Old"))
        notification_service.notify(ById(merchant_admin.id), **_alert(title="New"))
        notification_service.mark_read(first.id, merchant_admin.id)

        unread = notification_service.list_for_user(merchant_admin.id, unread_only=True)
        assert [n.title for n in unread] == ["New"]

    def test_delete(self, db_session, merchant_admin):
        (row,) = notification_service.notify(ById(merchant_admin.id), **_alert())
        row_id = row.id

        notification_service.delete_notification(row_id, merchant_admin.id)

        assert db_session.query(Notification).filter_by(id=row_id).count() == 0


class TestRetention:

    def test_purge_only_old_read_rows(self, db_session, merchant_admin):
        old = utcnow() - timedelta(days=45)
        db_session.add_all([
            Notification(title="old read", message="m", type="SYSTEM_ALERT", target_type="USER",
                         recipient_id=merchant_admin.id, is_read=True, created_at=old),
            Notification(title="old unread", message="m", type="SYSTEM_ALERT", target_type="USER",
                         recipient_id=merchant_admin.id, is_read=False, created_at=old),
            Notification(title="new read", message="m", type="SYSTEM_ALERT", target_type="USER",
                         recipient_id=merchant_admin.id, is_read=True, created_at=utcnow()),
        ])
        db_session.commit()

        assert notification_service.purge_read_notifications() == 1

        remaining = {n.title for n in db_session.query(Notification).all()}
        assert remaining == {"old unread", "new read"}

    def test_purge_custom_window(self, db_session, merchant_admin):
        db_session.add(Notification(
            title="week old", message="m", type="SYSTEM_ALERT", target_type="USER",
            recipient_id=merchant_admin.id, is_read=True, created_at=utcnow() - timedelta(days=7),
        ))
        db_session.commit()

        assert notification_service.purge_read_notifications(30) == 0
        assert notification_service.purge_read_notifications(5) == 1


class TestTemplates:

    def test_format_amount(self):
        assert notification_service.format_amount(123456) == "₦1,234.56"
        assert notification_service.format_amount(0) == "₦0.00"

    def test_stock_templates(self):
        assert notification_service.stock_out("Kettle")["priority"] == "URGENT"
        low = notification_service.stock_low("Kettle", 3, 10)
        assert low["priority"] == "HIGH"
        assert "Current stock: 3, Reorder level: 10" in low["message"]

    def test_order_updated_humanizes_status(self):
        assert notification_service.order_updated("ORD-9", "READY_FOR_DISPATCH")["message"] == (
            "Order ORD-9 status changed to READY FOR DISPATCH"
        )

    def test_order_templates_are_valid_types(self, db_session, merchant_admin):
        for template in (
            notification_service.order_created("ORD-1", "Ada"),
            notification_service.order_delivered("ORD-2", "Ada"),
            notification_service.order_cancelled("ORD-3"),
        ):
            assert notification_service.notify(ById(merchant_admin.id), **template)


class TestNotificationRoutes:

    def test_list_returns_counts(self, client, db_session, merchant_admin, auth_headers):
        notification_service.notify(ById(merchant_admin.id), **_alert())
        notification_service.notify(Global(), **_alert())

        response = client.get("/api/notifications", headers=auth_headers(merchant_admin))

        assert response.status_code == 200
        body = response.get_json()
        assert len(body["notifications"]) == 2
        assert body["unreadCount"] == 2
        assert body["totalCount"] == 2

    def test_admin_creates_role_notification(
        self, client, db_session, platform_admin, warehouse_staff, auth_headers
    ):
        response = client.post("/api/notifications", json={
            **_alert(),
            "recipientRole": WAREHOUSE_STAFF,
            "metadata": {"source": "ops"},
        }, headers=auth_headers(platform_admin))

        assert response.status_code == 201
        body = response.get_json()
        assert body["count"] == 1
        assert body["notifications"][0]["recipient_id"] == warehouse_staff.id
        assert body["notifications"][0]["metadata"] == {"source": "ops"}

    def test_exactly_one_target_required(self, client, db_session, platform_admin, merchant_admin, auth_headers):
        response = client.post("/api/notifications", json={
            **_alert(),
            "recipientId": merchant_admin.id,
            "isGlobal": True,
        }, headers=auth_headers(platform_admin))

        assert response.status_code == 400

    def test_only_platform_admin_creates(self, client, db_session, merchant_admin, auth_headers):
        response = client.post("/api/notifications", json={**_alert(), "isGlobal": True},
                               headers=auth_headers(merchant_admin))

        assert response.status_code == 403

    def test_mark_read_and_delete_routes(self, client, db_session, merchant_admin, warehouse_staff, auth_headers):
        (mine,) = notification_service.notify(ById(merchant_admin.id), **_alert())
        (theirs,) = notification_service.notify(ById(warehouse_staff.id), **_alert())
        mine_id, theirs_id = mine.id, theirs.id
        headers = auth_headers(merchant_admin)

        assert client.put(f"/api/notifications/{mine_id}", headers=headers).get_json()["is_read"] is True
        assert client.put(f"/api/notifications/{theirs_id}", headers=headers).status_code == 404
        assert client.delete(f"/api/notifications/{theirs_id}", headers=headers).status_code == 404
        assert client.delete(f"/api/notifications/{mine_id}", headers=headers).status_code == 200

    def test_mark_all_read_route(self, client, db_session, merchant_admin, auth_headers):
        notification_service.notify(ById(merchant_admin.id), **_alert())

        response = client.put("/api/notifications/mark-all-read", headers=auth_headers(merchant_admin))

        assert response.status_code == 200
        assert response.get_json()["updated"] == 1
