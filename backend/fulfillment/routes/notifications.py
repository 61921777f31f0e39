# Overview: Flask API routes for in-app notifications.

# backend/fulfillment/routes/notifications.py
"""
Notification API Routes

Every authenticated user reads and mutates the notifications addressed to
them plus global ones. Only platform admins create notifications by hand.

POST body:
{
    "title": "...", "message": "...", "type": "SYSTEM_ALERT", "priority": "HIGH",
    "recipientId": 5            -> one user
    "recipientRole": "WAREHOUSE_STAFF", "merchantId": 1 (optional) -> role fan-out
    "isGlobal": true            -> one global row
    "metadata": {...}
}
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service
from ..services.notification_service import ById, ByRole, Global
from ..errors import DomainError, ValidationError
from ..decorators import require_auth, require_role
from ..roles import PLATFORM_ADMIN


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _target_from_payload(data: dict):
    recipient_id = data.get("recipientId", data.get("recipient_id"))
    recipient_role = data.get("recipientRole", data.get("recipient_role"))
    is_global = data.get("isGlobal", data.get("is_global", False))

    chosen = sum(1 for v in (recipient_id is not None, bool(recipient_role), is_global is True) if v)
    if chosen != 1:
        raise ValidationError("Exactly one of recipientId, recipientRole or isGlobal is required")

    if recipient_id is not None:
        if isinstance(recipient_id, bool) or not isinstance(recipient_id, int):
            raise ValidationError("recipientId must be an integer")
        return ById(recipient_id)
    if recipient_role:
        merchant_id = data.get("merchantId", data.get("merchant_id"))
        if merchant_id is not None and (isinstance(merchant_id, bool) or not isinstance(merchant_id, int)):
            raise ValidationError("merchantId must be an integer")
        return ByRole(recipient_role, merchant_id=merchant_id)
    return Global()


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    try:
        user_id = g.current_user.id
        limit = request.args.get("limit", default=50, type=int)
        offset = request.args.get("offset", default=0, type=int)
        unread_only = (request.args.get("unreadOnly") or request.args.get("unread_only") or "").lower() == "true"

        items = notification_service.list_for_user(user_id, limit=limit, offset=offset, unread_only=unread_only)
        return jsonify({
            "notifications": [n.to_dict() for n in items],
            "unreadCount": notification_service.unread_count(user_id),
            "totalCount": notification_service.total_count(user_id),
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"message": "Failed to list notifications", "code": "INTERNAL_ERROR"}), 500


@notifications_bp.post("")
@require_auth
@require_role(PLATFORM_ADMIN)
def create_notification_route():
    try:
        data = request.get_json(silent=True) or {}
        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

        rows = notification_service.notify(
            _target_from_payload(data),
            title=(data.get("title") or "").strip(),
            message=(data.get("message") or "").strip(),
            type=data.get("type") or "",
            priority=data.get("priority") or "MEDIUM",
            metadata=metadata,
        )
        return jsonify({
            "notifications": [n.to_dict() for n in rows],
            "count": len(rows),
        }), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create notification")
        return jsonify({"message": "Failed to create notification", "code": "INTERNAL_ERROR"}), 500


@notifications_bp.put("/mark-all-read")
@require_auth
def mark_all_read_route():
    try:
        updated = notification_service.mark_all_read(g.current_user.id)
        return jsonify({"updated": updated, "message": "All notifications marked as read"}), 200
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return jsonify({"message": "Failed to mark notifications read", "code": "INTERNAL_ERROR"}), 500


@notifications_bp.put("/<int:notification_id>")
@require_auth
def mark_read_route(notification_id: int):
    try:
        n = notification_service.mark_read(notification_id, g.current_user.id)
        return jsonify(n.to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update notification")
        return jsonify({"message": "Failed to update notification", "code": "INTERNAL_ERROR"}), 500


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    try:
        notification_service.delete_notification(notification_id, g.current_user.id)
        return jsonify({"message": "Notification deleted"}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete notification")
        return jsonify({"message": "Failed to delete notification", "code": "INTERNAL_ERROR"}), 500
