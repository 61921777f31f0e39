# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/fulfillment/routes/orders.py
"""
Order API Routes

- GET  /api/orders               list (tenant-scoped)
- POST /api/orders               create (merchant users, platform admin)
- GET  /api/orders/<id>          detail with merchant, items, history
- PUT  /api/orders/<id>          status transition (platform staff only)
- POST /api/orders/<id>/split    assign items to a warehouse

Status updates return the order plus "sideEffects": one entry per
best-effort side effect (billing, audit, notification, email, webhook)
with its outcome. A failed side effect never fails the request.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service
from ..errors import DomainError, ValidationError
from ..decorators import require_auth, require_role
from ..roles import (
    ALL_ROLES,
    ORDER_STATUS_ROLES,
    ORDER_SPLIT_ROLES,
    ORDER_CREATE_ROLES,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


@orders_bp.get("")
@require_auth
@require_role(ALL_ROLES)
def list_orders_route():
    try:
        page = _int_arg("page", 1)
        limit = _int_arg("limit", 20)
        merchant_id = request.args.get("merchant_id", type=int)
        orders, total = order_service.list_orders(
            g.current_user,
            status=request.args.get("status") or None,
            merchant_id=merchant_id,
            page=page,
            limit=limit,
        )
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "pagination": {
                "page": max(page, 1),
                "limit": max(min(limit, 100), 1),
                "total": total,
            },
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"message": "Failed to list orders", "code": "INTERNAL_ERROR"}), 500


@orders_bp.post("")
@require_auth
@require_role(ORDER_CREATE_ROLES)
def create_order_route():
    """
    Request body:
    {
        "merchantId": 1,                 (platform admin only)
        "customerName": "Ada",
        "customerPhone": "+234...",
        "customerEmail": "ada@example.com",   (optional)
        "shippingAddress": {...},
        "deliveryFeeCents": 1500,        (optional, default 0)
        "paymentMethod": "CASH_ON_DELIVERY",  (optional)
        "items": [{"productId": 3, "quantity": 2, "unitPriceCents": 5000}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.create_order(
            data.get("merchantId", data.get("merchant_id")),
            data,
            g.current_user,
        )
        body = result.order.to_dict(expand=True)
        body["sideEffects"] = [o.to_dict() for o in result.side_effects]
        return jsonify(body), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"message": "Failed to create order", "code": "INTERNAL_ERROR"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role(ALL_ROLES)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.current_user)
        body = order.to_dict(expand=True)
        body["status_history"] = [h.to_dict() for h in order.status_history]
        body["splits"] = [s.to_dict() for s in order.splits]
        return jsonify(body), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to retrieve order")
        return jsonify({"message": "Failed to retrieve order", "code": "INTERNAL_ERROR"}), 500


@orders_bp.put("/<int:order_id>")
@require_auth
@require_role(ORDER_STATUS_ROLES)
def update_order_status_route(order_id: int):
    """
    Request body: {"status": "DELIVERED", "notes": "...", "trackingNumber": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"message": "status is required", "code": "VALIDATION_ERROR"}), 400

        result = order_service.transition_order_status(
            order_id,
            status,
            g.current_user,
            notes=data.get("notes"),
            tracking_number=data.get("trackingNumber", data.get("tracking_number")),
        )
        body = result.order.to_dict(expand=True)
        body["previousStatus"] = result.previous_status
        body["sideEffects"] = [o.to_dict() for o in result.side_effects]
        return jsonify(body), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"message": "Failed to update order", "code": "INTERNAL_ERROR"}), 500


@orders_bp.post("/<int:order_id>/split")
@require_auth
@require_role(ORDER_SPLIT_ROLES)
def split_order_route(order_id: int):
    """
    Request body: {"warehouseId": 2, "items": [{"orderItemId": 10, "quantity": 1}]}
    """
    try:
        data = request.get_json(silent=True) or {}
        split = order_service.split_order(
            order_id,
            data.get("warehouseId", data.get("warehouse_id")),
            data.get("items"),
            g.current_user,
        )
        return jsonify({"split": split.to_dict(), "message": "Order split created successfully"}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order split")
        return jsonify({"message": "Failed to create order split", "code": "INTERNAL_ERROR"}), 500
