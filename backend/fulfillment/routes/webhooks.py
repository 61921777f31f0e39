# Overview: Flask API routes for merchant webhook endpoints.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import webhook_service
from ..errors import DomainError
from ..decorators import require_auth, require_role
from ..roles import WEBHOOK_VIEW_ROLES, WEBHOOK_MANAGE_ROLES


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.get("")
@require_auth
@require_role(WEBHOOK_VIEW_ROLES)
def list_webhooks_route():
    try:
        webhooks = webhook_service.list_webhooks(
            g.current_user,
            merchant_id=request.args.get("merchant_id", type=int),
        )
        return jsonify({
            "webhooks": [w.to_dict() for w in webhooks],
            "availableEvents": sorted(webhook_service.WEBHOOK_EVENTS),
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list webhooks")
        return jsonify({"message": "Failed to list webhooks", "code": "INTERNAL_ERROR"}), 500


@webhooks_bp.post("")
@require_auth
@require_role(WEBHOOK_MANAGE_ROLES)
def create_webhook_route():
    """
    Request body: {"name": "...", "url": "https://...", "events": ["order.created"]}

    The signing secret is returned once, in this response only.
    """
    try:
        webhook = webhook_service.create_webhook(g.current_user, request.get_json(silent=True) or {})
        return jsonify(webhook.to_dict(include_secret=True)), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create webhook")
        return jsonify({"message": "Failed to create webhook", "code": "INTERNAL_ERROR"}), 500


@webhooks_bp.put("/<int:webhook_id>")
@require_auth
@require_role(WEBHOOK_MANAGE_ROLES)
def update_webhook_route(webhook_id: int):
    try:
        webhook = webhook_service.update_webhook(webhook_id, g.current_user, request.get_json(silent=True) or {})
        return jsonify(webhook.to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update webhook")
        return jsonify({"message": "Failed to update webhook", "code": "INTERNAL_ERROR"}), 500


@webhooks_bp.delete("/<int:webhook_id>")
@require_auth
@require_role(WEBHOOK_MANAGE_ROLES)
def delete_webhook_route(webhook_id: int):
    try:
        webhook_service.delete_webhook(webhook_id, g.current_user)
        return jsonify({"message": "Webhook deleted"}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete webhook")
        return jsonify({"message": "Failed to delete webhook", "code": "INTERNAL_ERROR"}), 500


@webhooks_bp.post("/<int:webhook_id>/test")
@require_auth
@require_role(WEBHOOK_MANAGE_ROLES)
def test_webhook_route(webhook_id: int):
    try:
        outcome = webhook_service.send_test_webhook(webhook_id, g.current_user)
        return jsonify({
            "delivery": outcome.to_dict(),
            "message": "Test webhook delivered" if outcome.ok else "Test webhook failed",
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send test webhook")
        return jsonify({"message": "Failed to send test webhook", "code": "INTERNAL_ERROR"}), 500


@webhooks_bp.post("/<int:webhook_id>/regenerate-secret")
@require_auth
@require_role(WEBHOOK_MANAGE_ROLES)
def regenerate_secret_route(webhook_id: int):
    try:
        webhook = webhook_service.regenerate_secret(webhook_id, g.current_user)
        return jsonify(webhook.to_dict(include_secret=True)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to regenerate webhook secret")
        return jsonify({"message": "Failed to regenerate webhook secret", "code": "INTERNAL_ERROR"}), 500
