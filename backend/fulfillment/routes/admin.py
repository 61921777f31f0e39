# Overview: Flask API routes for platform-admin maintenance jobs.

from flask import Blueprint, request, jsonify, current_app

from ..services import notification_service, stock_monitor_service
from ..errors import DomainError, ValidationError
from ..decorators import require_auth, require_role
from ..roles import PLATFORM_ADMIN


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/stock-monitor")
@require_auth
@require_role(PLATFORM_ADMIN)
def stock_monitor_route():
    """Run one stock sweep now. Scheduling is external."""
    try:
        report = stock_monitor_service.sweep()
        return jsonify({"report": report.to_dict(), "message": "Stock monitoring completed"}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to run stock monitor")
        return jsonify({"message": "Failed to run stock monitor", "code": "INTERNAL_ERROR"}), 500


@admin_bp.post("/notifications/purge")
@require_auth
@require_role(PLATFORM_ADMIN)
def purge_notifications_route():
    """Body (optional): {"retentionDays": 30}"""
    try:
        data = request.get_json(silent=True) or {}
        retention_days = data.get("retentionDays", data.get("retention_days"))
        if retention_days is not None and (
            isinstance(retention_days, bool) or not isinstance(retention_days, int) or retention_days < 0
        ):
            raise ValidationError("retentionDays must be a non-negative integer")

        deleted = notification_service.purge_read_notifications(retention_days)
        return jsonify({"deleted": deleted}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to purge notifications")
        return jsonify({"message": "Failed to purge notifications", "code": "INTERNAL_ERROR"}), 500
