# Overview: Flask API routes for merchants; guarded account deletion.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import merchant_service
from ..services.merchant_service import DeletionCredentials
from ..errors import DomainError
from ..decorators import require_auth, require_role
from ..roles import MERCHANT_DELETE_ROLES


merchants_bp = Blueprint("merchants", __name__, url_prefix="/api/merchants")


@merchants_bp.delete("/<int:merchant_id>")
@require_auth
@require_role(MERCHANT_DELETE_ROLES)
def delete_merchant_route(merchant_id: int):
    """
    Permanently delete a merchant and everything it owns.

    Self-delete (MERCHANT_ADMIN): {"password": "...", "twoFactorToken": "..."}
    Admin delete (PLATFORM_ADMIN): {"adminPassword": "..."}

    Returns:
        200: {"deletedStaffCount": n, "message": "..."}
        400: missing credential
        401: wrong password / 2FA code
        403: outstanding debt, recent subscription activity, or forbidden
        404: merchant not found
    """
    try:
        credentials = DeletionCredentials.from_payload(request.get_json(silent=True))
        result = merchant_service.delete_merchant(merchant_id, g.current_user, credentials)
        return jsonify({
            "deletedStaffCount": result.deleted_staff_count,
            "message": result.message,
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete merchant")
        return jsonify({"message": "Failed to delete merchant", "code": "INTERNAL_ERROR"}), 500
