# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/fulfillment/routes/auth.py
"""
Authentication API routes

- POST /login   email + password (+ twoFactorToken when 2FA is enabled)
- POST /logout  revokes the presented bearer token
- GET  /me      the authenticated user
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..errors import DomainError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included as "Authorization: Bearer <token>" on protected
    routes. Users with 2FA enabled must also send twoFactorToken (TOTP code
    or a backup code).
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"message": "email and password required", "code": "VALIDATION_ERROR"}), 400

        user = auth_service.authenticate(email, password)

        if user.two_factor_enabled:
            token = data.get("twoFactorToken") or data.get("two_factor_token")
            if not token:
                return jsonify({
                    "message": "2FA verification code is required",
                    "code": "TWO_FACTOR_REQUIRED",
                    "requires_two_factor": True,
                }), 401
            if not auth_service.verify_second_factor(user, token).verified:
                return jsonify({
                    "message": "Invalid 2FA verification code or backup code",
                    "code": "INVALID_CREDENTIALS",
                }), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful",
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"message": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"message": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "merchant": user.merchant.to_summary_dict() if user.merchant else None,
    }), 200
