# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets:
    - g.current_user: the authenticated User
    - g.merchant_id: the user's merchant (None for platform staff)
    - g.session_context: the full SessionContext
    - g.session_token: the plaintext token (for logout)

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired, revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"message": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"message": "Invalid or expired token", "code": "UNAUTHENTICATED"}), 401

        g.current_user = context.user
        g.merchant_id = context.merchant_id
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the authenticated user to hold one of the given roles.

    Must be stacked under @require_auth.
    """
    allowed = set()
    for r in roles:
        if isinstance(r, (set, frozenset, list, tuple)):
            allowed.update(r)
        else:
            allowed.add(r)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"message": "Authentication required", "code": "UNAUTHENTICATED"}), 401

            user = g.current_user
            if user.role not in allowed:
                current_app.logger.warning(
                    "Role denied: user_id=%s role=%s path=%s %s required=%s",
                    user.id, user.role, request.method, request.path, sorted(allowed),
                )
                return jsonify({
                    "message": "Forbidden",
                    "code": "FORBIDDEN",
                    "required_roles": sorted(allowed),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
