# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import permission_service, user_service
from .services.permission_service import PermissionDeniedError


USER_ID_HEADER = "X-User-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require an identified caller.

    The upstream session layer authenticates and forwards the caller id in
    the X-User-Id header. Sets:
    - g.current_user: the active User row

    SECURITY: Returns 401 if:
    - No X-User-Id header
    - Header is not an integer id
    - User does not exist or is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_ID_HEADER)

        if not raw:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid user id"}), 401

        user = user_service.get_active_user(user_id)
        if user is None:
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user

        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability):
    """
    Require a specific capability. Apply after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_capability(
                    g.current_user,
                    capability,
                    resource=request.path,
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": getattr(capability, "value", capability),
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    """Require the authenticated user to hold the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not permission_service.is_admin(g.current_user):
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
