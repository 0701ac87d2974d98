# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User routes.

SECURITY: Everything except /me and a caller's own /<id>/activity is admin-only.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_admin
from ..permissions import PermissionCategory, get_permission_definition, get_permissions_by_category
from ..services import user_service
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, ConflictError, NotFoundError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")

CATALOG_CATEGORIES = (
    PermissionCategory.INVENTORY,
    PermissionCategory.MOVEMENTS,
    PermissionCategory.REPORTING,
    PermissionCategory.SYSTEM,
)


@users_bp.get("/me")
@require_auth
def me_route():
    return {"user": g.current_user.to_dict()}


@users_bp.get("/stats/summary")
@require_auth
@require_admin
def user_stats_route():
    return user_service.get_user_stats()


@users_bp.get("/permissions")
@require_auth
@require_admin
def permission_catalog_route():
    """Capability catalogue grouped by category."""
    return {
        "categories": {
            category: [get_permission_definition(perm[0]) for perm in get_permissions_by_category(category)]
            for category in CATALOG_CATEGORIES
        }
    }


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """Query params: role, is_active, search, page, limit"""
    filters = {k: request.args.get(k) for k in ("role", "is_active", "search", "page", "limit")}
    try:
        return user_service.list_users(filters)
    except ValidationError as e:
        return {"error": str(e)}, 400


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(payload, g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return {"user": user.to_dict()}, 201


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(user_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"user": user.to_dict()}


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(user_id, payload, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return {"user": user.to_dict()}


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def deactivate_user_route(user_id: int):
    try:
        user_service.deactivate_user(user_id, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"ok": True}, 200


@users_bp.get("/<int:user_id>/activity")
@require_auth
def user_activity_route(user_id: int):
    """Query params: page, limit"""
    try:
        return user_service.get_user_activity(
            user_id,
            g.current_user,
            page=request.args.get("page", 1),
            limit=request.args.get("limit", user_service.DEFAULT_ACTIVITY_PAGE_SIZE),
        )
    except PermissionDeniedError as e:
        return {"error": "Permission denied", "message": str(e)}, 403
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
