# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

"""
Stock movement routes.

SECURITY:
- inward requires inward, outward requires outward
- bulk-update requires all
- history, recent and statistics require view
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_capability
from ..models.enums import Capability, MovementType
from ..services import movement_service
from ..services.movement_service import InsufficientStockError
from ..validation import ValidationError, ConflictError, NotFoundError


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _apply(movement_type: MovementType):
    data = request.get_json(silent=True) or {}

    try:
        result = movement_service.apply_movement(
            data.get("component_id"),
            movement_type,
            data.get("quantity"),
            g.current_user,
            reason=data.get("reason"),
            project=data.get("project"),
            notes=data.get("notes"),
        )
    except InsufficientStockError as e:
        return {
            "error": str(e),
            "available": e.available,
            "requested": e.requested,
        }, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return result.to_dict(), 201


@movements_bp.post("/inward")
@require_auth
@require_capability(Capability.INWARD)
def inward_route():
    """Body: component_id, quantity, reason, project, notes?"""
    return _apply(MovementType.INWARD)


@movements_bp.post("/outward")
@require_auth
@require_capability(Capability.OUTWARD)
def outward_route():
    """Body: component_id, quantity, reason, project, notes?"""
    return _apply(MovementType.OUTWARD)


@movements_bp.post("/bulk-update")
@require_auth
@require_capability(Capability.ALL)
def bulk_update_route():
    """Body: updates [{component_id, quantity (signed), reason?}], reason, project"""
    data = request.get_json(silent=True) or {}

    try:
        result = movement_service.bulk_apply_movements(
            data.get("updates"),
            reason=data.get("reason"),
            project=data.get("project"),
            actor=g.current_user,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return result.to_dict(), 200


@movements_bp.get("/history/<int:component_id>")
@require_auth
@require_capability(Capability.VIEW)
def history_route(component_id: int):
    page = request.args.get("page", 1)
    limit = request.args.get("limit", 50)

    try:
        return movement_service.list_movement_history(component_id, page=page, limit=limit)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400


@movements_bp.get("/recent")
@require_auth
@require_capability(Capability.VIEW)
def recent_route():
    try:
        items = movement_service.list_recent_movements(limit=request.args.get("limit", 50))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": items, "count": len(items)}


@movements_bp.get("/statistics")
@require_auth
@require_capability(Capability.VIEW)
def statistics_route():
    try:
        return movement_service.get_movement_statistics(request.args.get("period", "month"))
    except ValidationError as e:
        return {"error": str(e)}, 400
