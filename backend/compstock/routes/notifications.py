# Overview: Flask API routes for notifications; parses input and returns JSON responses.

"""
Notification routes.

Every identified caller can list, read and delete the notifications that
target them. Creating notifications and triggering alert scans requires all.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_capability
from ..models.enums import Capability
from ..services import alert_service, notification_service
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, NotFoundError


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    Query params: unread_only, type, category, priority, page, limit
    """
    try:
        return notification_service.list_for_user(
            g.current_user,
            unread_only=request.args.get("unread_only", "").lower() in {"1", "true", "yes"},
            type=request.args.get("type"),
            category=request.args.get("category"),
            priority=request.args.get("priority"),
            page=request.args.get("page", 1),
            limit=request.args.get("limit", notification_service.DEFAULT_PAGE_SIZE),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return {"unread_count": notification_service.unread_count(g.current_user)}


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"notification": notification.to_dict(for_user_id=g.current_user.id)}


@notifications_bp.put("/mark-all-read")
@require_auth
def mark_all_read_route():
    count = notification_service.mark_all_read(g.current_user)
    return {"marked": count}


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    try:
        notification_service.soft_delete(notification_id, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PermissionDeniedError as e:
        return {"error": "Permission denied", "message": str(e)}, 403
    return {"ok": True}, 200


@notifications_bp.post("/create")
@require_auth
@require_capability(Capability.ALL)
def create_notification_route():
    payload = request.get_json(silent=True) or {}
    try:
        notification = notification_service.create_notification(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"notification": notification.to_dict()}, 201


@notifications_bp.post("/check-alerts")
@require_auth
@require_capability(Capability.ALL)
def check_alerts_route():
    report = alert_service.check_alerts()
    return report.to_dict(), 200


@notifications_bp.get("/settings")
@require_auth
def settings_route():
    return {"settings": notification_service.get_settings(g.current_user)}
