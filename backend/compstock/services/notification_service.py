# Overview: Service-layer operations for notifications; creation, per-user visibility and read tracking.

"""
Notification Store

VISIBILITY:
A notification is visible to a user when it is active, not expired, and the
user is targeted either directly (target_users) or by role (target_roles).
Expiry is passive: nothing is deleted at read time.

READS:
One NotificationRead row per (notification, user). mark_read is idempotent.

METADATA:
Alert-generated notifications carry a snapshot of the source entities as a
tagged variant keyed by category (LowStockMetadata, OldStockMetadata,
StockMovementMetadata). Other categories take a free-form dict.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Notification, NotificationRead
from ..models.enums import (
    PRIORITY_WEIGHT,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
    Role,
)
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_notification,
    validate_payload,
)
from .permission_service import PermissionDeniedError, is_admin
from compstock.time_utils import normalize_datetime, utcnow


DEFAULT_TTL_DAYS = 30
DEFAULT_PURGE_GRACE_DAYS = 30

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Roles each alert category is routed to
CATEGORY_TARGET_ROLES = {
    NotificationCategory.LOW_STOCK: [Role.ADMIN.value, Role.USER.value],
    NotificationCategory.OLD_STOCK: [Role.ADMIN.value],
    NotificationCategory.STOCK_MOVEMENT: [Role.ADMIN.value],
}

NOTIFICATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "type",
        "title",
        "message",
        "priority",
        "category",
        "related_component_id",
        "related_user_id",
        "target_users",
        "target_roles",
        "expires_at",
        "metadata",
    },
    required_on_create={"title", "message", "category"},
    virtual_fields={"metadata"},
)


# -- Metadata variants --

@dataclass(frozen=True)
class LowStockMetadata:
    component_id: int
    component_name: str
    component_part_number: str
    new_quantity: int
    threshold: int


@dataclass(frozen=True)
class OldStockMetadata:
    component_id: int
    component_name: str
    component_part_number: str
    age_in_days: int


@dataclass(frozen=True)
class StockMovementMetadata:
    component_id: int
    component_name: str
    component_part_number: str
    movement_type: str
    quantity: int
    old_quantity: int
    new_quantity: int
    project: str
    reason: str


METADATA_VARIANTS = {
    NotificationCategory.LOW_STOCK.value: LowStockMetadata,
    NotificationCategory.OLD_STOCK.value: OldStockMetadata,
    NotificationCategory.STOCK_MOVEMENT.value: StockMovementMetadata,
}


def _normalize_metadata(category: str, metadata) -> dict:
    """Validate metadata against the variant for category and return a plain dict."""
    if metadata is None:
        return {}
    if hasattr(metadata, "__dataclass_fields__"):
        metadata = asdict(metadata)
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")
    if not metadata:
        return {}

    variant = METADATA_VARIANTS.get(category)
    if variant is None:
        return dict(metadata)

    expected = {f.name for f in fields(variant)}
    missing = sorted(expected - metadata.keys())
    if missing:
        raise ValidationError(f"metadata for {category} is missing: {', '.join(missing)}")
    return asdict(variant(**{k: metadata[k] for k in expected}))


# -- Creation --

def create_notification(data: dict, now=None) -> Notification:
    """
    Create a notification.

    Defaults: type info, priority medium, expires_at now + NOTIFICATION_TTL_DAYS.
    At least one target user or role is required.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    data = dict(data)
    if hasattr(data.get("metadata"), "__dataclass_fields__"):
        data["metadata"] = asdict(data["metadata"])

    patch = validate_payload(model=Notification, payload=data, policy=NOTIFICATION_POLICY, partial=False)
    enforce_rules_notification(patch)

    target_users = patch.get("target_users") or []
    target_roles = patch.get("target_roles") or []
    if not target_users and not target_roles:
        raise ValidationError("Notification must target at least one user or role")

    now = now or utcnow()
    expires_at = patch.get("expires_at")
    if expires_at is None:
        ttl_days = int(current_app.config.get("NOTIFICATION_TTL_DAYS", DEFAULT_TTL_DAYS))
        expires_at = now + timedelta(days=ttl_days)
    else:
        expires_at = normalize_datetime(expires_at)
        if expires_at <= now:
            raise ValidationError("expires_at must be in the future")

    notification = Notification(
        type=patch.get("type") or NotificationType.INFO.value,
        title=patch["title"],
        message=patch["message"],
        priority=patch.get("priority") or NotificationPriority.MEDIUM.value,
        category=patch["category"],
        related_component_id=patch.get("related_component_id"),
        related_user_id=patch.get("related_user_id"),
        target_users=list(target_users),
        target_roles=list(target_roles),
        is_active=True,
        expires_at=expires_at,
        meta=_normalize_metadata(patch["category"], patch.get("metadata")),
        created_at=now,
    )
    db.session.add(notification)
    db.session.commit()
    return notification


# -- Visibility --

def is_targeted(notification: Notification, user) -> bool:
    return (
        user.id in (notification.target_users or [])
        or user.role in (notification.target_roles or [])
    )


def is_visible_to(notification: Notification, user, now=None) -> bool:
    now = now or utcnow()
    return (
        notification.is_active
        and normalize_datetime(notification.expires_at) > now
        and is_targeted(notification, user)
    )


def _visible_notifications(user, now=None) -> list[Notification]:
    """
    Targeting lives in JSON columns, so membership is checked in Python after
    the active/expiry filter narrows the rows.
    """
    now = now or utcnow()
    candidates = (
        db.session.query(Notification)
        .filter(Notification.is_active.is_(True), Notification.expires_at > now)
        .all()
    )
    return [n for n in candidates if is_targeted(n, user)]


def _sort_key(notification: Notification):
    return (
        PRIORITY_WEIGHT.get(notification.priority, 0),
        normalize_datetime(notification.created_at),
        notification.id,
    )


def _get_visible(notification_id: int, user, now=None) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None or not is_visible_to(notification, user, now):
        raise NotFoundError("Notification not found")
    return notification


def list_for_user(
    user,
    *,
    unread_only: bool = False,
    type: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    now=None,
) -> dict:
    """
    Notifications visible to user, highest priority first, then newest first.

    Each item carries is_read_by_user.
    """
    if type and type not in NotificationType.values():
        raise ValidationError("Invalid notification type")
    if category and category not in NotificationCategory.values():
        raise ValidationError("Invalid category")
    if priority and priority not in NotificationPriority.values():
        raise ValidationError("Invalid priority")

    page = max(coerce_int("page", page), 1)
    limit = min(max(coerce_int("limit", limit), 1), MAX_PAGE_SIZE)

    visible = _visible_notifications(user, now)
    unread = sum(1 for n in visible if not n.is_read_by(user.id))

    items = visible
    if unread_only:
        items = [n for n in items if not n.is_read_by(user.id)]
    if type:
        items = [n for n in items if n.type == type]
    if category:
        items = [n for n in items if n.category == category]
    if priority:
        items = [n for n in items if n.priority == priority]

    items = sorted(items, key=_sort_key, reverse=True)

    total = len(items)
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    page_items = items[(page - 1) * limit: page * limit]

    return {
        "items": [n.to_dict(for_user_id=user.id) for n in page_items],
        "count": len(page_items),
        "unread_count": unread,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def unread_count(user, now=None) -> int:
    return sum(1 for n in _visible_notifications(user, now) if not n.is_read_by(user.id))


# -- Read tracking --

def mark_read(notification_id: int, user, now=None) -> Notification:
    """Idempotent. A second call leaves the single existing read entry alone."""
    notification = _get_visible(notification_id, user, now)
    if notification.is_read_by(user.id):
        return notification

    notification.reads.append(NotificationRead(user_id=user.id, read_at=now or utcnow()))
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent mark_read for the same user already inserted the row
        db.session.rollback()
        notification = db.session.get(Notification, notification_id)
    return notification


def mark_all_read(user, now=None) -> int:
    now = now or utcnow()
    count = 0
    for notification in _visible_notifications(user, now):
        if not notification.is_read_by(user.id):
            notification.reads.append(NotificationRead(user_id=user.id, read_at=now))
            count += 1
    db.session.commit()
    return count


# -- Lifecycle --

def soft_delete(notification_id: int, caller) -> Notification:
    """
    Deactivate a notification.

    Allowed for admins and for users the notification targets.
    """
    notification = db.session.get(Notification, notification_id)
    if notification is None or not notification.is_active:
        raise NotFoundError("Notification not found")

    if not (is_admin(caller) or is_targeted(notification, caller)):
        current_app.logger.warning(
            "Notification delete denied: notification_id=%s user_id=%s",
            notification_id, getattr(caller, "id", None),
        )
        raise PermissionDeniedError("Not authorized to delete this notification")

    notification.is_active = False
    db.session.commit()
    return notification


def purge_expired(grace_days: int | None = None, now=None) -> int:
    """
    Physically delete notifications that expired more than grace_days ago.

    Maintenance only; read paths never delete.
    """
    if grace_days is None:
        grace_days = int(current_app.config.get("NOTIFICATION_PURGE_GRACE_DAYS", DEFAULT_PURGE_GRACE_DAYS))
    cutoff = (now or utcnow()) - timedelta(days=grace_days)

    expired = db.session.query(Notification).filter(Notification.expires_at < cutoff).all()
    for notification in expired:
        db.session.delete(notification)
    db.session.commit()
    return len(expired)


def get_settings(user) -> dict:
    """Default per-role notification preferences. Not persisted."""
    role = user.role
    return {
        "user_id": user.id,
        "role": role,
        "categories": {
            category.value: role in roles
            for category, roles in CATEGORY_TARGET_ROLES.items()
        },
        "in_app": True,
        "email": False,
        "ttl_days": int(current_app.config.get("NOTIFICATION_TTL_DAYS", DEFAULT_TTL_DAYS)),
    }
