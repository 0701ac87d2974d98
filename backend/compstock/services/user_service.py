# Overview: Service-layer operations for users; account records used for attribution and authorization.

"""
User Service

Authentication is handled upstream; this module only maintains the user
rows that movements, components and notifications point at.

Username and email are unique across the table (email is stored lower-cased).
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Component, StockMovement, User
from ..models.enums import Role
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_user,
    validate_payload,
)
from .permission_service import PermissionDeniedError, is_admin
from compstock.time_utils import to_utc_z, utcnow


DEFAULT_ACTIVITY_PAGE_SIZE = 20
RECENT_USER_DAYS = 30


USER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"username", "name", "email", "role", "permissions"},
    required_on_create={"username", "name", "email"},
)

USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"username", "name", "email", "role", "permissions", "is_active"},
)


def _check_unique(*, username: str | None, email: str | None, exclude_id: int | None = None) -> None:
    if username is not None:
        query = db.session.query(User.id).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Username already exists")

    if email is not None:
        query = db.session.query(User.id).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Email already exists")


def _commit_unique() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")


def create_user(data: dict, actor=None) -> User:
    """
    Create a user account.

    Raises:
        ValidationError: bad username/email/role/permissions
        ConflictError: username or email taken
    """
    patch = validate_payload(model=User, payload=data, policy=USER_CREATE_POLICY, partial=False)
    enforce_rules_user(patch)
    patch.setdefault("role", Role.USER.value)
    patch.setdefault("permissions", [])

    _check_unique(username=patch["username"], email=patch["email"])

    user = User(**patch)
    if actor is not None:
        user.created_by_user_id = actor.id

    db.session.add(user)
    _commit_unique()

    current_app.logger.info("User created: id=%s username=%s role=%s", user.id, user.username, user.role)
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_active_user(user_id: int) -> User | None:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def update_user(user_id: int, patch: dict, actor=None) -> User:
    cleaned = validate_payload(model=User, payload=patch, policy=USER_UPDATE_POLICY, partial=True)
    enforce_rules_user(cleaned)

    user = get_user(user_id)
    if actor is not None and actor.id == user.id and cleaned.get("is_active") is False:
        raise ValidationError("You cannot deactivate your own account")

    _check_unique(
        username=cleaned.get("username"),
        email=cleaned.get("email"),
        exclude_id=user.id,
    )

    for key, value in cleaned.items():
        setattr(user, key, value)

    _commit_unique()
    return user


def deactivate_user(user_id: int, actor=None) -> User:
    """Soft delete. An admin cannot deactivate themself."""
    user = get_user(user_id)
    if actor is not None and actor.id == user.id:
        raise ValidationError("You cannot deactivate your own account")
    if not user.is_active:
        raise NotFoundError("User not found")

    user.is_active = False
    db.session.commit()

    current_app.logger.info("User deactivated: id=%s by user_id=%s", user.id, getattr(actor, "id", None))
    return user


def list_users(filters: dict | None = None) -> dict:
    """
    filters keys (all optional): role, is_active, search, page, limit
    """
    filters = filters or {}
    query = db.session.query(User)

    role = filters.get("role")
    if role:
        if role not in Role.values():
            raise ValidationError("Invalid role")
        query = query.filter(User.role == role)

    is_active = filters.get("is_active")
    if is_active not in (None, ""):
        if isinstance(is_active, str):
            is_active = is_active.lower() in {"1", "true", "yes"}
        query = query.filter(User.is_active.is_(bool(is_active)))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                User.username.ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )

    page = max(coerce_int("page", filters.get("page") or 1), 1)
    limit = min(max(coerce_int("limit", filters.get("limit") or 20), 1), 100)

    query = query.order_by(User.created_at.desc(), User.id.desc())
    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    users = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [u.to_dict() for u in users],
        "count": len(users),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _paginate_args(page, limit) -> tuple[int, int]:
    page = max(coerce_int("page", page or 1), 1)
    limit = min(max(coerce_int("limit", limit or DEFAULT_ACTIVITY_PAGE_SIZE), 1), 100)
    return page, limit


def get_user_activity(user_id: int, caller, page: int = 1, limit: int = DEFAULT_ACTIVITY_PAGE_SIZE) -> dict:
    """
    Components a user created and movements they recorded, newest first.

    Callers may read their own activity; admins may read anyone's.

    Raises:
        PermissionDeniedError: caller is neither the user nor an admin
        NotFoundError: user does not exist
    """
    if caller.id != user_id and not is_admin(caller):
        current_app.logger.warning(
            "Activity access denied: user_id=%s caller_id=%s", user_id, caller.id,
        )
        raise PermissionDeniedError("You can only view your own activity")

    user = get_user(user_id)
    page, limit = _paginate_args(page, limit)
    window = page * limit

    created_query = db.session.query(Component).filter(Component.created_by_user_id == user.id)
    moved_query = (
        db.session.query(StockMovement, Component)
        .join(Component, StockMovement.component_id == Component.id)
        .filter(StockMovement.user_id == user.id)
    )
    total = created_query.count() + moved_query.count()

    # The first page*limit entries of the merge come from the first page*limit of each side
    created = (
        created_query.order_by(Component.created_at.desc(), Component.id.desc())
        .limit(window)
        .all()
    )
    moved = (
        moved_query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(window)
        .all()
    )

    entries = [
        {
            "activity_type": "component_created",
            "component_id": c.id,
            "component_name": c.name,
            "component_part_number": c.part_number,
            "activity_date": c.created_at,
        }
        for c in created
    ]
    entries += [
        {
            "activity_type": "movement",
            "component_id": c.id,
            "component_name": c.name,
            "component_part_number": c.part_number,
            "movement_id": m.id,
            "movement_type": m.type,
            "quantity": m.quantity,
            "reason": m.reason,
            "project": m.project,
            "activity_date": m.created_at,
        }
        for m, c in moved
    ]
    entries.sort(key=lambda e: e["activity_date"], reverse=True)

    items = entries[(page - 1) * limit:window]
    for entry in items:
        entry["activity_date"] = to_utc_z(entry["activity_date"])

    total_pages = (total + limit - 1) // limit if total > 0 else 1
    return {
        "user": {"id": user.id, "username": user.username, "name": user.name},
        "items": items,
        "count": len(items),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_user_stats(now=None) -> dict:
    """Head counts overall, by activity, by recency and by role."""
    now = now or utcnow()

    rows = (
        db.session.query(User.role, User.is_active, func.count(User.id))
        .group_by(User.role, User.is_active)
        .all()
    )
    role_breakdown = {role: {"total": 0, "active": 0} for role in sorted(Role.values())}
    for role, active, count in rows:
        bucket = role_breakdown.setdefault(role, {"total": 0, "active": 0})
        bucket["total"] += count
        if active:
            bucket["active"] += count

    total = sum(b["total"] for b in role_breakdown.values())
    active = sum(b["active"] for b in role_breakdown.values())
    recent = (
        db.session.query(func.count(User.id))
        .filter(User.created_at >= now - timedelta(days=RECENT_USER_DAYS))
        .scalar()
    )

    return {
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "recent_users": int(recent or 0),
        "role_breakdown": role_breakdown,
    }
