# Overview: Service-layer operations for capability checks; pure role -> capability resolution.

"""
Capability Resolution

WHY: Every ledger mutation and alert action is gated by one capability token.
Resolution is a pure function of the user row so it can run in request
handlers, CLI commands and tests without touching the database.

RESOLUTION ORDER:
1. Explicit user.permissions list, when non-empty
2. Fixed role table (permissions/roles.py)
3. {view}

"all" grants every capability.

DESIGN PRINCIPLES:
- Fail closed: unknown tokens in an explicit list are ignored, not granted
- Log denials only: grants are not logged
"""

from __future__ import annotations

from flask import current_app

from ..models.enums import Capability, Role
from ..permissions import DEFAULT_ROLE_PERMISSIONS, FALLBACK_PERMISSIONS


class PermissionDeniedError(Exception):
    """Raised when user lacks required capability."""
    pass


def _as_capability(value) -> Capability | None:
    try:
        return Capability(value)
    except ValueError:
        return None


def resolve_permissions(user) -> frozenset[Capability]:
    """
    Effective capability set for a user.

    Returns the stored set, not the expanded one: a user holding "all" gets
    frozenset({Capability.ALL}). Use can() for membership checks.
    """
    if user is None:
        return frozenset()

    explicit = [c for c in (_as_capability(p) for p in (user.permissions or [])) if c is not None]
    if explicit:
        return frozenset(explicit)

    try:
        role = Role(user.role)
    except ValueError:
        return FALLBACK_PERMISSIONS

    return DEFAULT_ROLE_PERMISSIONS.get(role, FALLBACK_PERMISSIONS)


def can(user, capability: Capability | str) -> bool:
    """
    Check if user holds a capability.

    Inactive users hold nothing.
    """
    if user is None or not user.is_active:
        return False

    cap = _as_capability(capability)
    if cap is None:
        return False

    granted = resolve_permissions(user)
    return Capability.ALL in granted or cap in granted


def is_admin(user) -> bool:
    return user is not None and user.role == Role.ADMIN.value


def require_capability(user, capability: Capability | str, *, resource: str | None = None) -> None:
    """
    Require user to hold capability, raise PermissionDeniedError if not.

    Usage:
        require_capability(g.current_user, Capability.OUTWARD, resource="/api/movements/outward")
    """
    if can(user, capability):
        return

    code = capability.value if isinstance(capability, Capability) else str(capability)
    current_app.logger.warning(
        "Permission denied: user_id=%s role=%s capability=%s resource=%s",
        getattr(user, "id", None),
        getattr(user, "role", None),
        code,
        resource,
    )
    raise PermissionDeniedError(f"Permission denied: {code}")
