from __future__ import annotations
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from compstock.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.enums import (
    ComponentCategory,
    Role,
    NotificationType,
    NotificationPriority,
    NotificationCategory,
)
from .permissions.helpers import validate_permission_code


# Maximum unit price: 9,999,999,999.99 fits Numeric(12, 2)
MAX_UNIT_PRICE = Decimal("9999999999.99")

DATASHEET_URL_RE = re.compile(r"^https?://.+")
EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate part number)."""


class NotFoundError(ValueError):
    """404-level: referenced entity is absent or inactive."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - virtual_fields: accepted keys that are not columns (validated by enforce_rules_*)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    virtual_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is (JSON columns)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    virtual = policy.virtual_fields or set()

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols and k not in virtual:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in virtual:
            patch[k] = raw
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _require_non_negative(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None and patch[key] < 0:
        raise ValidationError(f"{key} must be >= 0")


def enforce_rules_component(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _require_non_negative(patch, "quantity")
    _require_non_negative(patch, "critical_low_threshold")
    _require_non_negative(patch, "unit_price")

    if patch.get("unit_price") is not None and patch["unit_price"] > MAX_UNIT_PRICE:
        raise ValidationError(f"unit_price cannot exceed {MAX_UNIT_PRICE}")

    if "category" in patch and patch["category"] not in ComponentCategory.values():
        raise ValidationError("Invalid category selected")

    link = patch.get("datasheet_link")
    if link and not DATASHEET_URL_RE.match(link):
        raise ValidationError("Datasheet link must be a valid URL")


def enforce_rules_movement(patch: dict) -> None:
    # Movements require qty >= 1 and the reason/project audit fields
    if "quantity" not in patch or patch["quantity"] is None:
        raise ValidationError("quantity is required")
    if patch["quantity"] < 1:
        raise ValidationError("Quantity must be a positive integer")

    for key in ("reason", "project"):
        value = patch.get(key)
        if value is None or str(value).strip() == "":
            raise ValidationError(f"{key} is required")


def enforce_rules_user(patch: dict) -> None:
    if "username" in patch and patch["username"] is not None and len(patch["username"]) < 3:
        raise ValidationError("Username must be at least 3 characters long")

    if "email" in patch and patch["email"] is not None:
        patch["email"] = patch["email"].lower()
        if not EMAIL_RE.match(patch["email"]):
            raise ValidationError("Please enter a valid email")

    if "role" in patch and patch["role"] not in Role.values():
        raise ValidationError("Role must be either admin, user, researcher, or engineer")

    if "permissions" in patch:
        perms = patch["permissions"] or []
        if not isinstance(perms, (list, tuple, set)):
            raise ValidationError("permissions must be a list")
        unknown = [p for p in perms if not validate_permission_code(p)]
        if unknown:
            raise ValidationError(f"Unknown permissions: {', '.join(map(str, unknown))}")
        patch["permissions"] = sorted(set(perms))


def enforce_rules_notification(patch: dict) -> None:
    if "type" in patch and patch["type"] not in NotificationType.values():
        raise ValidationError("Invalid notification type")
    if "priority" in patch and patch["priority"] not in NotificationPriority.values():
        raise ValidationError("Invalid priority")
    if "category" in patch and patch["category"] not in NotificationCategory.values():
        raise ValidationError("Invalid category")

    if "target_roles" in patch:
        roles = patch["target_roles"] or []
        if not isinstance(roles, list):
            raise ValidationError("Target roles must be an array")
        if any(r not in Role.values() for r in roles):
            raise ValidationError("Invalid target role")

    if "target_users" in patch:
        users = patch["target_users"] or []
        if not isinstance(users, list):
            raise ValidationError("Target users must be an array")
        patch["target_users"] = [coerce_int("target_users", u) for u in users]

    if "metadata" in patch and patch["metadata"] is not None and not isinstance(patch["metadata"], dict):
        raise ValidationError("metadata must be an object")
