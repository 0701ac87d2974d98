# Overview: Service-layer operations for the component ledger; master data, stock status and summaries.

"""
Component Ledger Service

WHY: Single authoritative store for component master data. The quantity
column is the ledger head and is only changed by movement_service; this
module sets the baseline on creation and never touches it again.

RULES:
- part_number is unique among active components (soft-deleted rows free it)
- a patch containing quantity is rejected; stock changes go through movements
- derived values (stock status, age, old stock) are computed, never stored
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Component
from ..models.enums import ComponentCategory, MovementType, StockStatus
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_decimal,
    coerce_int,
    enforce_rules_component,
    validate_payload,
)
from .concurrency import component_lock, lock_for_update, run_with_retry
from compstock.time_utils import days_since, utcnow


DEFAULT_OLD_STOCK_THRESHOLD_DAYS = 90

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

COMPONENT_EDITABLE_FIELDS = {
    "name",
    "part_number",
    "manufacturer",
    "category",
    "description",
    "unit_price",
    "critical_low_threshold",
    "location",
    "datasheet_link",
}

COMPONENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=COMPONENT_EDITABLE_FIELDS | {"quantity"},
    required_on_create={"name", "part_number", "manufacturer", "location"},
)

COMPONENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=COMPONENT_EDITABLE_FIELDS,
)

SORTABLE_FIELDS = {
    "name": Component.name,
    "part_number": Component.part_number,
    "quantity": Component.quantity,
    "unit_price": Component.unit_price,
    "created_at": Component.created_at,
    "updated_at": Component.updated_at,
}


# -- Derived values --

def _old_stock_threshold() -> int:
    return int(current_app.config.get("OLD_STOCK_THRESHOLD_DAYS", DEFAULT_OLD_STOCK_THRESHOLD_DAYS))


def get_stock_status(component: Component) -> StockStatus:
    quantity = component.quantity or 0
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= (component.critical_low_threshold or 0):
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def age_in_days(component: Component, now=None) -> int:
    return days_since(component.created_at, now)


def last_outward_at(component: Component):
    outward = [m.created_at for m in component.movements if m.type == MovementType.OUTWARD.value]
    return max(outward) if outward else None


def is_old_stock(component: Component, threshold_days: int | None = None, now=None) -> bool:
    """
    Old stock: the component has existed for more than threshold_days and has
    had no outward movement within that window.

    Age is always measured from created_at, never updated_at.
    """
    if threshold_days is None:
        threshold_days = _old_stock_threshold()
    now = now or utcnow()

    if component.created_at is None or age_in_days(component, now) <= threshold_days:
        return False

    last_out = last_outward_at(component)
    if last_out is None:
        return True
    return days_since(last_out, now) > threshold_days


# -- Lookups --

def _find_active(component_id: int) -> Component | None:
    return (
        db.session.query(Component)
        .filter(Component.id == component_id, Component.is_active.is_(True))
        .first()
    )


def get_component(component_id: int) -> Component:
    component = _find_active(component_id)
    if component is None:
        raise NotFoundError("Component not found")
    return component


def part_number_taken(part_number: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Component.id).filter(
        Component.part_number == part_number,
        Component.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Component.id != exclude_id)
    return query.first() is not None


# -- Mutations --

def create_component(data: dict, actor=None) -> Component:
    """
    Create a component. The supplied quantity is the ledger baseline.

    Raises:
        ValidationError: bad or missing fields
        ConflictError: part_number already used by an active component
    """
    patch = validate_payload(model=Component, payload=data, policy=COMPONENT_CREATE_POLICY, partial=False)
    enforce_rules_component(patch)

    patch.setdefault("category", ComponentCategory.OTHER.value)
    patch.setdefault("quantity", 0)
    patch.setdefault("unit_price", Decimal("0"))
    patch.setdefault("critical_low_threshold", 0)

    if part_number_taken(patch["part_number"]):
        raise ConflictError("Part number already exists")

    component = Component(**patch)
    if actor is not None:
        component.created_by_user_id = actor.id
        component.last_updated_by_user_id = actor.id

    db.session.add(component)
    db.session.commit()

    current_app.logger.info(
        "Component created: id=%s part_number=%s quantity=%s",
        component.id, component.part_number, component.quantity,
    )
    return component


def _write_component(component_id: int, mutate) -> Component:
    """
    Load the active component, apply mutate(component) and commit, as one unit.

    The unit is retried on a fresh row when another writer bumped version_id
    first; a conflict that outlasts the retries raises ConflictError.
    """
    def _op():
        with component_lock(component_id):
            component = lock_for_update(
                db.session.query(Component).filter(
                    Component.id == component_id,
                    Component.is_active.is_(True),
                )
            ).first()
            if component is None:
                raise NotFoundError("Component not found")
            mutate(component)
            db.session.commit()
            return component

    try:
        return run_with_retry(_op)
    except StaleDataError:
        db.session.rollback()
        current_app.logger.warning("Component write conflict: id=%s", component_id)
        raise ConflictError("Component was changed by another request, try again")
    except Exception:
        db.session.rollback()
        raise


def update_component(component_id: int, patch: dict, actor=None) -> Component:
    """
    Partial update of non-ledger fields.

    Raises:
        ValidationError: quantity in patch, bad fields
        NotFoundError: component absent or inactive
        ConflictError: new part_number already in use, or a concurrent write won
    """
    if isinstance(patch, dict) and "quantity" in patch:
        raise ValidationError("quantity can only be changed through stock movements")

    cleaned = validate_payload(model=Component, payload=patch, policy=COMPONENT_UPDATE_POLICY, partial=True)
    enforce_rules_component(cleaned)
    actor_id = actor.id if actor is not None else None

    def _apply(component: Component) -> None:
        new_part_number = cleaned.get("part_number")
        if new_part_number and new_part_number != component.part_number:
            if part_number_taken(new_part_number, exclude_id=component.id):
                raise ConflictError("Part number already exists")

        for key, value in cleaned.items():
            setattr(component, key, value)
        if actor_id is not None:
            component.last_updated_by_user_id = actor_id

    return _write_component(component_id, _apply)


def deactivate_component(component_id: int, actor=None) -> Component:
    """Soft delete. Movement history is kept."""
    actor_id = actor.id if actor is not None else None

    def _apply(component: Component) -> None:
        component.is_active = False
        if actor_id is not None:
            component.last_updated_by_user_id = actor_id

    component = _write_component(component_id, _apply)
    current_app.logger.info("Component deactivated: id=%s part_number=%s", component.id, component.part_number)
    return component


# -- Listing --

def _stock_status_clause(status: str):
    if status == StockStatus.OUT_OF_STOCK.value:
        return Component.quantity <= 0
    if status == StockStatus.LOW_STOCK.value:
        return (Component.quantity > 0) & (Component.quantity <= Component.critical_low_threshold)
    if status == StockStatus.IN_STOCK.value:
        return Component.quantity > Component.critical_low_threshold
    raise ValidationError("Invalid stock status")


def list_components(filters: dict | None = None) -> dict:
    """
    Filtered, sorted, paginated listing of active components.

    filters keys (all optional):
        category, location, stock_status, search,
        min_quantity, max_quantity, min_price, max_price,
        sort_by, sort_order ("asc" | "desc"), page, limit

    Returns:
        Dict with 'items', 'count' and 'pagination'.
    """
    filters = filters or {}
    query = db.session.query(Component).filter(Component.is_active.is_(True))

    category = filters.get("category")
    if category:
        if category not in ComponentCategory.values():
            raise ValidationError("Invalid category selected")
        query = query.filter(Component.category == category)

    location = filters.get("location")
    if location:
        query = query.filter(Component.location.ilike(f"%{location}%"))

    status = filters.get("stock_status")
    if status:
        query = query.filter(_stock_status_clause(status))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Component.name.ilike(pattern),
                Component.part_number.ilike(pattern),
                Component.manufacturer.ilike(pattern),
                Component.description.ilike(pattern),
            )
        )

    if filters.get("min_quantity") not in (None, ""):
        query = query.filter(Component.quantity >= coerce_int("min_quantity", filters["min_quantity"]))
    if filters.get("max_quantity") not in (None, ""):
        query = query.filter(Component.quantity <= coerce_int("max_quantity", filters["max_quantity"]))
    if filters.get("min_price") not in (None, ""):
        query = query.filter(Component.unit_price >= coerce_decimal("min_price", filters["min_price"]))
    if filters.get("max_price") not in (None, ""):
        query = query.filter(Component.unit_price <= coerce_decimal("max_price", filters["max_price"]))

    sort_by = filters.get("sort_by") or "name"
    sort_col = SORTABLE_FIELDS.get(sort_by)
    if sort_col is None:
        raise ValidationError(f"Cannot sort by {sort_by}")
    sort_order = (filters.get("sort_order") or "asc").lower()
    if sort_order not in {"asc", "desc"}:
        raise ValidationError("sort_order must be asc or desc")
    ordering = sort_col.desc() if sort_order == "desc" else sort_col.asc()
    query = query.order_by(ordering, Component.id.asc())

    page = coerce_int("page", filters.get("page") or 1)
    limit = coerce_int("limit", filters.get("limit") or DEFAULT_PAGE_SIZE)
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    components = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [c.to_dict() for c in components],
        "count": len(components),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_active_components() -> list[Component]:
    return (
        db.session.query(Component)
        .filter(Component.is_active.is_(True))
        .order_by(Component.id.asc())
        .all()
    )


def get_inventory_summary(now=None) -> dict:
    """
    Inventory totals across active components.

    Old-stock counting needs movement history, so it is done in Python;
    everything else is aggregated in SQL.
    """
    active = Component.is_active.is_(True)

    totals = db.session.query(
        func.count(Component.id),
        func.coalesce(func.sum(Component.quantity), 0),
        func.coalesce(func.sum(Component.quantity * Component.unit_price), 0),
        func.avg(Component.unit_price),
    ).filter(active).one()

    low_stock = (
        db.session.query(func.count(Component.id))
        .filter(active, _stock_status_clause(StockStatus.LOW_STOCK.value))
        .scalar()
    )
    out_of_stock = (
        db.session.query(func.count(Component.id))
        .filter(active, _stock_status_clause(StockStatus.OUT_OF_STOCK.value))
        .scalar()
    )

    threshold = _old_stock_threshold()
    old_stock = sum(1 for c in list_active_components() if is_old_stock(c, threshold, now))

    total_components, total_quantity, total_value, avg_price = totals
    return {
        "total_components": int(total_components or 0),
        "total_quantity": int(total_quantity or 0),
        "total_value": round(float(total_value or 0), 2),
        "average_unit_price": round(float(avg_price or 0), 2),
        "low_stock_count": int(low_stock or 0),
        "out_of_stock_count": int(out_of_stock or 0),
        "old_stock_count": old_stock,
        "old_stock_threshold_days": threshold,
    }


