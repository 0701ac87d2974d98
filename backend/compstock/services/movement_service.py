# Overview: Service-layer operations for stock movements; the only writer of component quantity.

"""
Movement Processor

WHY: Every change to a component's quantity is an appended StockMovement row
plus an update of the ledger head, committed together. There is no other
path that changes quantity.

INVARIANTS:
- quantity == baseline + SUM(inward) - SUM(outward)
- quantity never goes negative; an outward that would do so is rejected, never clamped
- movements are immutable; mistakes are corrected with a compensating movement

CONCURRENCY:
Writes for one component are serialized with an in-process lock plus
SELECT ... FOR UPDATE; the component's version_id column catches writers in
other processes (StaleDataError -> retry).

After commit a MovementApplied event is handed to alert_service, which never
raises back into this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Component, StockMovement
from ..models.enums import MovementType
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_movement,
    validate_payload,
)
from . import alert_service
from .component_service import get_component
from .concurrency import component_lock, lock_for_update, run_with_retry
from compstock.time_utils import to_utc_z, utcnow


BULK_UPDATE_NOTE = "Bulk update operation"

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "reason", "project", "notes"},
    required_on_create={"quantity", "reason", "project"},
)

STATISTICS_PERIODS = {
    "week": 7,
    "month": 30,
    "quarter": 90,
    "year": 365,
}


class InsufficientStockError(ValidationError):
    """Raised when an outward movement asks for more than is on hand."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available}, Requested: {requested}")


@dataclass(frozen=True)
class MovementApplied:
    """Post-commit fact handed to the alert engine."""
    component_id: int
    movement_id: int
    movement_type: str
    quantity: int
    old_quantity: int
    new_quantity: int
    actor_id: int
    actor_name: str
    reason: str
    project: str


@dataclass
class MovementResult:
    component: Component
    movement: StockMovement
    old_quantity: int
    warnings: list[str] = field(default_factory=list)

    @property
    def new_quantity(self) -> int:
        return self.component.quantity

    def to_dict(self) -> dict:
        return {
            "component": self.component.to_dict(),
            "movement": self.movement.to_dict(),
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "warnings": list(self.warnings),
        }


@dataclass
class BulkResult:
    succeeded: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "success_count": len(self.succeeded),
            "failure_count": len(self.failed),
        }


def _parse_movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise ValidationError("Movement type must be inward or outward")


def _warnings_for(component: Component, movement_type: MovementType) -> list[str]:
    if movement_type != MovementType.OUTWARD:
        return []
    if component.quantity == 0:
        return ["Component is now out of stock"]
    if component.quantity <= component.critical_low_threshold:
        return [f"Stock level is below critical threshold ({component.critical_low_threshold})"]
    return []


def apply_movement(
    component_id: int,
    movement_type: MovementType | str,
    quantity: int,
    actor,
    reason: str,
    project: str,
    notes: str | None = None,
) -> MovementResult:
    """
    Append one movement and update the component quantity atomically.

    Raises:
        ValidationError: bad quantity, missing reason/project, bad type
        InsufficientStockError: outward quantity exceeds stock on hand
        NotFoundError: component absent or inactive
        ConflictError: component lock not acquired in time
    """
    mtype = _parse_movement_type(movement_type)
    component_id = coerce_int("component_id", component_id)
    if actor is None:
        raise ValidationError("actor is required")

    patch = validate_payload(
        model=StockMovement,
        payload={"quantity": quantity, "reason": reason, "project": project, "notes": notes},
        policy=MOVEMENT_POLICY,
        partial=False,
    )
    enforce_rules_movement(patch)
    qty = patch["quantity"]

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

            old_quantity = component.quantity
            if mtype == MovementType.OUTWARD and qty > old_quantity:
                raise InsufficientStockError(old_quantity, qty)

            movement = StockMovement(
                component_id=component.id,
                type=mtype.value,
                quantity=qty,
                user_id=actor.id,
                user_name=actor.name,
                reason=patch["reason"],
                project=patch["project"],
                notes=patch.get("notes") or None,
                created_at=utcnow(),
            )
            component.quantity = old_quantity + qty if mtype == MovementType.INWARD else old_quantity - qty
            component.last_updated_by_user_id = actor.id

            db.session.add(movement)
            db.session.commit()
            return component, movement, old_quantity

    try:
        component, movement, old_quantity = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Movement applied: component_id=%s type=%s qty=%s %s->%s user_id=%s",
        component.id, mtype.value, qty, old_quantity, component.quantity, actor.id,
    )

    alert_service.handle_movement_applied(
        MovementApplied(
            component_id=component.id,
            movement_id=movement.id,
            movement_type=mtype.value,
            quantity=qty,
            old_quantity=old_quantity,
            new_quantity=component.quantity,
            actor_id=actor.id,
            actor_name=actor.name,
            reason=movement.reason,
            project=movement.project,
        )
    )

    return MovementResult(
        component=component,
        movement=movement,
        old_quantity=old_quantity,
        warnings=_warnings_for(component, mtype),
    )


def bulk_apply_movements(updates: list, reason: str, project: str, actor) -> BulkResult:
    """
    Apply many signed quantity changes, each in its own transaction.

    Each update is {component_id, quantity, reason?}: positive quantity is
    inward, negative is outward. Failed items are reported, not raised.
    """
    if not isinstance(updates, list) or not updates:
        raise ValidationError("Updates array is required")

    result = BulkResult()
    for item in updates:
        try:
            if not isinstance(item, dict):
                raise ValidationError("Each update must be an object")
            component_id = coerce_int("component_id", item.get("component_id"))
            delta = coerce_int("quantity", item.get("quantity"))
            if delta == 0:
                raise ValidationError("quantity must be non-zero")

            applied = apply_movement(
                component_id,
                MovementType.INWARD if delta > 0 else MovementType.OUTWARD,
                abs(delta),
                actor,
                reason=item.get("reason") or reason,
                project=project,
                notes=BULK_UPDATE_NOTE,
            )
            result.succeeded.append({
                "component_id": component_id,
                "movement": applied.movement.to_dict(),
                "old_quantity": applied.old_quantity,
                "new_quantity": applied.new_quantity,
                "warnings": applied.warnings,
            })
        except (ValidationError, NotFoundError, ConflictError) as exc:
            result.failed.append({"item": item, "error": str(exc)})
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Bulk movement item failed: item=%s", item)
            result.failed.append({"item": item, "error": "Database error, try again"})

    current_app.logger.info(
        "Bulk movements: %s succeeded, %s failed",
        len(result.succeeded), len(result.failed),
    )
    return result


def list_movement_history(component_id: int, page: int = 1, limit: int = 50) -> dict:
    """Movements for one component, newest first."""
    component = get_component(component_id)

    page = max(coerce_int("page", page), 1)
    limit = min(max(coerce_int("limit", limit), 1), 100)

    query = (
        db.session.query(StockMovement)
        .filter(StockMovement.component_id == component.id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    )
    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    movements = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "component": {
            "id": component.id,
            "name": component.name,
            "part_number": component.part_number,
            "quantity": component.quantity,
        },
        "items": [m.to_dict() for m in movements],
        "count": len(movements),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_recent_movements(limit: int = 50) -> list[dict]:
    """Most recent movements across active components."""
    limit = min(max(coerce_int("limit", limit), 1), 100)
    rows = (
        db.session.query(StockMovement, Component)
        .join(Component, StockMovement.component_id == Component.id)
        .filter(Component.is_active.is_(True))
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )

    items = []
    for movement, component in rows:
        data = movement.to_dict()
        data["component"] = {
            "id": component.id,
            "name": component.name,
            "part_number": component.part_number,
        }
        items.append(data)
    return items


def get_movement_statistics(period: str = "month", now=None) -> dict:
    """
    Inward/outward totals over a trailing window.

    period: week | month | quarter | year
    """
    days = STATISTICS_PERIODS.get(period)
    if days is None:
        raise ValidationError("Period must be one of: week, month, quarter, year")

    now = now or utcnow()
    start = now - timedelta(days=days)

    rows = (
        db.session.query(
            StockMovement.type,
            func.coalesce(func.sum(StockMovement.quantity), 0),
            func.count(StockMovement.id),
        )
        .filter(StockMovement.created_at >= start)
        .group_by(StockMovement.type)
        .all()
    )

    stats = {
        mtype.value: {"total_quantity": 0, "transactions": 0}
        for mtype in MovementType
    }
    for mtype, total_quantity, transactions in rows:
        stats[mtype] = {"total_quantity": int(total_quantity), "transactions": int(transactions)}

    top_projects = (
        db.session.query(StockMovement.project, func.sum(StockMovement.quantity))
        .filter(
            StockMovement.created_at >= start,
            StockMovement.type == MovementType.OUTWARD.value,
        )
        .group_by(StockMovement.project)
        .order_by(func.sum(StockMovement.quantity).desc())
        .limit(5)
        .all()
    )

    return {
        "period": period,
        "start": to_utc_z(start),
        "end": to_utc_z(now),
        "inward": stats[MovementType.INWARD.value],
        "outward": stats[MovementType.OUTWARD.value],
        "net_change": stats[MovementType.INWARD.value]["total_quantity"]
        - stats[MovementType.OUTWARD.value]["total_quantity"],
        "top_projects": [
            {"project": project, "quantity": int(quantity)}
            for project, quantity in top_projects
        ],
    }
