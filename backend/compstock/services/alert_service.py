# Overview: Service-layer operations for stock alerts; low/old stock scans with windowed de-duplication.

"""
Alert Engine

WHY: Turn ledger state into notifications without ever writing to the ledger.

RULES:
- Low stock: quantity <= critical_low_threshold. Priority high at zero,
  otherwise medium. Suppressed for LOW_STOCK_DEDUP_HOURS per component.
- Old stock: older than the threshold with no outward movement inside it.
  Priority low. Suppressed for OLD_STOCK_DEDUP_DAYS per component.
- Every applied movement records a stock_movement notification and, when the
  component ends at or below threshold, runs the low-stock rule for it.

Scans read committed state and tolerate staleness; a concurrent movement may
land between the read and the alert.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Component, Notification
from ..models.enums import MovementType, NotificationCategory, NotificationPriority, NotificationType
from .component_service import age_in_days, is_old_stock, list_active_components
from .notification_service import (
    CATEGORY_TARGET_ROLES,
    LowStockMetadata,
    OldStockMetadata,
    StockMovementMetadata,
    create_notification,
)
from compstock.time_utils import utcnow


@dataclass(frozen=True)
class SuppressionWindow:
    """
    A category/component pair is suppressed while an active, unexpired
    notification for it was created inside the window.
    """
    category: NotificationCategory
    window: timedelta

    def is_suppressed(self, component_id: int, now=None) -> bool:
        now = now or utcnow()
        existing = (
            db.session.query(Notification.id)
            .filter(
                Notification.category == self.category.value,
                Notification.related_component_id == component_id,
                Notification.is_active.is_(True),
                Notification.expires_at > now,
                Notification.created_at >= now - self.window,
            )
            .first()
        )
        return existing is not None


def low_stock_window() -> SuppressionWindow:
    hours = int(current_app.config.get("LOW_STOCK_DEDUP_HOURS", 24))
    return SuppressionWindow(NotificationCategory.LOW_STOCK, timedelta(hours=hours))


def old_stock_window() -> SuppressionWindow:
    days = int(current_app.config.get("OLD_STOCK_DEDUP_DAYS", 7))
    return SuppressionWindow(NotificationCategory.OLD_STOCK, timedelta(days=days))


@dataclass
class AlertReport:
    low_stock: list[Notification] = field(default_factory=list)
    old_stock: list[Notification] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.low_stock) + len(self.old_stock)

    def to_dict(self) -> dict:
        return {
            "low_stock_alerts": len(self.low_stock),
            "old_stock_alerts": len(self.old_stock),
            "total": self.total,
            "alerts": [n.to_dict() for n in self.low_stock + self.old_stock],
        }


def _is_low(component: Component) -> bool:
    return component.quantity <= component.critical_low_threshold


def _create_low_stock_alert(component: Component, now) -> Notification:
    out_of_stock = component.quantity == 0
    return create_notification(
        {
            "type": NotificationType.WARNING.value,
            "title": "Out of Stock Alert" if out_of_stock else "Low Stock Alert",
            "message": (
                f"{component.name} ({component.part_number}) is running low. "
                f"Current quantity: {component.quantity}, Threshold: {component.critical_low_threshold}"
            ),
            "priority": (NotificationPriority.HIGH if out_of_stock else NotificationPriority.MEDIUM).value,
            "category": NotificationCategory.LOW_STOCK.value,
            "related_component_id": component.id,
            "target_roles": CATEGORY_TARGET_ROLES[NotificationCategory.LOW_STOCK],
            "metadata": LowStockMetadata(
                component_id=component.id,
                component_name=component.name,
                component_part_number=component.part_number,
                new_quantity=component.quantity,
                threshold=component.critical_low_threshold,
            ),
        },
        now=now,
    )


def _create_old_stock_alert(component: Component, threshold_days: int, now) -> Notification:
    age = age_in_days(component, now)
    return create_notification(
        {
            "type": NotificationType.INFO.value,
            "title": "Old Stock Alert",
            "message": (
                f"{component.name} ({component.part_number}) has had no outward movement "
                f"in over {threshold_days} days. Age: {age} days"
            ),
            "priority": NotificationPriority.LOW.value,
            "category": NotificationCategory.OLD_STOCK.value,
            "related_component_id": component.id,
            "target_roles": CATEGORY_TARGET_ROLES[NotificationCategory.OLD_STOCK],
            "metadata": OldStockMetadata(
                component_id=component.id,
                component_name=component.name,
                component_part_number=component.part_number,
                age_in_days=age,
            ),
        },
        now=now,
    )


def scan_low_stock(components: list[Component] | None = None, now=None) -> list[Notification]:
    """
    Create low_stock notifications for components at or below threshold.

    components=None scans every active component.
    """
    now = now or utcnow()
    if components is None:
        components = (
            db.session.query(Component)
            .filter(
                Component.is_active.is_(True),
                Component.quantity <= Component.critical_low_threshold,
            )
            .order_by(Component.id.asc())
            .all()
        )

    window = low_stock_window()
    created = []
    for component in components:
        if not component.is_active or not _is_low(component):
            continue
        if window.is_suppressed(component.id, now):
            continue
        created.append(_create_low_stock_alert(component, now))

    if created:
        current_app.logger.info("Low stock scan created %s alert(s)", len(created))
    return created


def scan_old_stock(
    components: list[Component] | None = None,
    threshold_days: int | None = None,
    now=None,
) -> list[Notification]:
    """Create old_stock notifications for stale components."""
    now = now or utcnow()
    if threshold_days is None:
        threshold_days = int(current_app.config.get("OLD_STOCK_THRESHOLD_DAYS", 90))

    if components is None:
        cutoff = now - timedelta(days=threshold_days)
        components = [c for c in list_active_components() if c.created_at is not None and c.created_at < cutoff]

    window = old_stock_window()
    created = []
    for component in components:
        if not component.is_active or not is_old_stock(component, threshold_days, now):
            continue
        if window.is_suppressed(component.id, now):
            continue
        created.append(_create_old_stock_alert(component, threshold_days, now))

    if created:
        current_app.logger.info("Old stock scan created %s alert(s)", len(created))
    return created


def check_alerts(now=None) -> AlertReport:
    """Run both scans."""
    now = now or utcnow()
    report = AlertReport(
        low_stock=scan_low_stock(now=now),
        old_stock=scan_old_stock(now=now),
    )
    current_app.logger.info(
        "Alert check complete: %s low stock, %s old stock",
        len(report.low_stock), len(report.old_stock),
    )
    return report


def _record_movement_notification(event, component: Component | None) -> Notification:
    inward = event.movement_type == MovementType.INWARD.value
    name = component.name if component is not None else f"Component #{event.component_id}"
    part_number = component.part_number if component is not None else ""
    verb = "added" if inward else "removed"

    return create_notification({
        "type": (NotificationType.SUCCESS if inward else NotificationType.INFO).value,
        "title": "Stock Inward" if inward else "Stock Outward",
        "message": (
            f"{event.actor_name} {verb} {event.quantity} units of {name}. "
            f"Quantity {event.old_quantity} -> {event.new_quantity} (project: {event.project})"
        ),
        "priority": NotificationPriority.LOW.value,
        "category": NotificationCategory.STOCK_MOVEMENT.value,
        "related_component_id": event.component_id,
        "related_user_id": event.actor_id,
        "target_roles": CATEGORY_TARGET_ROLES[NotificationCategory.STOCK_MOVEMENT],
        "metadata": StockMovementMetadata(
            component_id=event.component_id,
            component_name=name,
            component_part_number=part_number,
            movement_type=event.movement_type,
            quantity=event.quantity,
            old_quantity=event.old_quantity,
            new_quantity=event.new_quantity,
            project=event.project,
            reason=event.reason,
        ),
    })


def handle_movement_applied(event) -> None:
    """
    React to a committed movement. Never raises: the movement is already
    durable, so alert failures are logged and dropped.
    """
    try:
        component = db.session.get(Component, event.component_id)
        _record_movement_notification(event, component)
        if component is not None and component.is_active and _is_low(component):
            scan_low_stock([component])
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Alert handling failed for movement_id=%s component_id=%s",
            event.movement_id, event.component_id,
        )
