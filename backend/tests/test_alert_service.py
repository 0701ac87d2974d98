"""
Alert engine tests.

Verifies:
- Low stock scan de-duplicates inside its window
- Priority follows quantity (zero -> high)
- Old stock scan honors the outward gate and its own window
- Movements trigger the low stock rule for the affected component
"""

from datetime import timedelta

from compstock.models import Notification
from compstock.services import alert_service, movement_service
from compstock.services.alert_service import SuppressionWindow
from compstock.models.enums import NotificationCategory
from compstock.time_utils import utcnow


def _alerts(db_session, category):
    return db_session.query(Notification).filter_by(category=category).all()


# =============================================================================
# LOW STOCK
# =============================================================================


class TestLowStockScan:

    def test_scan_twice_creates_one(self, db_session, make_component):
        make_component(quantity=5, critical_low_threshold=10)

        first = alert_service.scan_low_stock()
        second = alert_service.scan_low_stock()

        assert len(first) == 1
        assert second == []
        assert len(_alerts(db_session, "low_stock")) == 1

    def test_window_expiry_allows_new_alert(self, db_session, make_component):
        make_component(quantity=5, critical_low_threshold=10)
        now = utcnow()

        alert_service.scan_low_stock(now=now)
        later = alert_service.scan_low_stock(now=now + timedelta(hours=25))
        assert len(later) == 1

    def test_soft_deleted_alert_does_not_suppress(self, db_session, make_component):
        make_component(quantity=5, critical_low_threshold=10)
        alert = alert_service.scan_low_stock()[0]
        alert.is_active = False
        db_session.commit()

        assert len(alert_service.scan_low_stock()) == 1

    def test_priority_and_targets(self, db_session, make_component):
        empty = make_component(quantity=0, critical_low_threshold=10)
        low = make_component(quantity=3, critical_low_threshold=10)
        make_component(quantity=50, critical_low_threshold=10)

        created = {n.related_component_id: n for n in alert_service.scan_low_stock()}
        assert set(created) == {empty.id, low.id}
        assert created[empty.id].priority == "high"
        assert created[low.id].priority == "medium"
        assert created[low.id].type == "warning"
        assert created[low.id].target_roles == ["admin", "user"]
        assert created[low.id].meta == {
            "component_id": low.id,
            "component_name": low.name,
            "component_part_number": low.part_number,
            "new_quantity": 3,
            "threshold": 10,
        }

    def test_suppression_window_rule(self, db_session, make_component):
        component = make_component(quantity=1, critical_low_threshold=10)
        window = SuppressionWindow(NotificationCategory.LOW_STOCK, timedelta(hours=24))
        assert not window.is_suppressed(component.id)
        alert_service.scan_low_stock([component])
        assert window.is_suppressed(component.id)


# =============================================================================
# OLD STOCK
# =============================================================================


class TestOldStockScan:

    def test_old_component_alerted_once(self, db_session, make_component, lab_user):
        now = utcnow()
        component = make_component(quantity=50)
        result = movement_service.apply_movement(component.id, "outward", 1, lab_user, "Build", "Rover")
        component.created_at = now - timedelta(days=95)
        result.movement.created_at = now - timedelta(days=91)
        db_session.commit()

        created = alert_service.scan_old_stock(now=now)
        assert [n.related_component_id for n in created] == [component.id]
        assert created[0].priority == "low"
        assert created[0].type == "info"
        assert created[0].target_roles == ["admin"]
        assert created[0].meta["age_in_days"] == 95

        assert alert_service.scan_old_stock(now=now + timedelta(days=1)) == []
        assert len(alert_service.scan_old_stock(now=now + timedelta(days=8))) == 1

    def test_recent_outward_not_alerted(self, db_session, make_component, lab_user):
        now = utcnow()
        component = make_component(quantity=50)
        movement_service.apply_movement(component.id, "outward", 1, lab_user, "Build", "Rover")
        component.created_at = now - timedelta(days=200)
        db_session.commit()

        assert alert_service.scan_old_stock(now=now) == []

    def test_young_component_not_alerted(self, db_session, make_component):
        make_component()
        assert alert_service.scan_old_stock() == []


# =============================================================================
# MOVEMENT EVENTS / CHECK ALERTS
# =============================================================================


class TestMovementTriggeredAlerts:

    def test_outward_into_low_stock_alerts(self, db_session, make_component, lab_user):
        component = make_component(quantity=15, critical_low_threshold=10)

        movement_service.apply_movement(component.id, "outward", 10, lab_user, "Build", "Rover")
        movement_service.apply_movement(component.id, "outward", 1, lab_user, "Build", "Rover")

        assert len(_alerts(db_session, "low_stock")) == 1
        assert len(_alerts(db_session, "stock_movement")) == 2

    def test_bulk_outward_alerts(self, db_session, make_component, admin_user):
        component = make_component(quantity=15, critical_low_threshold=10)
        movement_service.bulk_apply_movements(
            [{"component_id": component.id, "quantity": -10}],
            reason="Kit", project="Workshop", actor=admin_user,
        )
        assert len(_alerts(db_session, "low_stock")) == 1

    def test_inward_above_threshold_no_low_alert(self, db_session, make_component, lab_user):
        component = make_component(quantity=15, critical_low_threshold=10)
        movement_service.apply_movement(component.id, "inward", 5, lab_user, "Restock", "Stores")
        assert _alerts(db_session, "low_stock") == []


class TestCheckAlerts:

    def test_report(self, db_session, make_component):
        now = utcnow()
        make_component(quantity=2, critical_low_threshold=10)
        stale = make_component(quantity=100)
        stale.created_at = now - timedelta(days=100)
        db_session.commit()

        report = alert_service.check_alerts(now=now)
        assert len(report.low_stock) == 1
        assert len(report.old_stock) == 1
        assert report.to_dict()["total"] == 2
