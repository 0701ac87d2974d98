"""
Notification store tests.

Verifies:
- Visibility by target user / target role, activity and expiry
- Priority-then-recency ordering
- Idempotent read tracking
- Soft delete authorization
- Metadata variants and purge
"""

from datetime import timedelta

import pytest

from compstock.models import Notification
from compstock.services import notification_service
from compstock.services.notification_service import LowStockMetadata
from compstock.services.permission_service import PermissionDeniedError
from compstock.time_utils import utcnow
from compstock.validation import NotFoundError, ValidationError


def _create(**overrides):
    now = overrides.pop("now", None)
    data = {
        "title": "Heads up",
        "message": "Something happened",
        "category": "system",
        "target_roles": ["admin"],
    }
    data.update(overrides)
    return notification_service.create_notification(data, now=now)


# =============================================================================
# CREATE
# =============================================================================


class TestCreate:

    def test_defaults(self, db_session):
        now = utcnow()
        notification = notification_service.create_notification(
            {"title": "Hello", "message": "World", "category": "system", "target_roles": ["user"]},
            now=now,
        )
        assert notification.type == "info"
        assert notification.priority == "medium"
        assert notification.is_active is True
        assert notification.reads == []
        assert notification.expires_at == now + timedelta(days=30)

    @pytest.mark.parametrize(
        "override",
        [
            {"type": "panic"},
            {"priority": "urgent"},
            {"category": "gossip"},
            {"target_roles": ["overlord"]},
            {"target_roles": "admin"},
            {"title": "x" * 201},
            {"message": ""},
            {"target_roles": []},
            {"metadata": ["not", "a", "dict"]},
        ],
    )
    def test_invalid(self, db_session, override):
        with pytest.raises(ValidationError):
            _create(**override)

    def test_metadata_variant_checked(self, db_session):
        with pytest.raises(ValidationError):
            _create(category="low_stock", metadata={"component_id": 1})

        notification = _create(
            category="low_stock",
            metadata=LowStockMetadata(
                component_id=1,
                component_name="Op-amp",
                component_part_number="LM358",
                new_quantity=2,
                threshold=5,
            ),
        )
        assert notification.to_dict()["metadata"]["component_part_number"] == "LM358"

    def test_free_form_metadata_for_system(self, db_session):
        notification = _create(metadata={"anything": [1, 2, 3]})
        assert notification.meta == {"anything": [1, 2, 3]}


# =============================================================================
# VISIBILITY / LISTING
# =============================================================================


class TestVisibility:

    def test_targeting(self, db_session, admin_user, researcher, engineer):
        _create(title="For admins", target_roles=["admin"])
        _create(title="For the researcher", target_roles=[], target_users=[researcher.id])

        assert [n["title"] for n in notification_service.list_for_user(admin_user)["items"]] == ["For admins"]
        assert [n["title"] for n in notification_service.list_for_user(researcher)["items"]] == ["For the researcher"]
        assert notification_service.list_for_user(engineer)["items"] == []

    def test_expired_and_inactive_hidden(self, db_session, admin_user):
        expired = _create(title="Expired")
        deleted = _create(title="Deleted")
        _create(title="Live")

        expired.expires_at = utcnow() - timedelta(minutes=1)
        deleted.is_active = False
        db_session.commit()

        titles = [n["title"] for n in notification_service.list_for_user(admin_user)["items"]]
        assert titles == ["Live"]

    def test_priority_then_recency(self, db_session, admin_user):
        now = utcnow()
        _create(title="old high", priority="high", now=now - timedelta(hours=3))
        _create(title="new low", priority="low", now=now - timedelta(minutes=1))
        _create(title="new high", priority="high", now=now - timedelta(hours=1))
        _create(title="medium", priority="medium", now=now - timedelta(hours=2))

        titles = [n["title"] for n in notification_service.list_for_user(admin_user)["items"]]
        assert titles == ["new high", "old high", "medium", "new low"]

    def test_filters_and_unread(self, db_session, admin_user):
        first = _create(title="A", type="warning")
        _create(title="B", type="info")
        notification_service.mark_read(first.id, admin_user)

        result = notification_service.list_for_user(admin_user, unread_only=True)
        assert [n["title"] for n in result["items"]] == ["B"]
        assert result["unread_count"] == 1

        result = notification_service.list_for_user(admin_user, type="warning")
        assert [n["title"] for n in result["items"]] == ["A"]
        assert result["items"][0]["is_read_by_user"] is True

    def test_bad_filter(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            notification_service.list_for_user(admin_user, priority="critical")


# =============================================================================
# READS
# =============================================================================


class TestReads:

    def test_mark_read_idempotent(self, db_session, admin_user):
        notification = _create()
        notification_service.mark_read(notification.id, admin_user)
        notification_service.mark_read(notification.id, admin_user)

        refreshed = db_session.get(Notification, notification.id)
        assert len(refreshed.reads) == 1
        assert refreshed.is_read_by(admin_user.id)

    def test_mark_read_invisible_not_found(self, db_session, researcher):
        notification = _create(target_roles=["admin"])
        with pytest.raises(NotFoundError):
            notification_service.mark_read(notification.id, researcher)

    def test_mark_all_read_and_unread_count(self, db_session, admin_user):
        for _ in range(3):
            _create()
        assert notification_service.unread_count(admin_user) == 3
        assert notification_service.mark_all_read(admin_user) == 3
        assert notification_service.unread_count(admin_user) == 0
        assert notification_service.mark_all_read(admin_user) == 0


# =============================================================================
# SOFT DELETE / PURGE / SETTINGS
# =============================================================================


class TestSoftDelete:

    def test_targeted_user_can_delete(self, db_session, lab_user):
        notification = _create(target_roles=["user"])
        notification_service.soft_delete(notification.id, lab_user)
        assert db_session.get(Notification, notification.id).is_active is False

    def test_untargeted_user_denied(self, db_session, researcher):
        notification = _create(target_roles=["admin"])
        with pytest.raises(PermissionDeniedError):
            notification_service.soft_delete(notification.id, researcher)

    def test_admin_can_delete_anything(self, db_session, admin_user, researcher):
        notification = _create(target_roles=[], target_users=[researcher.id])
        notification_service.soft_delete(notification.id, admin_user)

    def test_missing_not_found(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            notification_service.soft_delete(12345, admin_user)


class TestPurge:

    def test_purge_respects_grace(self, db_session, admin_user):
        now = utcnow()
        long_gone = _create(title="long gone")
        recently = _create(title="recently expired")
        _create(title="live")
        notification_service.mark_read(long_gone.id, admin_user)

        long_gone.expires_at = now - timedelta(days=31)
        recently.expires_at = now - timedelta(days=2)
        db_session.commit()

        assert notification_service.purge_expired(grace_days=30, now=now) == 1
        titles = {n.title for n in db_session.query(Notification).all()}
        assert titles == {"recently expired", "live"}


class TestSettings:

    def test_role_defaults(self, db_session, admin_user, lab_user):
        assert notification_service.get_settings(admin_user)["categories"] == {
            "low_stock": True,
            "old_stock": True,
            "stock_movement": True,
        }
        assert notification_service.get_settings(lab_user)["categories"] == {
            "low_stock": True,
            "old_stock": False,
            "stock_movement": False,
        }
