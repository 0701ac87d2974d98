from __future__ import annotations

from ..extensions import db
from compstock.time_utils import to_utc_z, utcnow
from .enums import NotificationPriority, NotificationType


class Notification(db.Model):
    """
    In-app notification (alert) with user/role targeting.

    VISIBILITY:
    A user sees a notification when it is active, not expired, and either the
    user id is in target_users or the user's role is in target_roles.

    LIFECYCLE:
    - Created by the alert engine or by an admin.
    - Never hard-deleted by normal flow; soft-deleted via is_active=False.
    - Expiry is passive (filtered at read time). maintenance_service may purge
      rows long past expiry.

    The metadata column is a snapshot of the source entities at creation time
    so the notification can be displayed without re-joining them.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_category_component", "category", "related_component_id"),
        db.Index("ix_notifications_active_expires", "is_active", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, default=NotificationType.INFO.value)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False)
    priority = db.Column(db.String(16), nullable=False, default=NotificationPriority.MEDIUM.value, index=True)
    category = db.Column(db.String(32), nullable=False, index=True)

    # Non-owning back-references (display enrichment only)
    related_component_id = db.Column(db.Integer, db.ForeignKey("components.id"), nullable=True)
    related_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    target_users = db.Column(db.JSON, nullable=False, default=list)
    target_roles = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # "metadata" is reserved on declarative models, so the attribute is named meta.
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    reads = db.relationship(
        "NotificationRead",
        back_populates="notification",
        cascade="all, delete-orphan",
        order_by="NotificationRead.id",
    )
    related_component = db.relationship("Component")
    related_user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Notification id={self.id} category={self.category} priority={self.priority}>"

    def is_read_by(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.reads)

    def to_dict(self, *, for_user_id: int | None = None) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "category": self.category,
            "related_component_id": self.related_component_id,
            "related_component": (
                {"id": self.related_component.id, "name": self.related_component.name,
                 "part_number": self.related_component.part_number}
                if self.related_component else None
            ),
            "related_user_id": self.related_user_id,
            "related_user": (
                {"id": self.related_user.id, "name": self.related_user.name,
                 "username": self.related_user.username}
                if self.related_user else None
            ),
            "target_users": list(self.target_users or []),
            "target_roles": list(self.target_roles or []),
            "read_by": [r.to_dict() for r in self.reads],
            "is_active": self.is_active,
            "expires_at": to_utc_z(self.expires_at),
            "metadata": dict(self.meta or {}),
            "created_at": to_utc_z(self.created_at),
        }
        if for_user_id is not None:
            data["is_read_by_user"] = self.is_read_by(for_user_id)
        return data


class NotificationRead(db.Model):
    """Append-only (user, read_at) record. One row per user per notification."""
    __tablename__ = "notification_reads"
    __table_args__ = (
        db.UniqueConstraint("notification_id", "user_id", name="uq_notification_reads_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey("notifications.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    notification = db.relationship("Notification", back_populates="reads")

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "read_at": to_utc_z(self.read_at)}
