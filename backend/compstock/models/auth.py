from __future__ import annotations

from ..extensions import db
from compstock.time_utils import to_utc_z, utcnow
from .enums import Role


class User(db.Model):
    """
    User accounts for attribution and authorization.

    Authentication (passwords, tokens) belongs to the upstream session layer;
    this table only carries identity, role and the optional explicit
    capability override list.

    WHY: Every movement must be attributable to a user.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(50), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=Role.USER.value, index=True)

    # Explicit capability override. Empty list means "derive from role".
    permissions = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        from ..services.permission_service import resolve_permissions

        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "effective_permissions": sorted(c.value for c in resolve_permissions(self)),
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
