from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from compstock.time_utils import to_utc_z, utcnow
from .enums import ComponentCategory


class Component(db.Model):
    """
    Component master data and ledger head.

    LEDGER DESIGN:
    - quantity is the ledger head; it only changes through StockMovement rows
      appended by movement_service, never through a direct patch.
    - quantity == initial quantity + SUM(inward) - SUM(outward), and is never negative.
    - movements are owned by the component (cascade delete-orphan) and append-only.

    PART NUMBER:
    Unique among *active* components only. A soft-deleted component frees its
    part number, so uniqueness is enforced in component_service rather than by
    a table constraint.
    """
    __tablename__ = "components"
    __table_args__ = (
        db.Index("ix_components_category_location", "category", "location"),
        db.Index("ix_components_part_number_active", "part_number", "is_active"),
        db.CheckConstraint("quantity >= 0", name="ck_components_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    part_number = db.Column(db.String(100), nullable=False, index=True)
    manufacturer = db.Column(db.String(100), nullable=False)
    category = db.Column(db.String(32), nullable=False, default=ComponentCategory.OTHER.value, index=True)
    description = db.Column(db.String(1000), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0, index=True)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    critical_low_threshold = db.Column(db.Integer, nullable=False, default=0)
    location = db.Column(db.String(50), nullable=False, index=True)
    datasheet_link = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    movements = db.relationship(
        "StockMovement",
        back_populates="component",
        cascade="all, delete-orphan",
        order_by="StockMovement.id",
        lazy="select",
    )
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    last_updated_by = db.relationship("User", foreign_keys=[last_updated_by_user_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Component id={self.id} part_number={self.part_number!r} qty={self.quantity}>"

    @property
    def total_value(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.unit_price or 0)

    @property
    def last_movement_at(self):
        if not self.movements:
            return None
        return max(m.created_at for m in self.movements)

    def to_dict(self, *, include_movements: bool = False) -> dict:
        # Derived values live in component_service; imported lazily to avoid a cycle.
        from ..services.component_service import get_stock_status, is_old_stock, age_in_days

        data = {
            "id": self.id,
            "name": self.name,
            "part_number": self.part_number,
            "manufacturer": self.manufacturer,
            "category": self.category,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price) if self.unit_price is not None else None,
            "critical_low_threshold": self.critical_low_threshold,
            "location": self.location,
            "datasheet_link": self.datasheet_link,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "last_updated_by_user_id": self.last_updated_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "stock_status": get_stock_status(self).value,
            "total_value": float(self.total_value),
            "age_in_days": age_in_days(self),
            "is_old_stock": is_old_stock(self),
            "last_movement_at": to_utc_z(self.last_movement_at),
        }
        if include_movements:
            data["movements"] = [m.to_dict() for m in self.movements]
        return data


class StockMovement(db.Model):
    """
    Immutable inward/outward record. Never updated or deleted by application code.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_component_created", "component_id", "created_at"),
        db.Index("ix_stock_movements_type_created", "type", "created_at"),
        db.CheckConstraint("quantity >= 1", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    component_id = db.Column(db.Integer, db.ForeignKey("components.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(100), nullable=False)

    reason = db.Column(db.String(200), nullable=False)
    project = db.Column(db.String(100), nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    component = db.relationship("Component", back_populates="movements")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} {self.type} qty={self.quantity} component_id={self.component_id}>"

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == "inward" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "component_id": self.component_id,
            "type": self.type,
            "quantity": self.quantity,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "reason": self.reason,
            "project": self.project,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
