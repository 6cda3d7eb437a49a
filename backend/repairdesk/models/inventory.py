from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_TYPES = ("in", "out", "adjustment")
REFERENCE_KINDS = ("service_order", "sales_order")


class InventoryMovement(db.Model):
    """
    Append-only stock ledger row.

    quantity is the value as entered (positive for in/out, signed for
    adjustment); quantity_delta is the signed effect on stock, so on-hand is
    SUM(quantity_delta). Rows are never updated or deleted; corrections are
    new rows.

    reference_kind/reference_id name the originating order and item_id the
    exact order line. They are written once, at insert time. The unique
    constraint caps each order line at one 'out' and one compensating 'in'.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_tenant_product_created", "tenant_id", "product_id", "created_at"),
        db.Index("ix_movements_reference", "reference_kind", "reference_id"),
        db.UniqueConstraint("reference_kind", "item_id", "type", name="uq_movements_reference_item_type"),
        db.CheckConstraint("type IN ('in', 'out', 'adjustment')", name="ck_movements_type"),
        db.CheckConstraint("quantity_delta <> 0", name="ck_movements_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)

    reference_kind = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    # Order line id; plain integer because the line may be deleted later
    item_id = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "reference_kind": self.reference_kind,
            "reference_id": self.reference_id,
            "item_id": self.item_id,
            "created_by": self.created_by,
            "created_by_name": self.actor.full_name if self.actor else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
