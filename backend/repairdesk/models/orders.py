from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRIORITIES = ("low", "normal", "high", "urgent")
EVENT_TYPES = ("comment", "evidence", "status_change")


class ServiceOrder(db.Model):
    """
    Repair order for one customer asset.

    status is one of ServiceOrderStatus and only changes through
    order_service.update_status, which enforces the transition table.
    """
    __tablename__ = "service_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "folio", name="uq_service_orders_tenant_folio"),
        db.Index("ix_service_orders_tenant_status", "tenant_id", "status"),
        db.Index("ix_service_orders_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("customer_assets.id"), nullable=False, index=True)

    # Human-readable folio (e.g., "OS-00012")
    folio = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="reception")
    priority = db.Column(db.String(16), nullable=False, default="normal")
    description = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer")
    asset = db.relationship("Asset")
    tenant = db.relationship("Tenant")
    technician = db.relationship("User", foreign_keys=[assigned_to])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.full_name if self.customer else None,
            "asset_id": self.asset_id,
            "asset_identifier": self.asset.identifier if self.asset else None,
            "folio": self.folio,
            "status": self.status,
            "priority": self.priority,
            "description": self.description,
            "notes": self.notes,
            "assigned_to": self.assigned_to,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
        }


class ServiceOrderItem(db.Model):
    """
    Part or labor line on a service order.

    unit_price_cents is a snapshot taken when the line is attached and is
    never re-derived from the product afterwards.
    """
    __tablename__ = "service_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_service_order_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_order_id": self.service_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "product_type": self.product.type if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class ServiceOrderEvent(db.Model):
    """Append-only timeline entry: comment, evidence upload or status change."""
    __tablename__ = "service_order_events"
    __table_args__ = (
        db.Index("ix_order_events_order_created", "service_order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False)
    content = db.Column(db.Text, nullable=True)
    # evidence: {file_path, file_name, file_size, mime_type}; status_change: {from, to}
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_order_id": self.service_order_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor.full_name if self.actor else None,
            "actor_role": self.actor.role if self.actor else None,
            "type": self.type,
            "content": self.content,
            "metadata": self.metadata_json or {},
            "created_at": to_utc_z(self.created_at),
        }
