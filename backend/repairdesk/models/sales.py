from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SALES_CHANNELS = ("pos", "online")
PAYMENT_METHODS = ("cash", "card", "transfer", "qr", "other")


class SalesOrder(db.Model):
    """
    Counter (POS) or storefront (online) sale.

    POS orders are written already delivered and paid. Online orders start
    pending/pending and progress through sales_service transitions.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "folio", name="uq_sales_orders_tenant_folio"),
        db.Index("ix_sales_orders_tenant_payment_created", "tenant_id", "payment_status", "created_at"),
        db.CheckConstraint("channel IN ('pos', 'online')", name="ck_sales_orders_channel"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    channel = db.Column(db.String(16), nullable=False)
    folio = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    # Portal buyer, when the checkout was made by a signed-in user
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_reference = db.Column(db.String(128), nullable=True)

    delivery_method = db.Column(db.String(16), nullable=False, default="pickup")
    shipping_address = db.Column(db.JSON, nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    payment_proof_path = db.Column(db.String(512), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship("SalesOrderItem", backref="order", lazy=True, order_by="SalesOrderItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "channel": self.channel,
            "folio": self.folio,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "payment_reference": self.payment_reference,
            "delivery_method": self.delivery_method,
            "shipping_address": self.shipping_address,
            "contact_phone": self.contact_phone,
            "payment_proof_path": self.payment_proof_path,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesOrderItem(db.Model):
    """Sale line with the server-side unit price captured at checkout."""
    __tablename__ = "sales_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_order_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Money received against an order.

    The target is a discriminated union: exactly one of service_order_id /
    sales_order_id is set. Partial and split payments are plain extra rows.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "(service_order_id IS NOT NULL AND sales_order_id IS NULL) OR "
            "(service_order_id IS NULL AND sales_order_id IS NOT NULL)",
            name="ck_payments_single_target",
        ),
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    service_order_id = db.Column(db.Integer, db.ForeignKey("service_orders.id"), nullable=True, index=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    actor = db.relationship("User")

    @property
    def target_kind(self) -> str:
        return "service_order" if self.service_order_id is not None else "sales_order"

    @property
    def target_id(self) -> int:
        return self.service_order_id if self.service_order_id is not None else self.sales_order_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "target_kind": self.target_kind,
            "target_id": self.target_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_by_name": self.actor.full_name if self.actor else None,
            "created_at": to_utc_z(self.created_at),
        }
