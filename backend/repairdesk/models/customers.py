from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Shop customer.

    MULTI-TENANT: scoped by tenant_id. user_id optionally links the row to a
    global identity, which is what grants portal access to this tenant's
    orders for that customer.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_name", "tenant_id", "full_name"),
        db.UniqueConstraint("tenant_id", "user_id", name="uq_customers_tenant_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "full_name": self.full_name,
            "tax_id": self.tax_id,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "has_portal_access": self.user_id is not None,
            "created_at": to_utc_z(self.created_at),
        }


class Asset(db.Model):
    """
    Customer equipment under repair (vehicle, phone, machine).

    details is a free-form blob (brand, model, year, mileage, hours, serial)
    whose meaningful keys depend on the tenant's industry.
    """
    __tablename__ = "customer_assets"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "identifier", name="uq_assets_customer_identifier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Plate, serial number, IMEI
    identifier = db.Column(db.String(128), nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("assets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "identifier": self.identifier,
            "details": self.details or {},
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
