from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


INDUSTRIES = ("automotive", "electronics", "machinery")

USER_ROLES = ("owner", "admin", "technician", "customer")
STAFF_ROLES = ("owner", "admin", "technician")


class Tenant(db.Model):
    """
    Multi-tenant root: every repair shop is a Tenant.

    All catalog, inventory, order, sales, payment and webhook rows carry
    tenant_id. The industry classification is fixed at signup and decides
    which asset detail fields are meaningful; it is not enforced by schema.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    industry = db.Column(db.String(32), nullable=False)

    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    # Free-form shop settings (bank_account, receipt footer, ...)
    settings = db.Column(db.JSON, nullable=False, default=dict)

    # Object path inside the public bucket
    logo_path = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r} industry={self.industry!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "industry": self.industry,
            "timezone": self.timezone,
            "address": self.address,
            "city": self.city,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "website": self.website,
            "settings": self.settings or {},
            "logo_path": self.logo_path,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    Local mirror of an identity-provider profile.

    Staff users belong to one tenant. Portal customers have tenant_id NULL and
    reach tenant data only through Customer.user_id links.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_tenant_role", "tenant_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="technician")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("users", lazy=True))

    @property
    def is_staff(self) -> bool:
        return self.tenant_id is not None and self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
