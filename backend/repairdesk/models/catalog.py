from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_TYPES = ("product", "service")


class Category(db.Model):
    """Product grouping; names are unique within a tenant."""
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_categories_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog entry: either a stock-tracked product or a service.

    quantity is a cache of SUM(inventory_movements.quantity_delta). It is only
    ever changed by inventory_service in the same transaction as the ledger
    row that explains it. Services never carry stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_public", "tenant_id", "is_public"),
        db.CheckConstraint("type IN ('product', 'service')", name="ck_products_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    type = db.Column(db.String(16), nullable=False, default="product")

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    public_price_cents = db.Column(db.Integer, nullable=True)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    is_public = db.Column(db.Boolean, nullable=False, default=False)
    images = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def tracks_stock(self) -> bool:
        return self.type == "product"

    @property
    def storefront_price_cents(self) -> int:
        if self.public_price_cents:
            return self.public_price_cents
        return self.sale_price_cents

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} type={self.type} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "type": self.type,
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "public_price_cents": self.public_price_cents,
            "min_stock": self.min_stock,
            "quantity": self.quantity,
            "is_public": self.is_public,
            "images": self.images or [],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "category": self.category.name if self.category else None,
            "price_cents": self.storefront_price_cents,
            "in_stock": (not self.tracks_stock) or self.quantity > 0,
            "images": self.images or [],
        }
