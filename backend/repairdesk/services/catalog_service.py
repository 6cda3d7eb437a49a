# backend/repairdesk/services/catalog_service.py
"""
Catalog Service with Multi-Tenant Support

MULTI-TENANT: All product and category operations are tenant-scoped.
- list/get/update/delete resolve rows through tenant_service.get_owned
- categories are unique by name within a tenant
- public listings only ever expose is_public products of one tenant

Stock never moves here directly: create_product hands initial stock to the
inventory ledger as an 'adjustment' movement.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Category, InventoryMovement, Product, SalesOrderItem, ServiceOrderItem
from ..validation import coerce_int, enforce_rules_product, optional_text
from .concurrency import run_in_transaction
from .inventory_service import _record_movement_inner
from .tenant_service import get_owned, get_tenant

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "type", "category_id",
    "cost_price_cents", "sale_price_cents", "public_price_cents",
    "min_stock", "is_public", "images",
}


def _paginate(base_query, page: int | None, per_page: int | None, serialize) -> dict:
    if page is None:
        rows = base_query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _search_filter(term: str | None):
    term = (term or "").strip()
    if not term:
        return None
    like = f"%{term}%"
    return or_(Product.name.ilike(like), Product.sku.ilike(like), Product.description.ilike(like))


# --- Categories ---------------------------------------------------------------

def list_categories(tenant_id: int) -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.tenant_id == tenant_id)
        .order_by(Category.name.asc())
        .all()
    )


def create_category(tenant_id: int, *, name: str, description: str | None = None) -> Category:
    name = optional_text(name, "name") or ""
    if not name:
        raise ValidationError("name is required")

    def _op():
        exists = db.session.query(Category.id).filter_by(tenant_id=tenant_id, name=name).first()
        if exists:
            raise ConflictError(f"Category {name!r} already exists")
        category = Category(tenant_id=tenant_id, name=name, description=description)
        db.session.add(category)
        db.session.flush()
        return category

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError(f"Category {name!r} already exists")


def update_category(tenant_id: int, category_id: int, patch: dict) -> Category:
    def _op():
        category = get_owned(Category, category_id, tenant_id, "Category")
        if "name" in patch:
            name = optional_text(patch["name"], "name") or ""
            if not name:
                raise ValidationError("name is required")
            clash = (
                db.session.query(Category.id)
                .filter(Category.tenant_id == tenant_id, Category.name == name, Category.id != category.id)
                .first()
            )
            if clash:
                raise ConflictError(f"Category {name!r} already exists")
            category.name = name
        if "description" in patch:
            category.description = patch["description"]
        return category

    return run_in_transaction(_op)


def delete_category(tenant_id: int, category_id: int) -> None:
    """Delete a category; its products become uncategorized."""
    def _op():
        category = get_owned(Category, category_id, tenant_id, "Category")
        db.session.query(Product).filter(Product.category_id == category.id).update(
            {Product.category_id: None}, synchronize_session="fetch"
        )
        db.session.delete(category)

    run_in_transaction(_op)


# --- Products -----------------------------------------------------------------

def list_products(
    tenant_id: int,
    *,
    term: str | None = None,
    category_id: int | None = None,
    product_type: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing with optional search and pagination.

    term matches name, sku or description (case-insensitive).
    """
    q = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    search = _search_filter(term)
    if search is not None:
        q = q.filter(search)
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if product_type is not None:
        q = q.filter(Product.type == product_type)
    q = q.order_by(Product.name.asc(), Product.id.asc())
    return _paginate(q, page, per_page, lambda p: p.to_dict())


def get_product(tenant_id: int, product_id: int) -> Product:
    return get_owned(Product, product_id, tenant_id, "Product")


def _check_category(tenant_id: int, category_id) -> None:
    if category_id is not None:
        get_owned(Category, category_id, tenant_id, "Category")


def _check_sku_free(tenant_id: int, sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product.id).filter(Product.tenant_id == tenant_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError(f"SKU {sku!r} already exists")


def create_product(
    tenant_id: int,
    *,
    patch: dict,
    initial_stock=None,
    actor_id: int | None = None,
) -> Product:
    """
    Create a product or service from a validated patch.

    initial_stock > 0 is recorded as one 'adjustment' movement in the same
    transaction, so the cached quantity and the ledger agree from the start.
    Services can't take initial stock.

    Raises:
        ValidationError: bad prices/type, or stock on a service
        ConflictError: SKU already used in this tenant
    """
    enforce_rules_product(patch)
    if not (patch.get("name") or "").strip():
        raise ValidationError("name is required")

    stock = coerce_int(initial_stock, "initial_stock") if initial_stock not in (None, "") else 0
    if stock < 0:
        raise ValidationError("initial_stock must be >= 0")
    if stock and patch.get("type", "product") == "service":
        raise ValidationError("services do not track stock")

    def _op():
        _check_category(tenant_id, patch.get("category_id"))
        _check_sku_free(tenant_id, patch.get("sku"))

        product = Product(tenant_id=tenant_id, quantity=0)
        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                setattr(product, k, v)
        if product.images is None:
            product.images = []
        db.session.add(product)
        db.session.flush()

        if stock:
            _record_movement_inner(
                tenant_id=tenant_id,
                product=product,
                type="adjustment",
                quantity=stock,
                actor_id=actor_id,
                notes="Initial stock",
            )
        return product

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError("Product conflicts with an existing product")


def _is_referenced(product_id: int) -> bool:
    """True when an order line or a ledger row points at the product."""
    for model in (ServiceOrderItem, SalesOrderItem, InventoryMovement):
        if db.session.query(model.id).filter(model.product_id == product_id).first():
            return True
    return False


def update_product(tenant_id: int, product_id: int, patch: dict) -> Product:
    """
    Apply a validated patch.

    quantity is not writable here; stock only moves through the ledger.
    type can't change once the product has movements or order lines.
    """
    enforce_rules_product(patch)

    def _op():
        product = get_owned(Product, product_id, tenant_id, "Product")

        if "type" in patch and patch["type"] != product.type:
            if _is_referenced(product.id) or product.quantity:
                raise ConflictError("type can't change once the product is on orders or has stock history")

        if "category_id" in patch:
            _check_category(tenant_id, patch["category_id"])
        if "sku" in patch:
            _check_sku_free(tenant_id, patch["sku"], exclude_id=product.id)

        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                setattr(product, k, v)
        return product

    return run_in_transaction(_op)


def delete_product(tenant_id: int, product_id: int) -> None:
    """
    Delete a product that nothing references.

    Products used on order lines or with ledger history are refused; the
    history must stay explainable.
    """
    def _op():
        product = get_owned(Product, product_id, tenant_id, "Product")
        if _is_referenced(product.id):
            raise ConflictError(f"{product.name} is referenced by orders or stock history")
        db.session.delete(product)

    run_in_transaction(_op)


def low_stock_products(tenant_id: int) -> list[Product]:
    """Stock-tracked products at or below their min_stock threshold."""
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.type == "product",
            Product.quantity <= Product.min_stock,
        )
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def list_public_products(
    tenant_id: int,
    *,
    term: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Storefront listing: is_public products only, storefront prices."""
    tenant = get_tenant(tenant_id)
    if not tenant.is_active:
        raise ValidationError("Store is not available")

    q = db.session.query(Product).filter(Product.tenant_id == tenant_id, Product.is_public.is_(True))
    search = _search_filter(term)
    if search is not None:
        q = q.filter(search)
    if category:
        q = q.join(Category, Category.id == Product.category_id).filter(Category.name == category)
    q = q.order_by(Product.name.asc(), Product.id.asc())
    return _paginate(q, page, per_page, lambda p: p.to_public_dict())
