# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/repairdesk/routes/catalog.py
"""
Category and product routes.

MULTI-TENANT: every operation is scoped to g.tenant_id (set by @require_auth).
Deleting a product is limited to owners and admins.
"""
from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..models import Product
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "sku", "type", "category_id",
        "cost_price_cents", "sale_price_cents", "public_price_cents",
        "min_stock", "is_public", "images",
    },
    required_on_create={"name", "sale_price_cents"},
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/categories")
@require_auth
@require_tenant
@action_boundary
def list_categories():
    return {"items": [c.to_dict() for c in catalog_service.list_categories(g.tenant_id)]}


@catalog_bp.post("/categories")
@require_auth
@require_tenant
@action_boundary
def create_category():
    payload = request.get_json(silent=True) or {}
    category = catalog_service.create_category(
        g.tenant_id, name=payload.get("name"), description=payload.get("description")
    )
    return {"category": category.to_dict()}, 201


@catalog_bp.patch("/categories/<int:category_id>")
@require_auth
@require_tenant
@action_boundary
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    category = catalog_service.update_category(g.tenant_id, category_id, payload)
    return {"category": category.to_dict()}


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_category(category_id: int):
    catalog_service.delete_category(g.tenant_id, category_id)
    return {}


@catalog_bp.get("/products")
@require_auth
@require_tenant
@action_boundary
def list_products():
    """
    Query params:
    - q: search term (name, sku, description)
    - category_id, type: filters
    - page / per_page: optional pagination (default 20, max 100)
    """
    return catalog_service.list_products(
        g.tenant_id,
        term=request.args.get("q"),
        category_id=request.args.get("category_id", type=int),
        product_type=request.args.get("type"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@catalog_bp.get("/products/low-stock")
@require_auth
@require_tenant
@action_boundary
def low_stock():
    return {"items": [p.to_dict() for p in catalog_service.low_stock_products(g.tenant_id)]}


@catalog_bp.get("/products/<int:product_id>")
@require_auth
@require_tenant
@action_boundary
def get_product(product_id: int):
    return {"product": catalog_service.get_product(g.tenant_id, product_id).to_dict()}


@catalog_bp.post("/products")
@require_auth
@require_tenant
@action_boundary
def create_product():
    """Create a product; optional initial_stock is written to the ledger."""
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    product = catalog_service.create_product(
        g.tenant_id, patch=patch, initial_stock=initial_stock, actor_id=g.current_user.id
    )
    return {"product": product.to_dict()}, 201


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_tenant
@action_boundary
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    product = catalog_service.update_product(g.tenant_id, product_id, patch)
    return {"product": product.to_dict()}


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_product(product_id: int):
    catalog_service.delete_product(g.tenant_id, product_id)
    return {}
