# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

"""
Inventory routes.

Stock only moves by appending movements; there is no endpoint that writes
Product.quantity directly.
"""
from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..services import inventory_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/movements")
@require_auth
@require_tenant
@action_boundary
def record_movement():
    """
    Body: {product_id, type: in|out|adjustment, quantity, notes?}
    """
    payload = request.get_json(silent=True) or {}
    movement = inventory_service.record_movement(
        tenant_id=g.tenant_id,
        product_id=payload.get("product_id"),
        type=payload.get("type"),
        quantity=payload.get("quantity"),
        actor_id=g.current_user.id,
        notes=payload.get("notes"),
    )
    return {
        "movement": movement.to_dict(),
        "quantity": inventory_service.get_cached_quantity(g.tenant_id, movement.product_id),
    }, 201


@inventory_bp.get("/products/<int:product_id>/movements")
@require_auth
@require_tenant
@action_boundary
def list_movements(product_id: int):
    limit = min(request.args.get("limit", default=100, type=int), 500)
    rows = inventory_service.list_movements(g.tenant_id, product_id, limit=limit)
    return {"items": [m.to_dict() for m in rows]}


@inventory_bp.get("/products/<int:product_id>/quantity")
@require_auth
@require_tenant
@action_boundary
def get_quantity(product_id: int):
    cached = inventory_service.get_cached_quantity(g.tenant_id, product_id)
    ledger = inventory_service.get_quantity_on_hand(g.tenant_id, product_id)
    return {"product_id": product_id, "quantity": cached, "ledger_quantity": ledger}


@inventory_bp.post("/reconcile")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def reconcile():
    payload = request.get_json(silent=True) or {}
    drift = inventory_service.reconcile_stock(g.tenant_id, fix=bool(payload.get("fix")))
    return {"drift": drift, "fixed": bool(payload.get("fix")) and bool(drift)}
