# Overview: Flask API routes for service orders; parses input and returns JSON responses.

"""
Service order routes.

MULTI-TENANT: all lookups go through g.tenant_id. Orders of other tenants
answer exactly like missing orders (404).
"""
from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..errors import ValidationError
from ..services import order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_tenant
@action_boundary
def list_orders():
    """
    Query params: status, asset_id, customer_id, assigned_to, limit
    """
    orders = order_service.list_orders(
        g.tenant_id,
        status=request.args.get("status"),
        asset_id=request.args.get("asset_id", type=int),
        customer_id=request.args.get("customer_id", type=int),
        assigned_to=request.args.get("assigned_to", type=int),
        limit=request.args.get("limit", type=int),
    )
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@orders_bp.post("")
@require_auth
@require_tenant
@action_boundary
def create_order():
    payload = request.get_json(silent=True) or {}
    order = order_service.create_order(
        g.tenant_id,
        customer_id=payload.get("customer_id"),
        asset_id=payload.get("asset_id"),
        description=payload.get("description"),
        priority=payload.get("priority") or "normal",
        notes=payload.get("notes"),
        assigned_to=payload.get("assigned_to"),
        actor_id=g.current_user.id,
    )
    return {"order": order.to_dict()}, 201


@orders_bp.get("/<int:order_id>")
@require_auth
@require_tenant
@action_boundary
def get_order(order_id: int):
    return {"order": order_service.order_detail(g.tenant_id, order_id)}


@orders_bp.patch("/<int:order_id>")
@require_auth
@require_tenant
@action_boundary
def update_order(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = order_service.update_order(g.tenant_id, order_id, payload)
    return {"order": order.to_dict()}


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_order(order_id: int):
    order_service.delete_order(g.tenant_id, order_id, actor_id=g.current_user.id)
    return {}


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_tenant
@action_boundary
def update_status(order_id: int):
    payload = request.get_json(silent=True) or {}
    if not payload.get("status"):
        raise ValidationError("status is required")
    order = order_service.update_status(
        g.tenant_id, order_id, payload["status"], actor_id=g.current_user.id, note=payload.get("note")
    )
    return {"order": order.to_dict()}


@orders_bp.post("/<int:order_id>/assign")
@require_auth
@require_tenant
@action_boundary
def assign(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = order_service.assign_technician(g.tenant_id, order_id, payload.get("technician_id"))
    return {"order": order.to_dict()}


@orders_bp.get("/<int:order_id>/items")
@require_auth
@require_tenant
@action_boundary
def list_items(order_id: int):
    items = order_service.list_items(g.tenant_id, order_id)
    return {"items": [i.to_dict() for i in items], "totals": order_service.order_totals(g.tenant_id, order_id)}


@orders_bp.post("/<int:order_id>/items")
@require_auth
@require_tenant
@action_boundary
def add_item(order_id: int):
    """
    Body: {product_id, quantity, unit_price_cents?}
    """
    payload = request.get_json(silent=True) or {}
    item = order_service.add_item(
        g.tenant_id,
        order_id,
        product_id=payload.get("product_id"),
        quantity=payload.get("quantity"),
        unit_price_cents=payload.get("unit_price_cents"),
        actor_id=g.current_user.id,
    )
    return {"item": item.to_dict()}, 201


@orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_tenant
@action_boundary
def remove_item(order_id: int, item_id: int):
    order_service.remove_item(g.tenant_id, order_id, item_id, actor_id=g.current_user.id)
    return {}


@orders_bp.get("/<int:order_id>/payments")
@require_auth
@require_tenant
@action_boundary
def list_payments(order_id: int):
    payments = order_service.list_order_payments(g.tenant_id, order_id)
    return {"items": [p.to_dict() for p in payments], "totals": order_service.order_totals(g.tenant_id, order_id)}


@orders_bp.post("/<int:order_id>/payments")
@require_auth
@require_tenant
@action_boundary
def register_payment(order_id: int):
    """
    Body: {amount_cents, method: cash|card|transfer|other, notes?}
    """
    payload = request.get_json(silent=True) or {}
    payment = order_service.register_payment(
        g.tenant_id,
        order_id,
        amount_cents=payload.get("amount_cents"),
        method=payload.get("method"),
        notes=payload.get("notes"),
        actor_id=g.current_user.id,
    )
    return {"payment": payment.to_dict()}, 201


@orders_bp.get("/<int:order_id>/events")
@require_auth
@require_tenant
@action_boundary
def list_events(order_id: int):
    return {"items": order_service.list_events(g.tenant_id, order_id)}


@orders_bp.post("/<int:order_id>/comments")
@require_auth
@require_tenant
@action_boundary
def add_comment(order_id: int):
    payload = request.get_json(silent=True) or {}
    event = order_service.add_comment(g.tenant_id, order_id, payload.get("content"), actor_id=g.current_user.id)
    return {"event": event.to_dict()}, 201


@orders_bp.post("/<int:order_id>/evidence")
@require_auth
@require_tenant
@action_boundary
def upload_evidence(order_id: int):
    """Multipart upload, field name 'file'."""
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required")
    event = order_service.upload_evidence(
        g.tenant_id,
        order_id,
        filename=upload.filename,
        data=upload.read(),
        content_type=upload.mimetype,
        actor_id=g.current_user.id,
    )
    return {"event": event.to_dict()}, 201
