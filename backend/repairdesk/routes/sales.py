# Overview: Flask API routes for POS and sales orders; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_tenant
from ..errors import ValidationError
from ..services import sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/pos")
@require_auth
@require_tenant
@action_boundary
def pos_checkout():
    """
    Counter checkout.

    Body: {items: [{product_id, quantity}], payment_method, customer_name?,
           customer_id?, amount_paid_cents?, reference?}
    Any price sent with the items is ignored.
    """
    payload = request.get_json(silent=True) or {}
    order = sales_service.create_pos_order(
        g.tenant_id,
        items=payload.get("items"),
        payment_method=payload.get("payment_method"),
        actor_id=g.current_user.id,
        customer_name=payload.get("customer_name"),
        customer_id=payload.get("customer_id"),
        amount_paid_cents=payload.get("amount_paid_cents"),
        reference=payload.get("reference"),
    )
    return {"order": order.to_dict(include_items=True)}, 201


@sales_bp.get("")
@require_auth
@require_tenant
@action_boundary
def list_sales_orders():
    orders = sales_service.list_sales_orders(
        g.tenant_id,
        channel=request.args.get("channel"),
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        limit=request.args.get("limit", type=int),
    )
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@sales_bp.get("/<int:order_id>")
@require_auth
@require_tenant
@action_boundary
def get_sales_order(order_id: int):
    order = sales_service.get_sales_order(g.tenant_id, order_id)
    return {"order": order.to_dict(include_items=True)}


@sales_bp.post("/<int:order_id>/status")
@require_auth
@require_tenant
@action_boundary
def update_status(order_id: int):
    payload = request.get_json(silent=True) or {}
    if not payload.get("status"):
        raise ValidationError("status is required")
    order = sales_service.update_sales_order_status(
        g.tenant_id, order_id, payload["status"], actor_id=g.current_user.id
    )
    return {"order": order.to_dict()}


@sales_bp.post("/<int:order_id>/paid")
@require_auth
@require_tenant
@action_boundary
def mark_paid(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = sales_service.mark_sales_order_paid(
        g.tenant_id,
        order_id,
        method=payload.get("method"),
        reference=payload.get("reference"),
        actor_id=g.current_user.id,
    )
    return {"order": order.to_dict()}
