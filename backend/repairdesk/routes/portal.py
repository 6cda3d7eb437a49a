# Overview: Flask API routes for portal customers, the public storefront and order tracking.

"""
Routes that are not staff-scoped.

- /api/portal/*: signed-in portal customers (role 'customer', no tenant)
- /api/store/*: public storefront; checkout links the buyer when a valid
  portal token is presented
- /api/track/<order_id>: public order tracking with limited fields
"""
from flask import Blueprint, g, request

from ..decorators import action_boundary, bearer_token, require_auth, require_portal_user
from ..identity import resolve_actor_token
from ..services import catalog_service, portal_service, sales_service

portal_bp = Blueprint("portal", __name__, url_prefix="/api")


@portal_bp.get("/portal/customers")
@require_auth
@require_portal_user
@action_boundary
def portal_customers():
    rows = portal_service.list_portal_customers(g.current_user.id)
    return {"items": [c.to_dict() for c in rows]}


@portal_bp.get("/portal/orders")
@require_auth
@require_portal_user
@action_boundary
def portal_orders():
    return {"items": portal_service.list_portal_orders(g.current_user.id)}


@portal_bp.get("/portal/orders/<int:order_id>")
@require_auth
@require_portal_user
@action_boundary
def portal_order(order_id: int):
    return {"order": portal_service.get_portal_order(g.current_user.id, order_id)}


@portal_bp.get("/portal/assets")
@require_auth
@require_portal_user
@action_boundary
def portal_assets():
    return {"items": [a.to_dict() for a in portal_service.list_portal_assets(g.current_user.id)]}


@portal_bp.get("/portal/purchases")
@require_auth
@require_portal_user
@action_boundary
def portal_purchases():
    rows = sales_service.list_user_purchases(g.current_user.id)
    return {"items": [o.to_dict() for o in rows]}


@portal_bp.get("/portal/purchases/<int:order_id>")
@require_auth
@require_portal_user
@action_boundary
def portal_purchase(order_id: int):
    order = sales_service.get_user_purchase(g.current_user.id, order_id)
    return {"order": order.to_dict(include_items=True)}


@portal_bp.post("/portal/purchases/<int:order_id>/received")
@require_auth
@require_portal_user
@action_boundary
def confirm_received(order_id: int):
    order = sales_service.confirm_order_received(g.current_user.id, order_id)
    return {"order": order.to_dict()}


@portal_bp.get("/store/<int:tenant_id>/products")
@action_boundary
def store_products(tenant_id: int):
    return catalog_service.list_public_products(
        tenant_id,
        term=request.args.get("q"),
        category=request.args.get("category"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@portal_bp.post("/store/checkout")
@action_boundary
def store_checkout():
    """
    Body: {items: [{product_id, quantity}], customer: {full_name, email, phone,
           address, city, state, zip, tax_id}, payment_method?, delivery_method?}
    """
    payload = request.get_json(silent=True) or {}
    buyer = resolve_actor_token(bearer_token())
    order = sales_service.create_store_order(
        items=payload.get("items"),
        customer=payload.get("customer") or {},
        payment_method=payload.get("payment_method"),
        delivery_method=payload.get("delivery_method") or "pickup",
        user_id=buyer.id if buyer is not None and buyer.role == "customer" else None,
    )
    return {"order": order.to_dict(include_items=True)}, 201


@portal_bp.get("/track/<int:order_id>")
@action_boundary
def track(order_id: int):
    return {"order": portal_service.get_tracking_info(order_id)}
