# Overview: Flask API routes for customers and their assets; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..models import Asset, Customer
from ..services import customer_service, order_service
from ..validation import ModelValidationPolicy, validate_payload

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "tax_id", "email", "phone", "address"},
    required_on_create={"full_name"},
)
ASSET_POLICY = ModelValidationPolicy(
    writable_fields={"identifier", "details", "notes"},
    required_on_create={"identifier", "details"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_tenant
@action_boundary
def list_customers():
    rows = customer_service.list_customers(g.tenant_id, term=request.args.get("q"))
    return {"items": [c.to_dict() for c in rows], "count": len(rows)}


@customers_bp.post("")
@require_auth
@require_tenant
@action_boundary
def create_customer():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    customer = customer_service.create_customer(g.tenant_id, patch)
    return {"customer": customer.to_dict()}, 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_tenant
@action_boundary
def get_customer(customer_id: int):
    customer = customer_service.get_customer(g.tenant_id, customer_id)
    data = customer.to_dict()
    data["assets"] = [a.to_dict() for a in customer_service.list_assets(g.tenant_id, customer_id)]
    data["orders"] = [o.to_dict() for o in order_service.list_orders(g.tenant_id, customer_id=customer_id)]
    return {"customer": data}


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_tenant
@action_boundary
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    customer = customer_service.update_customer(g.tenant_id, customer_id, patch)
    return {"customer": customer.to_dict()}


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_customer(customer_id: int):
    customer_service.delete_customer(g.tenant_id, customer_id)
    return {}


@customers_bp.post("/<int:customer_id>/portal")
@require_auth
@require_tenant
@action_boundary
def enable_portal(customer_id: int):
    """Body: {email} of an existing portal identity."""
    payload = request.get_json(silent=True) or {}
    customer = customer_service.link_portal_user(g.tenant_id, customer_id, email=payload.get("email"))
    return {"customer": customer.to_dict()}


@customers_bp.delete("/<int:customer_id>/portal")
@require_auth
@require_tenant
@action_boundary
def disable_portal(customer_id: int):
    customer = customer_service.unlink_portal_user(g.tenant_id, customer_id)
    return {"customer": customer.to_dict()}


@customers_bp.get("/<int:customer_id>/assets")
@require_auth
@require_tenant
@action_boundary
def list_assets(customer_id: int):
    return {"items": [a.to_dict() for a in customer_service.list_assets(g.tenant_id, customer_id)]}


@customers_bp.post("/<int:customer_id>/assets")
@require_auth
@require_tenant
@action_boundary
def create_asset(customer_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Asset, payload=payload, policy=ASSET_POLICY, partial=False)
    asset = customer_service.create_asset(g.tenant_id, customer_id, patch)
    return {"asset": asset.to_dict()}, 201


@customers_bp.patch("/assets/<int:asset_id>")
@require_auth
@require_tenant
@action_boundary
def update_asset(asset_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Asset, payload=payload, policy=ASSET_POLICY, partial=True)
    asset = customer_service.update_asset(g.tenant_id, asset_id, patch)
    return {"asset": asset.to_dict()}


@customers_bp.delete("/assets/<int:asset_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_asset(asset_id: int):
    customer_service.delete_asset(g.tenant_id, asset_id)
    return {}
