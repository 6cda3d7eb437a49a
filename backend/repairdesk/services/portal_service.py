# Overview: Read models for portal customers and public order tracking.

"""
Portal and tracking.

A portal user has no tenant. They see a tenant's service orders only
through Customer rows linked to their identity (Customer.user_id), and may
have such links at several shops at once.

Public tracking needs no identity at all and therefore exposes a fixed,
minimal set of fields.
"""

from __future__ import annotations

from sqlalchemy.orm import joinedload

from ..extensions import db
from ..errors import NotFoundError
from ..models import Asset, Customer, ServiceOrder, ServiceOrderEvent
from ..time_utils import to_utc_z
from . import order_service


def _linked_customer_ids(user_id: int) -> list[int]:
    return [cid for (cid,) in db.session.query(Customer.id).filter(Customer.user_id == user_id).all()]


def list_portal_customers(user_id: int) -> list[Customer]:
    return (
        db.session.query(Customer)
        .options(joinedload(Customer.user))
        .filter(Customer.user_id == user_id)
        .order_by(Customer.id)
        .all()
    )


def list_portal_orders(user_id: int) -> list[dict]:
    customer_ids = _linked_customer_ids(user_id)
    if not customer_ids:
        return []
    orders = (
        db.session.query(ServiceOrder)
        .options(joinedload(ServiceOrder.asset), joinedload(ServiceOrder.tenant))
        .filter(ServiceOrder.customer_id.in_(customer_ids))
        .order_by(ServiceOrder.created_at.desc(), ServiceOrder.id.desc())
        .all()
    )
    out = []
    for order in orders:
        data = order.to_dict()
        data["tenant_name"] = order.tenant.name if order.tenant else None
        data["asset_details"] = order.asset.details if order.asset else {}
        out.append(data)
    return out


def list_portal_assets(user_id: int) -> list[Asset]:
    customer_ids = _linked_customer_ids(user_id)
    if not customer_ids:
        return []
    return (
        db.session.query(Asset)
        .filter(Asset.customer_id.in_(customer_ids))
        .order_by(Asset.created_at.desc(), Asset.id.desc())
        .all()
    )


def get_portal_order(user_id: int, order_id: int) -> dict:
    """Order detail for its linked customer: lines, totals and timeline."""
    order = db.session.get(ServiceOrder, order_id)
    if order is None or order.customer_id not in _linked_customer_ids(user_id):
        raise NotFoundError("Service order not found")
    data = order_service.order_detail(order.tenant_id, order.id)
    data["tenant_name"] = order.tenant.name if order.tenant else None
    return data


def get_tracking_info(order_id: int) -> dict:
    """
    Public, unauthenticated view of one order.

    Only folio, status, shop name, the asset's identifier/brand/model,
    timestamps and the status history are returned.
    """
    order = (
        db.session.query(ServiceOrder)
        .options(joinedload(ServiceOrder.asset), joinedload(ServiceOrder.tenant))
        .filter(ServiceOrder.id == order_id)
        .first()
    )
    if order is None or order.tenant is None or not order.tenant.is_active:
        raise NotFoundError("Service order not found")

    history = (
        db.session.query(ServiceOrderEvent.metadata_json, ServiceOrderEvent.created_at)
        .filter(ServiceOrderEvent.service_order_id == order.id, ServiceOrderEvent.type == "status_change")
        .order_by(ServiceOrderEvent.created_at.asc(), ServiceOrderEvent.id.asc())
        .all()
    )

    details = (order.asset.details if order.asset else None) or {}
    return {
        "folio": order.folio,
        "status": order.status,
        "tenant_name": order.tenant.name,
        "asset_identifier": order.asset.identifier if order.asset else None,
        "asset_brand": details.get("brand"),
        "asset_model": details.get("model"),
        "created_at": to_utc_z(order.created_at),
        "updated_at": to_utc_z(order.updated_at),
        "delivered_at": to_utc_z(order.delivered_at) if order.delivered_at else None,
        "timeline": [
            {"status": (meta or {}).get("to"), "created_at": to_utc_z(created)}
            for meta, created in history
        ],
    }
