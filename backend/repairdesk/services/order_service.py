# Overview: Service-layer operations for service orders; encapsulates business logic and database work.

"""
Service Order Workflow

STATE MACHINE:
    reception -> diagnosis -> approval -> repair -> qa -> ready -> delivered

    Rework edges:
        approval -> diagnosis   (quote rejected, diagnose again)
        qa       -> repair      (QA failed)

RULES:
1. Only edges listed in ALLOWED_TRANSITIONS are accepted; anything else,
   including a write of the current status, raises InvalidTransitionError.
2. delivered is terminal. A delivered order's items can't change.
3. Every status change appends a status_change timeline event in the same
   transaction as the status write.
4. Parts attached to an order leave stock through the ledger ('out'),
   and come back ('in') when the line is removed or the order is deleted.
   Item insert and movement insert commit together or not at all.
5. Line prices are snapshotted when attached.

Side effects (webhooks, portal notifications) run only after the
transaction committed and never fail the workflow.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import delete, func
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import (
    Asset,
    Customer,
    Payment,
    Product,
    ServiceOrder,
    ServiceOrderEvent,
    ServiceOrderItem,
)
from ..models.orders import PRIORITIES
from ..time_utils import utcnow
from ..validation import enforce_amount_cents, enforce_line_quantity, optional_text
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SERVICE_ORDER, next_folio
from .inventory_service import _record_movement_inner, reverse_line_out
from .payment_service import list_payments, record_payment, total_paid_cents
from .tenant_service import get_owned, require_tenant_user
from . import notification_service, webhook_service


class ServiceOrderStatus(str, Enum):
    RECEPTION = "reception"
    DIAGNOSIS = "diagnosis"
    APPROVAL = "approval"
    REPAIR = "repair"
    QA = "qa"
    READY = "ready"
    DELIVERED = "delivered"


ALLOWED_TRANSITIONS = {
    ServiceOrderStatus.RECEPTION: {ServiceOrderStatus.DIAGNOSIS},
    ServiceOrderStatus.DIAGNOSIS: {ServiceOrderStatus.APPROVAL},
    ServiceOrderStatus.APPROVAL: {ServiceOrderStatus.REPAIR, ServiceOrderStatus.DIAGNOSIS},
    ServiceOrderStatus.REPAIR: {ServiceOrderStatus.QA},
    ServiceOrderStatus.QA: {ServiceOrderStatus.READY, ServiceOrderStatus.REPAIR},
    ServiceOrderStatus.READY: {ServiceOrderStatus.DELIVERED},
    ServiceOrderStatus.DELIVERED: set(),
}

# Statuses counted as "in the shop"
ACTIVE_STATUSES = tuple(s.value for s in ServiceOrderStatus if s is not ServiceOrderStatus.DELIVERED)

MIN_DESCRIPTION_LENGTH = 10


def parse_status(value) -> ServiceOrderStatus:
    try:
        return ServiceOrderStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status '{value}'. Must be one of: {', '.join(s.value for s in ServiceOrderStatus)}")


def validate_transition(current, new) -> None:
    """
    Raise InvalidTransitionError unless current -> new is an allowed edge.
    """
    current = ServiceOrderStatus(current)
    new = parse_status(new)
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot change status from {current.value} to {new.value}",
            details={"from": current.value, "to": new.value},
        )


def _get_order(tenant_id: int, order_id: int, *, lock: bool = False) -> ServiceOrder:
    query = db.session.query(ServiceOrder)
    if lock:
        query = lock_for_update(query)
    return get_owned(ServiceOrder, order_id, tenant_id, "Service order", query=query)


def _ensure_editable(order: ServiceOrder) -> None:
    if order.status == ServiceOrderStatus.DELIVERED.value:
        raise ConflictError("Delivered orders can't be modified")


def _add_event(order: ServiceOrder, *, type: str, actor_id: int | None, content: str | None = None,
               metadata: dict | None = None) -> ServiceOrderEvent:
    event = ServiceOrderEvent(
        tenant_id=order.tenant_id,
        service_order_id=order.id,
        actor_id=actor_id,
        type=type,
        content=content,
        metadata_json=metadata or {},
    )
    db.session.add(event)
    return event


# --- Orders -------------------------------------------------------------------

def create_order(
    tenant_id: int,
    *,
    customer_id: int,
    asset_id: int,
    description: str,
    priority: str = "normal",
    notes: str | None = None,
    assigned_to: int | None = None,
    actor_id: int | None = None,
) -> ServiceOrder:
    """
    Open a service order in reception.

    Raises:
        ValidationError: short description, unknown priority, or the asset
            belongs to a different customer.
        NotFoundError: customer, asset or technician not in the tenant.
    """
    description = optional_text(description, "description") or ""
    notes = optional_text(notes, "notes")
    if len(description) < MIN_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must have at least {MIN_DESCRIPTION_LENGTH} characters")
    priority = priority or "normal"
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")

    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        asset = get_owned(Asset, asset_id, tenant_id, "Asset")
        if asset.customer_id != customer.id:
            raise ValidationError("Asset does not belong to the customer")
        technician = require_tenant_user(assigned_to, tenant_id) if assigned_to is not None else None

        doc_type, prefix = SERVICE_ORDER
        order = ServiceOrder(
            tenant_id=tenant_id,
            customer_id=customer.id,
            asset_id=asset.id,
            folio=next_folio(tenant_id=tenant_id, document_type=doc_type, prefix=prefix),
            status=ServiceOrderStatus.RECEPTION.value,
            priority=priority,
            description=description,
            notes=notes,
            assigned_to=technician.id if technician is not None else None,
            created_by=actor_id,
        )
        db.session.add(order)
        db.session.flush()

        _add_event(
            order,
            type="status_change",
            actor_id=actor_id,
            content="Order received",
            metadata={"from": None, "to": ServiceOrderStatus.RECEPTION.value},
        )
        return order

    order = run_in_transaction(_op)
    webhook_service.dispatch_event(tenant_id, "order.created", order.to_dict())
    return order


def update_order(tenant_id: int, order_id: int, patch: dict) -> ServiceOrder:
    """Edit the free-text fields and priority; status has its own path."""
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    changes = {
        key: optional_text(patch[key], key)
        for key in ("description", "notes", "priority")
        if key in patch
    }
    if "priority" in changes and changes["priority"] not in PRIORITIES:
        raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")
    if "description" in changes and len(changes["description"] or "") < MIN_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must have at least {MIN_DESCRIPTION_LENGTH} characters")

    def _op():
        order = _get_order(tenant_id, order_id)
        _ensure_editable(order)
        for key, value in changes.items():
            setattr(order, key, value)
        return order

    return run_in_transaction(_op)


def update_status(tenant_id: int, order_id: int, new_status, *, actor_id: int | None = None,
                  note: str | None = None) -> ServiceOrder:
    """
    Move an order along the transition table.

    Writes a status_change event with {from, to} in the same transaction.
    After commit: order.status_change webhook, order.delivered on delivery,
    and a portal notification when the order becomes ready.
    """
    target = parse_status(new_status)
    transition = {}

    def _op():
        order = _get_order(tenant_id, order_id, lock=True)
        previous = order.status
        validate_transition(previous, target)

        order.status = target.value
        if target is ServiceOrderStatus.DELIVERED:
            order.delivered_at = utcnow()

        _add_event(
            order,
            type="status_change",
            actor_id=actor_id,
            content=note,
            metadata={"from": previous, "to": target.value},
        )
        transition.update({"from": previous, "to": target.value})
        return order

    order = run_in_transaction(_op)

    webhook_service.dispatch_event(tenant_id, "order.status_change", {
        "order_id": order.id,
        "folio": order.folio,
        "previous_status": transition["from"],
        "new_status": transition["to"],
        "updated_by": actor_id,
    })
    if target is ServiceOrderStatus.DELIVERED:
        webhook_service.dispatch_event(tenant_id, "order.delivered", order.to_dict())
    if target is ServiceOrderStatus.READY:
        _notify_ready(order)
    return order


def _notify_ready(order: ServiceOrder) -> None:
    customer = order.customer
    if customer is None or customer.user_id is None:
        return
    notification_service.notify_users(
        [customer.user_id],
        title="Your order is ready",
        message=f"Order {order.folio} is ready for pickup at {order.tenant.name}",
        link=f"/portal/orders/{order.id}",
    )


def assign_technician(tenant_id: int, order_id: int, technician_id: int | None) -> ServiceOrder:
    """Assign (or clear, with None) the responsible technician."""
    def _op():
        order = _get_order(tenant_id, order_id)
        _ensure_editable(order)
        if technician_id is not None:
            user = require_tenant_user(technician_id, tenant_id)
            if not user.is_staff:
                raise ValidationError("Assignee must be a staff user")
        order.assigned_to = user.id if technician_id is not None else None
        return order

    return run_in_transaction(_op)


def get_order(tenant_id: int, order_id: int) -> ServiceOrder:
    return _get_order(tenant_id, order_id)


def list_orders(
    tenant_id: int,
    *,
    status: str | None = None,
    asset_id: int | None = None,
    customer_id: int | None = None,
    assigned_to: int | None = None,
    limit: int | None = None,
) -> list[ServiceOrder]:
    q = (
        db.session.query(ServiceOrder)
        .options(joinedload(ServiceOrder.customer), joinedload(ServiceOrder.asset))
        .filter(ServiceOrder.tenant_id == tenant_id)
    )
    if status:
        q = q.filter(ServiceOrder.status == parse_status(status).value)
    if asset_id is not None:
        q = q.filter(ServiceOrder.asset_id == asset_id)
    if customer_id is not None:
        q = q.filter(ServiceOrder.customer_id == customer_id)
    if assigned_to is not None:
        q = q.filter(ServiceOrder.assigned_to == assigned_to)
    q = q.order_by(ServiceOrder.created_at.desc(), ServiceOrder.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def delete_order(tenant_id: int, order_id: int, *, actor_id: int | None = None) -> None:
    """
    Delete an order and everything hanging off it.

    Stock used by its product lines goes back through compensating 'in'
    movements first. Orders with payments are refused; money history stays.
    """
    def _op():
        order = _get_order(tenant_id, order_id, lock=True)
        if db.session.query(Payment.id).filter(Payment.service_order_id == order.id).first():
            raise ConflictError("Order has payments and can't be deleted")

        items = (
            db.session.query(ServiceOrderItem)
            .options(joinedload(ServiceOrderItem.product))
            .filter(ServiceOrderItem.service_order_id == order.id)
            .all()
        )
        for item in items:
            _restock_item(order, item, actor_id=actor_id, notes=f"Order {order.folio} deleted")

        db.session.execute(
            delete(ServiceOrderItem).where(ServiceOrderItem.service_order_id == order.id)
            .execution_options(synchronize_session="fetch")
        )
        db.session.execute(
            delete(ServiceOrderEvent).where(ServiceOrderEvent.service_order_id == order.id)
            .execution_options(synchronize_session="fetch")
        )
        db.session.delete(order)

    run_in_transaction(_op)


# --- Items --------------------------------------------------------------------

def list_items(tenant_id: int, order_id: int) -> list[ServiceOrderItem]:
    order = _get_order(tenant_id, order_id)
    return (
        db.session.query(ServiceOrderItem)
        .options(joinedload(ServiceOrderItem.product))
        .filter(ServiceOrderItem.service_order_id == order.id)
        .order_by(ServiceOrderItem.created_at.asc(), ServiceOrderItem.id.asc())
        .all()
    )


def add_item(
    tenant_id: int,
    order_id: int,
    *,
    product_id: int,
    quantity,
    unit_price_cents=None,
    actor_id: int | None = None,
) -> ServiceOrderItem:
    """
    Attach a part or labor line.

    The unit price is snapshotted (product sale price unless the desk quotes
    a price). Stock-tracked products leave stock with an 'out' movement whose
    reference (order id, item id) is known before the movement is inserted.

    Raises:
        ConflictError: the order is delivered
        InsufficientStockError: not enough stock; nothing is written
    """
    quantity = enforce_line_quantity(quantity)
    if unit_price_cents not in (None, ""):
        unit_price_cents = enforce_amount_cents(unit_price_cents, "unit_price_cents")
    else:
        unit_price_cents = None

    def _op():
        order = _get_order(tenant_id, order_id, lock=True)
        _ensure_editable(order)
        product = get_owned(Product, product_id, tenant_id, "Product")

        item = ServiceOrderItem(
            tenant_id=tenant_id,
            service_order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price_cents if unit_price_cents is not None else product.sale_price_cents,
        )
        db.session.add(item)
        db.session.flush()

        if product.tracks_stock:
            _record_movement_inner(
                tenant_id=tenant_id,
                product=product,
                type="out",
                quantity=quantity,
                reference_kind="service_order",
                reference_id=order.id,
                item_id=item.id,
                actor_id=actor_id,
                notes=f"Used on order {order.folio}",
            )
        return item

    return run_in_transaction(_op)


def _restock_item(order: ServiceOrder, item: ServiceOrderItem, *, actor_id: int | None, notes: str) -> None:
    reverse_line_out(
        tenant_id=order.tenant_id,
        reference_kind="service_order",
        reference_id=order.id,
        item_id=item.id,
        actor_id=actor_id,
        notes=notes,
    )


def remove_item(tenant_id: int, order_id: int, item_id: int, *, actor_id: int | None = None) -> None:
    """
    Remove a line and put its stock back.

    The DELETE is checked by rowcount, so of two concurrent removals only one
    proceeds to the compensating 'in' movement; the other gets NotFoundError.
    """
    def _op():
        order = _get_order(tenant_id, order_id, lock=True)
        _ensure_editable(order)

        item = (
            db.session.query(ServiceOrderItem)
            .options(joinedload(ServiceOrderItem.product))
            .filter(
                ServiceOrderItem.id == item_id,
                ServiceOrderItem.service_order_id == order.id,
                ServiceOrderItem.tenant_id == tenant_id,
            )
            .first()
        )
        if item is None:
            raise NotFoundError("Order item not found")

        result = db.session.execute(
            delete(ServiceOrderItem)
            .where(ServiceOrderItem.id == item.id)
            .execution_options(synchronize_session="fetch")
        )
        if not result.rowcount:
            raise NotFoundError("Order item not found")

        _restock_item(order, item, actor_id=actor_id, notes=f"Removed from order {order.folio}")

    run_in_transaction(_op)


def order_totals(tenant_id: int, order_id: int) -> dict:
    """Items total, amount paid and balance, all in cents."""
    order = _get_order(tenant_id, order_id)
    items_total = (
        db.session.query(
            func.coalesce(func.sum(ServiceOrderItem.quantity * ServiceOrderItem.unit_price_cents), 0)
        )
        .filter(ServiceOrderItem.service_order_id == order.id)
        .scalar()
    )
    items_total = int(items_total or 0)
    paid = total_paid_cents(service_order_id=order.id)
    return {
        "items_total_cents": items_total,
        "paid_cents": paid,
        "balance_cents": items_total - paid,
    }


# --- Payments -----------------------------------------------------------------

def register_payment(
    tenant_id: int,
    order_id: int,
    *,
    amount_cents,
    method: str,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Payment:
    """Record a (possibly partial) payment. The order status is untouched."""
    def _op():
        order = _get_order(tenant_id, order_id)
        return record_payment(
            tenant_id=tenant_id,
            service_order_id=order.id,
            amount_cents=amount_cents,
            method=method,
            notes=notes,
            actor_id=actor_id,
        )

    return run_in_transaction(_op)


def list_order_payments(tenant_id: int, order_id: int) -> list[Payment]:
    order = _get_order(tenant_id, order_id)
    return list_payments(service_order_id=order.id)


# --- Timeline -----------------------------------------------------------------

def add_comment(tenant_id: int, order_id: int, content: str, *, actor_id: int | None = None) -> ServiceOrderEvent:
    content = optional_text(content, "content") or ""
    if not content:
        raise ValidationError("content is required")

    def _op():
        order = _get_order(tenant_id, order_id)
        event = _add_event(order, type="comment", actor_id=actor_id, content=content)
        db.session.flush()
        return event

    return run_in_transaction(_op)


def upload_evidence(
    tenant_id: int,
    order_id: int,
    *,
    filename: str,
    data: bytes,
    content_type: str | None = None,
    actor_id: int | None = None,
) -> ServiceOrderEvent:
    """
    Store a file in the private evidence bucket and add an evidence event.

    Object path: <tenant>/<order>/<ms-timestamp>-<clean-name>.
    The object is written once the event row has flushed and is removed
    again when the transaction does not commit.
    """
    from .. import storage

    if not data:
        raise ValidationError("file is empty")
    if not filename:
        raise ValidationError("filename is required")

    bucket = storage.evidence_bucket()
    stored = []

    def _op():
        # a retried attempt drops the object of the attempt before it
        bucket.discard(stored)
        order = _get_order(tenant_id, order_id)
        path = storage.build_object_path(str(tenant_id), str(order.id), filename=filename)
        event = _add_event(
            order,
            type="evidence",
            actor_id=actor_id,
            content="Uploaded a file",
            metadata={
                "file_path": path,
                "file_name": filename,
                "file_size": len(data),
                "mime_type": content_type,
            },
        )
        db.session.flush()
        bucket.upload(path, data, content_type=content_type)
        stored.append(path)
        return event

    try:
        return run_in_transaction(_op)
    except Exception:
        bucket.discard(stored)
        raise


def list_events(tenant_id: int, order_id: int) -> list[dict]:
    """
    Timeline, oldest first. Evidence events carry a signed read URL.
    """
    from .. import storage

    order = _get_order(tenant_id, order_id)
    events = (
        db.session.query(ServiceOrderEvent)
        .options(joinedload(ServiceOrderEvent.actor))
        .filter(ServiceOrderEvent.service_order_id == order.id)
        .order_by(ServiceOrderEvent.created_at.asc(), ServiceOrderEvent.id.asc())
        .all()
    )
    bucket = storage.evidence_bucket()
    out = []
    for event in events:
        data = event.to_dict()
        path = (event.metadata_json or {}).get("file_path")
        if event.type == "evidence" and path:
            data["signed_url"] = bucket.create_signed_url(path)["signed_url"]
        out.append(data)
    return out


def order_detail(tenant_id: int, order_id: int) -> dict:
    """Order with its lines, payments, totals and timeline."""
    order = _get_order(tenant_id, order_id)
    data = order.to_dict()
    data["items"] = [i.to_dict() for i in list_items(tenant_id, order.id)]
    data["payments"] = [p.to_dict() for p in list_order_payments(tenant_id, order.id)]
    data["totals"] = order_totals(tenant_id, order.id)
    data["events"] = list_events(tenant_id, order.id)
    if order.technician is not None:
        data["technician_name"] = order.technician.full_name
    return data
