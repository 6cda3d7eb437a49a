"""
Sales Service: counter (POS) and storefront (online) sales.

Both channels price from the catalog on the server, write one sales order
line per cart line, and take stock out through the inventory ledger in the
same transaction as the order. Prices sent by a client are never read.

STATE MACHINE (online orders):
    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled   (stock comes back)

POS orders are written delivered/paid in one step.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Customer, Product, SalesOrder, SalesOrderItem, User
from ..models.sales import PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import coerce_int, enforce_amount_cents, enforce_line_quantity, optional_text
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SALES_ORDER, next_folio
from .inventory_service import _record_movement_inner, reverse_line_out
from .payment_service import record_payment
from .tenant_service import get_owned, get_tenant
from . import notification_service, webhook_service


SALES_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid")
DELIVERY_METHODS = ("pickup", "shipping")

SALES_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

POS_PAYMENT_METHODS = ("cash", "card", "qr", "transfer")


def _normalize_cart(items) -> list[tuple[int, int]]:
    """[(product_id, quantity)] from a client cart; anything but id and quantity is ignored."""
    if not isinstance(items, list) or not items:
        raise ValidationError("Cart is empty")
    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Invalid cart line")
        product_id = raw.get("product_id", raw.get("id"))
        if product_id is None:
            raise ValidationError("Cart line is missing product_id")
        lines.append((coerce_int(product_id, "product_id"), enforce_line_quantity(raw.get("quantity"))))
    return lines


def _write_lines(order: SalesOrder, priced: list[tuple[Product, int, int]], *, actor_id: int | None) -> int:
    """Insert order lines and their 'out' movements; returns the order total."""
    total = 0
    for product, quantity, unit_price in priced:
        item = SalesOrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price,
        )
        db.session.add(item)
        db.session.flush()
        total += quantity * unit_price

        if product.tracks_stock:
            _record_movement_inner(
                tenant_id=order.tenant_id,
                product=product,
                type="out",
                quantity=quantity,
                reference_kind="sales_order",
                reference_id=order.id,
                item_id=item.id,
                actor_id=actor_id,
                notes=f"Sale {order.folio}",
            )
    return total


def _new_order(tenant_id: int, **fields) -> SalesOrder:
    doc_type, prefix = SALES_ORDER
    order = SalesOrder(
        tenant_id=tenant_id,
        folio=next_folio(tenant_id=tenant_id, document_type=doc_type, prefix=prefix),
        total_amount_cents=0,
        **fields,
    )
    db.session.add(order)
    db.session.flush()
    return order


# --- POS ----------------------------------------------------------------------

def create_pos_order(
    tenant_id: int,
    *,
    items,
    payment_method: str,
    actor_id: int | None = None,
    customer_name: str | None = None,
    customer_id: int | None = None,
    amount_paid_cents=None,
    reference: str | None = None,
) -> SalesOrder:
    """
    Counter checkout.

    Prices come from Product.sale_price_cents. Order, lines, stock movements
    and the Payment row commit together; if any product is short on stock,
    nothing is written.

    For cash, amount_paid_cents (when given) must cover the total and the
    change due is stored on the order.

    Raises:
        ValidationError: empty cart, bad quantity, unknown method, cash short
        NotFoundError: product missing or from another tenant
        InsufficientStockError: a line exceeds available stock
    """
    cart = _normalize_cart(items)
    if payment_method not in POS_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(POS_PAYMENT_METHODS)}")
    customer_name = optional_text(customer_name, "customer_name") or None
    reference = optional_text(reference, "reference") or None
    if customer_id is not None:
        customer_id = coerce_int(customer_id, "customer_id")
    tendered = None
    if amount_paid_cents not in (None, ""):
        tendered = enforce_amount_cents(amount_paid_cents, "amount_paid_cents")

    def _op():
        priced = []
        for product_id, quantity in cart:
            product = get_owned(Product, product_id, tenant_id, "Product")
            priced.append((product, quantity, product.sale_price_cents))

        if customer_id is not None:
            get_owned(Customer, customer_id, tenant_id, "Customer")

        now = utcnow()
        order = _new_order(
            tenant_id,
            channel="pos",
            customer_id=customer_id,
            customer_name=customer_name,
            status="delivered",
            payment_status="paid",
            payment_method=payment_method,
            delivery_method="pickup",
            payment_reference=reference,
            created_by=actor_id,
            paid_at=now,
        )
        total = _write_lines(order, priced, actor_id=actor_id)
        order.total_amount_cents = total

        if payment_method == "cash" and tendered is not None:
            if tendered < total:
                raise ValidationError(
                    "Amount paid is less than the total",
                    details={"total_cents": total, "amount_paid_cents": tendered},
                )
            order.amount_paid_cents = tendered
            order.change_cents = tendered - total
        else:
            order.amount_paid_cents = total
            order.change_cents = 0

        if total > 0:
            record_payment(
                tenant_id=tenant_id,
                sales_order_id=order.id,
                amount_cents=total,
                method=payment_method,
                notes=f"POS sale {order.folio}",
                actor_id=actor_id,
            )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("POS sale %s completed: %s cents", order.folio, order.total_amount_cents)
    webhook_service.dispatch_event(tenant_id, "sale.completed", order.to_dict(include_items=True))
    return order


# --- Storefront ---------------------------------------------------------------

def create_store_order(
    *,
    items,
    customer: dict,
    payment_method: str | None = None,
    payment_proof_path: str | None = None,
    delivery_method: str = "pickup",
    user_id: int | None = None,
) -> SalesOrder:
    """
    Public checkout.

    Products must be public and all from one shop; the shop is taken from
    them. Prices are public_price_cents, falling back to sale_price_cents.
    The order starts pending/pending and its stock is reserved right away.
    """
    cart = _normalize_cart(items)
    customer = customer or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    for key, value in customer.items():
        optional_text(value, f"customer.{key}")
    full_name = (customer.get("full_name") or "").strip()
    if len(full_name) < 2:
        raise ValidationError("customer.full_name must have at least 2 characters")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    if delivery_method not in DELIVERY_METHODS:
        raise ValidationError(f"delivery_method must be one of {', '.join(DELIVERY_METHODS)}")
    if delivery_method == "shipping" and not (customer.get("address") or "").strip():
        raise ValidationError("customer.address is required for shipping")

    def _op():
        products = []
        for product_id, quantity in cart:
            product = db.session.get(Product, product_id)
            if product is None or not product.is_public:
                raise NotFoundError("Product not found")
            products.append((product, quantity))

        tenant_ids = {p.tenant_id for p, _ in products}
        if len(tenant_ids) != 1:
            raise ValidationError("All products must come from the same shop")
        tenant_id = tenant_ids.pop()
        if not get_tenant(tenant_id).is_active:
            raise NotFoundError("Product not found")

        priced = [(p, q, p.storefront_price_cents) for p, q in products]
        shipping = {
            key: customer.get(key)
            for key in ("full_name", "email", "phone", "address", "city", "state", "zip", "tax_id")
            if customer.get(key) not in (None, "")
        }
        order = _new_order(
            tenant_id,
            channel="online",
            user_id=user_id,
            customer_name=full_name,
            status="pending",
            payment_status="pending",
            payment_method=payment_method,
            delivery_method=delivery_method,
            shipping_address=shipping,
            contact_phone=customer.get("phone"),
            payment_proof_path=payment_proof_path,
        )
        order.total_amount_cents = _write_lines(order, priced, actor_id=None)
        return order

    return run_in_transaction(_op)


# --- Lifecycle ----------------------------------------------------------------

def _get_sales_order(tenant_id: int, order_id: int, *, lock: bool = False) -> SalesOrder:
    query = db.session.query(SalesOrder)
    if lock:
        query = lock_for_update(query)
    return get_owned(SalesOrder, order_id, tenant_id, "Sales order", query=query)


def _restock_order(order: SalesOrder, *, actor_id: int | None) -> None:
    for item in order.items:
        reverse_line_out(
            tenant_id=order.tenant_id,
            reference_kind="sales_order",
            reference_id=order.id,
            item_id=item.id,
            actor_id=actor_id,
            notes=f"Sale {order.folio} cancelled",
        )


def _apply_transition(order: SalesOrder, new_status: str, *, actor_id: int | None) -> None:
    if new_status not in SALES_STATUSES:
        raise ValidationError(f"Invalid status '{new_status}'. Must be one of: {', '.join(SALES_STATUSES)}")
    if new_status not in SALES_TRANSITIONS[order.status]:
        raise InvalidTransitionError(
            f"Cannot change status from {order.status} to {new_status}",
            details={"from": order.status, "to": new_status},
        )
    if new_status == "cancelled":
        if order.payment_status == "paid":
            raise ConflictError(
                "Paid orders can't be cancelled",
                details={"payment_status": order.payment_status},
            )
        _restock_order(order, actor_id=actor_id)
    order.status = new_status


def update_sales_order_status(tenant_id: int, order_id: int, new_status: str, *,
                              actor_id: int | None = None) -> SalesOrder:
    def _op():
        order = _get_sales_order(tenant_id, order_id, lock=True)
        _apply_transition(order, new_status, actor_id=actor_id)
        return order

    return run_in_transaction(_op)


def mark_sales_order_paid(tenant_id: int, order_id: int, *, method: str | None = None,
                          reference: str | None = None, actor_id: int | None = None) -> SalesOrder:
    """Confirm payment of an online order and record the Payment row."""
    def _op():
        order = _get_sales_order(tenant_id, order_id, lock=True)
        if order.payment_status == "paid":
            raise ConflictError("Order is already paid")
        if order.status == "cancelled":
            raise ConflictError("Cancelled orders can't be paid")
        pay_method = method or order.payment_method or "transfer"
        if order.total_amount_cents > 0:
            record_payment(
                tenant_id=tenant_id,
                sales_order_id=order.id,
                amount_cents=order.total_amount_cents,
                method=pay_method,
                notes=f"Online order {order.folio}",
                actor_id=actor_id,
            )
        order.payment_status = "paid"
        order.payment_method = pay_method
        order.amount_paid_cents = order.total_amount_cents
        if reference:
            order.payment_reference = reference
        order.paid_at = utcnow()
        return order

    return run_in_transaction(_op)


def confirm_order_received(user_id: int, order_id: int) -> SalesOrder:
    """
    Portal buyer confirms a shipped order arrived (shipped -> delivered).

    Every staff user of the shop gets a notification.
    """
    def _op():
        q = lock_for_update(db.session.query(SalesOrder))
        order = q.filter(SalesOrder.id == order_id).first()
        if order is None or order.user_id != user_id:
            raise NotFoundError("Sales order not found")
        _apply_transition(order, "delivered", actor_id=user_id)
        return order

    order = run_in_transaction(_op)

    buyer = db.session.get(User, user_id)
    buyer_name = (buyer.full_name if buyer else None) or order.customer_name or "The customer"
    notification_service.notify_tenant_staff(
        order.tenant_id,
        title="Order received",
        message=f"{buyer_name} confirmed receipt of order {order.folio}",
        link=f"/sales/{order.id}",
    )
    return order


def list_sales_orders(
    tenant_id: int,
    *,
    channel: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    limit: int | None = None,
) -> list[SalesOrder]:
    q = db.session.query(SalesOrder).filter(SalesOrder.tenant_id == tenant_id)
    if channel:
        q = q.filter(SalesOrder.channel == channel)
    if status:
        q = q.filter(SalesOrder.status == status)
    if payment_status:
        q = q.filter(SalesOrder.payment_status == payment_status)
    q = q.order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_sales_order(tenant_id: int, order_id: int) -> SalesOrder:
    query = db.session.query(SalesOrder).options(
        selectinload(SalesOrder.items).joinedload(SalesOrderItem.product)
    )
    return get_owned(SalesOrder, order_id, tenant_id, "Sales order", query=query)


def list_user_purchases(user_id: int) -> list[SalesOrder]:
    return (
        db.session.query(SalesOrder)
        .filter(SalesOrder.user_id == user_id)
        .order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc())
        .all()
    )


def get_user_purchase(user_id: int, order_id: int) -> SalesOrder:
    order = db.session.get(SalesOrder, order_id)
    if order is None or order.user_id != user_id:
        raise NotFoundError("Sales order not found")
    return order
