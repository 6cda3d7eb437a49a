# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

# backend/repairdesk/services/inventory_service.py

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import InventoryMovement, Product
from ..models.inventory import MOVEMENT_TYPES, REFERENCE_KINDS
from ..validation import coerce_int
from .concurrency import run_in_transaction
from .tenant_service import get_owned

"""
RepairDesk Inventory Invariants (authoritative)

Inventory model:
- The ledger (InventoryMovement rows) is the single source of truth.
  Quantity on hand is SUM(quantity_delta) over a product's movements.
- Product.quantity is a cache of that sum. It is only changed by
  adjust_stock(), always in the same transaction as the movement that
  explains the change, through one atomic UPDATE statement.
- Service orders, POS checkouts and storefront orders all write ledger rows.

Business invariants:
- 'in' and 'out' quantities are entered positive; 'adjustment' is entered
  signed and non-zero.
- Stock may not go negative unless ALLOW_NEGATIVE_STOCK is set.
- Services (type='service') never carry stock and never get movements.
- Movements are append-only; a mistake is corrected with a new movement.
- An order line has at most one 'out' and one compensating 'in'
  (unique reference_kind + item_id + type).
"""


def _signed_delta(movement_type: str, quantity: int) -> int:
    if movement_type == "in":
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")
        return quantity
    if movement_type == "out":
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")
        return -quantity
    if quantity == 0:
        raise ValidationError("adjustment quantity cannot be zero")
    return quantity


def adjust_stock(product_id: int, delta_quantity: int) -> None:
    """
    Apply delta_quantity to the cached stock counter in one statement.

    The UPDATE reads and writes the counter atomically, so two concurrent
    checkouts can't both read 10 and write 9. When negative stock is
    disallowed the guard sits in the WHERE clause; a zero rowcount then means
    the product is missing or the stock is short.

    Does not commit. Callers run it inside their own transaction next to the
    ledger insert.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + delta_quantity)
        .execution_options(synchronize_session="fetch")
    )
    if delta_quantity < 0 and not current_app.config.get("ALLOW_NEGATIVE_STOCK", False):
        stmt = stmt.where(Product.quantity + delta_quantity >= 0)

    result = db.session.execute(stmt)
    if result.rowcount:
        return

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    raise InsufficientStockError(
        f"Insufficient stock for {product.name}: {product.quantity} available",
        details={"product_id": product.id, "available": product.quantity, "requested": -delta_quantity},
    )


def _record_movement_inner(
    *,
    tenant_id: int,
    product: Product,
    type: str,
    quantity: int,
    reference_kind: str | None = None,
    reference_id: int | None = None,
    item_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    """Core movement logic without lookup, retry or commit.

    Called by record_movement() and by the order/sales workflows, which
    already hold the product row and own the transaction.
    """
    if not product.tracks_stock:
        raise ValidationError(f"{product.name} is a service and does not track stock")

    delta = _signed_delta(type, quantity)

    adjust_stock(product.id, delta)

    movement = InventoryMovement(
        tenant_id=tenant_id,
        product_id=product.id,
        type=type,
        quantity=quantity,
        quantity_delta=delta,
        reference_kind=reference_kind,
        reference_id=reference_id,
        item_id=item_id,
        created_by=actor_id,
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def reverse_line_out(
    *,
    tenant_id: int,
    reference_kind: str,
    reference_id: int,
    item_id: int,
    actor_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement | None:
    """
    Write the compensating 'in' for an order line's 'out'.

    Driven by the ledger, not the product's current type: a line that never
    took stock out gets nothing back, and the returned quantity is the one
    that left. Returns None when there is nothing to reverse or the line was
    already reversed. Runs inside the caller's transaction.
    """
    movements = {
        m.type: m
        for m in db.session.query(InventoryMovement)
        .options(joinedload(InventoryMovement.product))
        .filter(
            InventoryMovement.reference_kind == reference_kind,
            InventoryMovement.item_id == item_id,
            InventoryMovement.type.in_(("out", "in")),
        )
    }
    out = movements.get("out")
    if out is None or "in" in movements:
        return None
    return _record_movement_inner(
        tenant_id=tenant_id,
        product=out.product,
        type="in",
        quantity=out.quantity,
        reference_kind=reference_kind,
        reference_id=reference_id,
        item_id=item_id,
        actor_id=actor_id,
        notes=notes,
    )


def record_movement(
    *,
    tenant_id: int,
    product_id: int,
    type: str,
    quantity,
    reference_kind: str | None = None,
    reference_id: int | None = None,
    item_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    """
    Append one ledger row and move the cached counter with it.

    Raises:
        ValidationError: unknown type, quantity <= 0 for in/out, zero
            adjustment, or the product is a service.
        NotFoundError: product missing or owned by another tenant.
        InsufficientStockError: the movement would take stock below zero.
    """
    if type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of {', '.join(MOVEMENT_TYPES)}")
    if reference_kind is not None and reference_kind not in REFERENCE_KINDS:
        raise ValidationError(f"reference_kind must be one of {', '.join(REFERENCE_KINDS)}")
    quantity = coerce_int(quantity, "quantity")

    def _op():
        product = get_owned(Product, product_id, tenant_id, "Product")
        return _record_movement_inner(
            tenant_id=tenant_id,
            product=product,
            type=type,
            quantity=quantity,
            reference_kind=reference_kind,
            reference_id=reference_id,
            item_id=item_id,
            actor_id=actor_id,
            notes=notes,
        )

    return run_in_transaction(_op)


def get_quantity_on_hand(tenant_id: int, product_id: int) -> int:
    """Replay the ledger: SUM(quantity_delta) for one product."""
    q = db.session.query(
        func.coalesce(func.sum(InventoryMovement.quantity_delta), 0)
    ).filter(
        InventoryMovement.tenant_id == tenant_id,
        InventoryMovement.product_id == product_id,
    )
    return int(q.scalar() or 0)


def get_cached_quantity(tenant_id: int, product_id: int) -> int:
    product = get_owned(Product, product_id, tenant_id, "Product")
    return int(product.quantity or 0)


def list_movements(tenant_id: int, product_id: int, *, limit: int = 100) -> list[InventoryMovement]:
    """Newest-first movement history for one product, with the acting user loaded."""
    get_owned(Product, product_id, tenant_id, "Product")
    return (
        db.session.query(InventoryMovement)
        .options(joinedload(InventoryMovement.actor))
        .filter(
            InventoryMovement.tenant_id == tenant_id,
            InventoryMovement.product_id == product_id,
        )
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def reconcile_stock(tenant_id: int | None = None, *, fix: bool = False) -> list[dict]:
    """
    Compare every product's cached quantity against the ledger sum.

    Returns one entry per drifted product. With fix=True the cache is reset
    to the ledger value; the ledger itself is never touched.
    """
    ledger_sum = (
        db.session.query(
            InventoryMovement.product_id.label("product_id"),
            func.sum(InventoryMovement.quantity_delta).label("on_hand"),
        )
        .group_by(InventoryMovement.product_id)
        .subquery()
    )
    q = (
        db.session.query(Product, func.coalesce(ledger_sum.c.on_hand, 0))
        .outerjoin(ledger_sum, ledger_sum.c.product_id == Product.id)
        .filter(Product.type == "product")
    )
    if tenant_id is not None:
        q = q.filter(Product.tenant_id == tenant_id)

    drift = []
    for product, on_hand in q.order_by(Product.id).all():
        on_hand = int(on_hand or 0)
        if product.quantity == on_hand:
            continue
        drift.append({
            "product_id": product.id,
            "tenant_id": product.tenant_id,
            "name": product.name,
            "cached": product.quantity,
            "ledger": on_hand,
            "difference": product.quantity - on_hand,
        })

    if fix and drift:
        def _op():
            for entry in drift:
                db.session.execute(
                    update(Product)
                    .where(Product.id == entry["product_id"])
                    .values(quantity=entry["ledger"])
                    .execution_options(synchronize_session="fetch")
                )
        run_in_transaction(_op)
        current_app.logger.warning("Reconciled %d drifted stock counters", len(drift))

    return drift
