# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Recording Service

DESIGN PRINCIPLES:
- Payments are separate from orders (many-to-one relationship)
- A payment targets exactly one order: a service order OR a sales order
- Partial and split payments are just more rows; nothing caps the sum
- Recording a payment never changes an order's workflow status
- Payment rows are immutable once written
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Payment
from ..models.sales import PAYMENT_METHODS
from ..validation import enforce_amount_cents


# Counter tender accepted on service orders (no QR codes at the repair desk)
SERVICE_PAYMENT_METHODS = ("cash", "card", "transfer", "other")


def record_payment(
    *,
    tenant_id: int,
    amount_cents,
    method: str,
    service_order_id: int | None = None,
    sales_order_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
) -> Payment:
    """
    Insert one payment row against a single target.

    Does not commit: callers own the transaction and have already resolved
    the target order inside their tenant.

    Raises:
        ValidationError: zero/negative/over-limit amount, unknown method, or
            not exactly one target.
    """
    if (service_order_id is None) == (sales_order_id is None):
        raise ValidationError("payment must target exactly one order")

    allowed = SERVICE_PAYMENT_METHODS if service_order_id is not None else PAYMENT_METHODS
    if method not in allowed:
        raise ValidationError(f"method must be one of {', '.join(allowed)}")

    amount = enforce_amount_cents(amount_cents, "amount_cents", allow_zero=False)

    payment = Payment(
        tenant_id=tenant_id,
        service_order_id=service_order_id,
        sales_order_id=sales_order_id,
        amount_cents=amount,
        method=method,
        notes=(notes or None),
        created_by=actor_id,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def list_payments(*, service_order_id: int | None = None, sales_order_id: int | None = None) -> list[Payment]:
    q = db.session.query(Payment)
    if service_order_id is not None:
        q = q.filter(Payment.service_order_id == service_order_id)
    elif sales_order_id is not None:
        q = q.filter(Payment.sales_order_id == sales_order_id)
    else:
        raise ValidationError("payment target is required")
    return q.order_by(Payment.created_at.asc(), Payment.id.asc()).all()


def total_paid_cents(*, service_order_id: int | None = None, sales_order_id: int | None = None) -> int:
    q = db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
    if service_order_id is not None:
        q = q.filter(Payment.service_order_id == service_order_id)
    else:
        q = q.filter(Payment.sales_order_id == sales_order_id)
    return int(q.scalar() or 0)
