# Overview: Per-tenant folio allocation for service and sales orders.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


SERVICE_ORDER = ("service_order", "OS")
SALES_ORDER = ("sales_order", "V")


def next_folio(*, tenant_id: int, document_type: str, prefix: str, pad: int = 5) -> str:
    """
    Allocate the next folio for a tenant/document type.

    The increment is a single UPDATE so concurrent allocations never hand out
    the same number. Must be called inside the caller's transaction; the
    number is only consumed if that transaction commits.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        # Sequences are seeded when the tenant is created; this only covers rows
        # that predate seeding.
        seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def seed_sequences(tenant_id: int) -> None:
    """Create the folio counters for a new tenant (idempotent)."""
    for document_type, _prefix in (SERVICE_ORDER, SALES_ORDER):
        exists = (
            db.session.query(DocumentSequence.id)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .first()
        )
        if exists is None:
            db.session.add(DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=1))
    db.session.flush()
