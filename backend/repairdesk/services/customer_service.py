# backend/repairdesk/services/customer_service.py
"""
Customers and their assets.

MULTI-TENANT: customers and assets are tenant-scoped. A customer optionally
links to a global identity (user_id); that link is what opens the portal
views for the customer's orders at this tenant.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Asset, Customer, SalesOrder, ServiceOrder, User
from ..validation import enforce_rules_asset, enforce_rules_customer, optional_text
from .concurrency import run_in_transaction
from .tenant_service import get_owned

CUSTOMER_FIELDS = ("full_name", "tax_id", "email", "phone", "address")
ASSET_FIELDS = ("identifier", "details", "notes")


def list_customers(tenant_id: int, *, term: str | None = None) -> list[Customer]:
    q = db.session.query(Customer).filter(Customer.tenant_id == tenant_id)
    term = (term or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            Customer.full_name.ilike(like),
            Customer.email.ilike(like),
            Customer.phone.ilike(like),
            Customer.tax_id.ilike(like),
        ))
    return q.order_by(Customer.full_name.asc(), Customer.id.asc()).all()


def get_customer(tenant_id: int, customer_id: int) -> Customer:
    return get_owned(Customer, customer_id, tenant_id, "Customer")


def create_customer(tenant_id: int, patch: dict) -> Customer:
    if "full_name" not in patch:
        raise ValidationError("Missing required fields: full_name")
    enforce_rules_customer(patch)

    def _op():
        customer = Customer(tenant_id=tenant_id)
        for key in CUSTOMER_FIELDS:
            if key in patch:
                setattr(customer, key, patch[key])
        db.session.add(customer)
        db.session.flush()
        return customer

    return run_in_transaction(_op)


def update_customer(tenant_id: int, customer_id: int, patch: dict) -> Customer:
    enforce_rules_customer(patch)

    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        for key in CUSTOMER_FIELDS:
            if key in patch:
                setattr(customer, key, patch[key])
        return customer

    return run_in_transaction(_op)


def delete_customer(tenant_id: int, customer_id: int) -> None:
    """Delete a customer without order history, together with their assets."""
    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        for model in (ServiceOrder, SalesOrder):
            if db.session.query(model.id).filter(model.customer_id == customer.id).first():
                raise ConflictError("Customer has orders and can't be deleted")
        db.session.query(Asset).filter(Asset.customer_id == customer.id).delete(synchronize_session=False)
        db.session.delete(customer)

    run_in_transaction(_op)


def link_portal_user(tenant_id: int, customer_id: int, *, email: str) -> Customer:
    """
    Give a customer portal access by linking the identity registered under email.

    The identity must be a portal (customer-role) user, and may be linked to at
    most one customer per tenant.
    """
    email = (optional_text(email, "email") or "").lower()

    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        user = db.session.query(User).filter(User.email == email, User.is_active.is_(True)).first()
        if user is None:
            raise NotFoundError("User not found")
        if user.role != "customer":
            raise ValidationError("Only portal users can be linked to a customer")
        clash = (
            db.session.query(Customer.id)
            .filter(Customer.tenant_id == tenant_id, Customer.user_id == user.id, Customer.id != customer.id)
            .first()
        )
        if clash:
            raise ConflictError("User is already linked to another customer")
        customer.user_id = user.id
        if not customer.email:
            customer.email = user.email
        return customer

    return run_in_transaction(_op)


def unlink_portal_user(tenant_id: int, customer_id: int) -> Customer:
    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        customer.user_id = None
        return customer

    return run_in_transaction(_op)


# --- Assets -------------------------------------------------------------------

def list_assets(tenant_id: int, customer_id: int) -> list[Asset]:
    customer = get_owned(Customer, customer_id, tenant_id, "Customer")
    return (
        db.session.query(Asset)
        .filter(Asset.customer_id == customer.id)
        .order_by(Asset.created_at.desc(), Asset.id.desc())
        .all()
    )


def get_asset(tenant_id: int, asset_id: int) -> Asset:
    return get_owned(Asset, asset_id, tenant_id, "Asset")


def _check_identifier_free(customer_id: int, identifier: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Asset.id).filter(Asset.customer_id == customer_id, Asset.identifier == identifier)
    if exclude_id is not None:
        q = q.filter(Asset.id != exclude_id)
    if q.first():
        raise ConflictError(f"Asset {identifier!r} already registered for this customer")


def create_asset(tenant_id: int, customer_id: int, patch: dict) -> Asset:
    identifier = optional_text(patch.get("identifier"), "identifier") or ""
    if not identifier:
        raise ValidationError("identifier is required")
    enforce_rules_asset(patch)

    def _op():
        customer = get_owned(Customer, customer_id, tenant_id, "Customer")
        _check_identifier_free(customer.id, identifier)
        asset = Asset(
            tenant_id=tenant_id,
            customer_id=customer.id,
            identifier=identifier,
            details=dict(patch.get("details") or {}),
            notes=optional_text(patch.get("notes"), "notes"),
        )
        db.session.add(asset)
        db.session.flush()
        return asset

    return run_in_transaction(_op)


def update_asset(tenant_id: int, asset_id: int, patch: dict) -> Asset:
    if "details" in patch:
        enforce_rules_asset(patch)

    def _op():
        asset = get_owned(Asset, asset_id, tenant_id, "Asset")
        if "identifier" in patch:
            identifier = optional_text(patch["identifier"], "identifier") or ""
            if not identifier:
                raise ValidationError("identifier is required")
            _check_identifier_free(asset.customer_id, identifier, exclude_id=asset.id)
            asset.identifier = identifier
        if "details" in patch:
            asset.details = dict(patch["details"])
        if "notes" in patch:
            asset.notes = optional_text(patch["notes"], "notes")
        return asset

    return run_in_transaction(_op)


def delete_asset(tenant_id: int, asset_id: int) -> None:
    def _op():
        asset = get_owned(Asset, asset_id, tenant_id, "Asset")
        if db.session.query(ServiceOrder.id).filter(ServiceOrder.asset_id == asset.id).first():
            raise ConflictError("Asset has service orders and can't be deleted")
        db.session.delete(asset)

    run_in_transaction(_op)
