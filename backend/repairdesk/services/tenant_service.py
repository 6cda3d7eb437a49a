"""
Multi-Tenant Service: tenant lifecycle and scoping helpers.

Every staff request runs with g.tenant_id set by @require_tenant. Ids that
arrive from client input are resolved through the helpers below, which
filter on that tenant and report rows from other tenants exactly like
missing rows, so a caller can't probe for their existence.

USAGE:
    from repairdesk.services.tenant_service import get_owned

    customer = get_owned(Customer, customer_id, tenant_id, "Customer")
"""

from __future__ import annotations

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Tenant, User
from ..models.tenancy import INDUSTRIES, STAFF_ROLES, USER_ROLES
from .concurrency import run_in_transaction
from .document_service import seed_sequences
from ..time_utils import get_zone
from ..validation import coerce_int


TENANT_SETTINGS_FIELDS = ("name", "address", "city", "contact_phone", "contact_email", "website", "timezone")


def _check_timezone(tz_name: str) -> None:
    if not tz_name:
        raise ValidationError("timezone is required")
    try:
        get_zone(tz_name)
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown timezone: {tz_name}")


def get_owned(model, row_id, tenant_id: int, label: str, *, query=None):
    """
    Fetch model row by id, scoped to tenant.

    Rows of other tenants raise the same NotFoundError as missing rows.
    Ids that aren't integers are a ValidationError.
    """
    if row_id is None:
        raise NotFoundError(f"{label} not found")
    row_id = coerce_int(row_id, f"{label} id")
    q = query if query is not None else db.session.query(model)
    row = q.filter(model.id == row_id).first()
    if row is None:
        raise NotFoundError(f"{label} not found")
    if row.tenant_id != tenant_id:
        _log_cross_tenant_attempt(f"{label} {row_id} belongs to tenant {row.tenant_id}", tenant_id)
        raise NotFoundError(f"{label} not found")
    return row


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def create_tenant(*, name: str, industry: str, timezone: str = "UTC", **contact) -> Tenant:
    """
    Create a tenant at signup. industry is fixed from here on.
    """
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("name must have at least 2 characters")
    if industry not in INDUSTRIES:
        raise ValidationError(f"industry must be one of {', '.join(INDUSTRIES)}")
    _check_timezone(timezone or "UTC")

    def _op():
        tenant = Tenant(name=name, industry=industry, timezone=timezone or "UTC", settings={}, **contact)
        db.session.add(tenant)
        db.session.flush()
        seed_sequences(tenant.id)
        return tenant

    return run_in_transaction(_op)


def update_tenant_settings(tenant_id: int, patch: dict) -> Tenant:
    """Update contact fields and the settings blob. industry can't change."""
    if "industry" in patch:
        raise ValidationError("industry can't be changed")
    if "timezone" in patch:
        _check_timezone(patch["timezone"])

    def _op():
        tenant = get_tenant(tenant_id)
        for key in TENANT_SETTINGS_FIELDS:
            if key in patch:
                setattr(tenant, key, patch[key])
        if "settings" in patch:
            if not isinstance(patch["settings"], dict):
                raise ValidationError("settings must be an object")
            merged = dict(tenant.settings or {})
            merged.update(patch["settings"])
            tenant.settings = merged
        return tenant

    return run_in_transaction(_op)


def set_tenant_logo(tenant_id: int, *, filename: str, data: bytes, content_type: str | None = None) -> Tenant:
    """Store the shop logo in the public bucket."""
    from .. import storage

    bucket = storage.public_bucket()
    stored = []

    def _op():
        bucket.discard(stored)
        tenant = get_tenant(tenant_id)
        path = storage.build_object_path(str(tenant_id), "logo", filename)
        tenant.logo_path = path
        db.session.flush()
        bucket.upload(path, data, content_type=content_type)
        stored.append(path)
        return tenant

    try:
        return run_in_transaction(_op)
    except Exception:
        bucket.discard(stored)
        raise


def create_user(*, email: str, full_name: str | None = None, role: str = "technician",
                tenant_id: int | None = None) -> User:
    """Mirror an identity-provider profile locally."""
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("email is invalid")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}")
    if role in STAFF_ROLES and tenant_id is None:
        raise ValidationError("staff users need a tenant")
    if role == "customer" and tenant_id is not None:
        raise ValidationError("portal users don't belong to a tenant")

    def _op():
        if tenant_id is not None:
            get_tenant(tenant_id)
        if db.session.query(User.id).filter_by(email=email).first():
            raise ConflictError("email already registered")
        user = User(email=email, full_name=full_name, role=role, tenant_id=tenant_id)
        db.session.add(user)
        return user

    return run_in_transaction(_op)


def get_tenant_staff(tenant_id: int) -> list[User]:
    return (
        db.session.query(User)
        .filter(User.tenant_id == tenant_id, User.is_active.is_(True), User.role.in_(STAFF_ROLES))
        .order_by(User.id)
        .all()
    )


def require_tenant_user(user_id: int, tenant_id: int) -> User:
    user = db.session.get(User, coerce_int(user_id, "user id")) if user_id is not None else None
    if user is None or user.tenant_id != tenant_id or not user.is_active:
        raise NotFoundError("User not found")
    return user


def _log_cross_tenant_attempt(reason: str, tenant_id: int | None) -> None:
    """Warn about ids from another tenant reaching a tenant-scoped lookup."""
    user = getattr(g, "current_user", None) if has_request_context() else None
    current_app.logger.warning(
        "Cross-tenant lookup denied: %s (tenant=%s user=%s path=%s)",
        reason,
        tenant_id,
        getattr(user, "id", None),
        request.path if has_request_context() else None,
    )
