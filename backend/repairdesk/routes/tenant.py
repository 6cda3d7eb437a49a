# Overview: Flask API routes for the signed-in shop's profile and settings.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..errors import ValidationError
from ..services import tenant_service
from .. import storage

tenant_bp = Blueprint("tenant", __name__, url_prefix="/api/tenant")


def _tenant_payload(tenant) -> dict:
    data = tenant.to_dict()
    data["logo_url"] = storage.public_bucket().public_url(tenant.logo_path) if tenant.logo_path else None
    return data


@tenant_bp.get("")
@require_auth
@require_tenant
@action_boundary
def get_tenant():
    return {"tenant": _tenant_payload(tenant_service.get_tenant(g.tenant_id))}


@tenant_bp.get("/staff")
@require_auth
@require_tenant
@action_boundary
def list_staff():
    return {"items": [u.to_dict() for u in tenant_service.get_tenant_staff(g.tenant_id)]}


@tenant_bp.patch("")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def update_tenant():
    """Contact fields, timezone and the settings blob; industry is fixed."""
    payload = request.get_json(silent=True) or {}
    tenant = tenant_service.update_tenant_settings(g.tenant_id, payload)
    return {"tenant": _tenant_payload(tenant)}


@tenant_bp.post("/logo")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def upload_logo():
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required")
    data = upload.read()
    if not data:
        raise ValidationError("file is empty")
    tenant = tenant_service.set_tenant_logo(
        g.tenant_id, filename=upload.filename, data=data, content_type=upload.mimetype
    )
    return {"tenant": _tenant_payload(tenant)}
