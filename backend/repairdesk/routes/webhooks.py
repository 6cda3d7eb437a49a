# Overview: Flask API routes for webhook subscriptions and delivery logs.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth, require_role, require_tenant
from ..services import webhook_service

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.get("")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def list_webhooks():
    hooks = webhook_service.list_webhooks(g.tenant_id)
    return {"items": [h.to_dict() for h in hooks], "event_types": list(webhook_service.EVENT_TYPES)}


@webhooks_bp.post("")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def create_webhook():
    """Body: {url, event_type, secret?, description?}. The secret is shown once, here."""
    payload = request.get_json(silent=True) or {}
    hook = webhook_service.create_webhook(
        g.tenant_id,
        url=payload.get("url"),
        event_type=payload.get("event_type"),
        secret=payload.get("secret"),
        description=payload.get("description"),
        actor_id=g.current_user.id,
    )
    return {"webhook": hook.to_dict(include_secret=True)}, 201


@webhooks_bp.patch("/<int:webhook_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def update_webhook(webhook_id: int):
    payload = request.get_json(silent=True) or {}
    hook = webhook_service.update_webhook(g.tenant_id, webhook_id, payload)
    return {"webhook": hook.to_dict()}


@webhooks_bp.delete("/<int:webhook_id>")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def delete_webhook(webhook_id: int):
    webhook_service.delete_webhook(g.tenant_id, webhook_id)
    return {}


@webhooks_bp.get("/<int:webhook_id>/logs")
@require_auth
@require_tenant
@require_role("owner", "admin")
@action_boundary
def list_logs(webhook_id: int):
    limit = min(request.args.get("limit", default=50, type=int), 200)
    logs = webhook_service.list_logs(g.tenant_id, webhook_id, limit=limit)
    return {"items": [log.to_dict() for log in logs]}
