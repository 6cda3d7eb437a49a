# Overview: Flask API routes for the signed-in user's notifications.

from flask import Blueprint, g, request

from ..decorators import action_boundary, require_auth
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@action_boundary
def list_notifications():
    unread_only = request.args.get("unread") in ("1", "true", "yes")
    rows = notification_service.list_notifications(g.current_user.id, unread_only=unread_only)
    return {
        "items": [n.to_dict() for n in rows],
        "unread": notification_service.unread_count(g.current_user.id),
    }


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
@action_boundary
def mark_read(notification_id: int):
    row = notification_service.mark_read(g.current_user.id, notification_id)
    return {"notification": row.to_dict()}


@notifications_bp.post("/read-all")
@require_auth
@action_boundary
def mark_all_read():
    return {"updated": notification_service.mark_all_read(g.current_user.id)}
