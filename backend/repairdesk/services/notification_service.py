# Overview: In-app notifications for staff and portal users.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import Notification
from .concurrency import run_in_transaction
from .tenant_service import get_tenant_staff


def notify_users(user_ids, *, title: str, message: str, link: str | None = None) -> list[Notification]:
    """
    Best-effort fan-out: one Notification per recipient.

    Runs in its own transaction after the triggering workflow committed; a
    failure is logged and swallowed so it never undoes the workflow.
    """
    recipients = sorted({uid for uid in user_ids if uid is not None})
    if not recipients:
        return []

    def _op():
        rows = [Notification(user_id=uid, title=title, message=message, link=link) for uid in recipients]
        db.session.add_all(rows)
        return rows

    try:
        return run_in_transaction(_op)
    except Exception:
        current_app.logger.warning("Failed to notify users %s: %s", recipients, title, exc_info=True)
        return []


def notify_tenant_staff(tenant_id: int, *, title: str, message: str, link: str | None = None) -> list[Notification]:
    try:
        staff_ids = [u.id for u in get_tenant_staff(tenant_id)]
    except Exception:
        current_app.logger.warning("Failed to load staff of tenant %s for notification", tenant_id, exc_info=True)
        return []
    return notify_users(staff_ids, title=title, message=message, link=link)


def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(user_id: int, notification_id: int) -> Notification:
    def _op():
        row = db.session.get(Notification, notification_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError("Notification not found")
        row.is_read = True
        return row

    return run_in_transaction(_op)


def mark_all_read(user_id: int) -> int:
    def _op():
        return (
            db.session.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session="fetch")
        )

    return run_in_transaction(_op)
