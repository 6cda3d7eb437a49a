from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Webhook(db.Model):
    """Outbound HTTP subscription for one event type (or '*' for all)."""
    __tablename__ = "webhooks"
    __table_args__ = (
        db.Index("ix_webhooks_tenant_active_event", "tenant_id", "is_active", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    event_type = db.Column(db.String(64), nullable=False)
    secret = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self, include_secret: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "url": self.url,
            "event_type": self.event_type,
            "description": self.description,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_secret:
            data["secret"] = self.secret
        return data


class WebhookLog(db.Model):
    """One row per delivery attempt, successful or not."""
    __tablename__ = "webhook_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    webhook_id = db.Column(db.Integer, db.ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    delivery_id = db.Column(db.String(36), nullable=False)
    payload = db.Column(db.JSON, nullable=True)

    # 0 when the request never produced a response (DNS, refused, timeout)
    response_status = db.Column(db.Integer, nullable=False, default=0)
    response_body = db.Column(db.Text, nullable=True)
    success = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "webhook_id": self.webhook_id,
            "event_type": self.event_type,
            "delivery_id": self.delivery_id,
            "payload": self.payload,
            "response_status": self.response_status,
            "response_body": self.response_body,
            "success": self.success,
            "created_at": to_utc_z(self.created_at),
        }
