# Overview: Outbound webhook subscriptions and fire-once parallel delivery.

"""
Webhook dispatch.

dispatch_event() is called by workflows after their own transaction has
committed. It never raises: a subscriber that is down, slow or broken
produces a WebhookLog row with success=False and a warning in the app log,
nothing more. There is no retry and no queue.

Delivery contract (one POST per matching subscription):
    headers: Content-Type: application/json
             X-Webhook-Secret: <subscription secret>
             X-Event-Type: <event>
    body:    {"id": <uuid4>, "timestamp": <ISO-8601 Z>, "event": <event>, "data": {...}}
"""

from __future__ import annotations

import asyncio
import secrets
import uuid

import httpx
from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import Webhook, WebhookLog
from ..time_utils import to_utc_z, utcnow
from ..validation import enforce_rules_webhook, optional_text
from .concurrency import run_in_transaction
from .tenant_service import get_owned

EVENT_TYPES = (
    "order.created",
    "order.status_change",
    "order.delivered",
    "sale.completed",
)
WILDCARD = "*"

MAX_LOGGED_BODY = 2000


# --- Subscriptions ------------------------------------------------------------

def list_webhooks(tenant_id: int) -> list[Webhook]:
    return db.session.query(Webhook).filter(Webhook.tenant_id == tenant_id).order_by(Webhook.id).all()


def create_webhook(
    tenant_id: int,
    *,
    url: str,
    event_type: str,
    secret: str | None = None,
    description: str | None = None,
    actor_id: int | None = None,
) -> Webhook:
    """Register a subscription. A secret is generated when none is given."""
    url = optional_text(url, "url") or ""
    secret = optional_text(secret, "secret") or None
    description = optional_text(description, "description")
    enforce_rules_webhook({"url": url})
    if event_type not in EVENT_TYPES and event_type != WILDCARD:
        raise ValidationError(f"event_type must be one of {', '.join(EVENT_TYPES + (WILDCARD,))}")

    def _op():
        hook = Webhook(
            tenant_id=tenant_id,
            url=url,
            event_type=event_type,
            secret=secret or secrets.token_hex(24),
            description=description,
            is_active=True,
            created_by=actor_id,
        )
        db.session.add(hook)
        db.session.flush()
        return hook

    return run_in_transaction(_op)


def update_webhook(tenant_id: int, webhook_id: int, patch: dict) -> Webhook:
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    changes = {key: optional_text(patch[key], key) for key in ("url", "secret", "description") if key in patch}
    if "url" in changes:
        enforce_rules_webhook({"url": changes["url"] or ""})
    if "secret" in changes and not changes["secret"]:
        raise ValidationError("secret cannot be blank")
    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        changes["is_active"] = patch["is_active"]
    if "event_type" in patch:
        if patch["event_type"] not in EVENT_TYPES + (WILDCARD,):
            raise ValidationError(f"event_type must be one of {', '.join(EVENT_TYPES + (WILDCARD,))}")
        changes["event_type"] = patch["event_type"]

    def _op():
        hook = get_owned(Webhook, webhook_id, tenant_id, "Webhook")
        for key, value in changes.items():
            setattr(hook, key, value)
        return hook

    return run_in_transaction(_op)


def delete_webhook(tenant_id: int, webhook_id: int) -> None:
    def _op():
        hook = get_owned(Webhook, webhook_id, tenant_id, "Webhook")
        db.session.query(WebhookLog).filter(WebhookLog.webhook_id == hook.id).delete(synchronize_session=False)
        db.session.delete(hook)

    run_in_transaction(_op)


def list_logs(tenant_id: int, webhook_id: int, *, limit: int = 50) -> list[WebhookLog]:
    hook = get_owned(Webhook, webhook_id, tenant_id, "Webhook")
    return (
        db.session.query(WebhookLog)
        .filter(WebhookLog.webhook_id == hook.id)
        .order_by(WebhookLog.created_at.desc(), WebhookLog.id.desc())
        .limit(limit)
        .all()
    )


# --- Delivery -----------------------------------------------------------------

def build_envelope(event_type: str, data: dict) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "timestamp": to_utc_z(utcnow()),
        "event": event_type,
        "data": data,
    }


def _matching_webhooks(tenant_id: int, event_type: str) -> list[Webhook]:
    return (
        db.session.query(Webhook)
        .filter(
            Webhook.tenant_id == tenant_id,
            Webhook.is_active.is_(True),
            Webhook.event_type.in_([event_type, WILDCARD]),
        )
        .order_by(Webhook.id)
        .all()
    )


async def _post_all(targets: list[tuple[int, str, str]], envelope: dict, *, timeout: float, transport=None):
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        requests = [
            client.post(
                url,
                json=envelope,
                headers={
                    "Content-Type": "application/json",
                    "X-Webhook-Secret": secret,
                    "X-Event-Type": envelope["event"],
                },
            )
            for _hook_id, url, secret in targets
        ]
        return await asyncio.gather(*requests, return_exceptions=True)


def dispatch_event(tenant_id: int, event_type: str, data: dict, *, transport=None) -> list[WebhookLog]:
    """
    Deliver one event to every active matching subscription in parallel.

    Waits for all attempts to finish, writes one WebhookLog per attempt and
    returns them. Never raises.

    transport: optional httpx transport; defaults to app.config["WEBHOOK_TRANSPORT"]
    (None means real network).
    """
    try:
        hooks = _matching_webhooks(tenant_id, event_type)
        if not hooks:
            return []

        envelope = build_envelope(event_type, data)
        targets = [(h.id, h.url, h.secret) for h in hooks]
        if transport is None:
            transport = current_app.config.get("WEBHOOK_TRANSPORT")

        results = asyncio.run(_post_all(
            targets,
            envelope,
            timeout=current_app.config["WEBHOOK_TIMEOUT_SECONDS"],
            transport=transport,
        ))

        logs = []
        for (hook_id, url, _secret), result in zip(targets, results):
            if isinstance(result, BaseException):
                current_app.logger.warning(
                    "Webhook %s delivery to %s failed: %s", hook_id, url, result
                )
                status, body, ok = 0, str(result)[:MAX_LOGGED_BODY], False
            else:
                status = result.status_code
                body = result.text[:MAX_LOGGED_BODY]
                ok = result.is_success
                if not ok:
                    current_app.logger.warning(
                        "Webhook %s delivery to %s returned HTTP %s", hook_id, url, status
                    )
            logs.append(WebhookLog(
                webhook_id=hook_id,
                event_type=event_type,
                delivery_id=envelope["id"],
                payload=envelope,
                response_status=status,
                response_body=body,
                success=ok,
            ))

        def _op():
            db.session.add_all(logs)

        run_in_transaction(_op)
        current_app.logger.info(
            "Dispatched %s to %d webhook(s), %d succeeded",
            event_type, len(logs), sum(1 for log in logs if log.success),
        )
        return logs
    except Exception:
        current_app.logger.warning("Webhook dispatch for %s failed", event_type, exc_info=True)
        return []
