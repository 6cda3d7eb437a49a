# Overview: Pytest coverage for webhook subscriptions and fire-once delivery.

import json

import httpx
import pytest

from repairdesk.errors import NotFoundError, ValidationError
from repairdesk.models import WebhookLog
from repairdesk.services import webhook_service


def _transport(seen, fail_hosts=(), error_hosts=()):
    def handler(request):
        seen.append(request)
        if request.url.host in error_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.host in fail_hosts:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"received": True})
    return httpx.MockTransport(handler)


class TestSubscriptions:

    def test_secret_is_generated(self, db_session, tenant_a):
        hook = webhook_service.create_webhook(tenant_a.id, url="https://hooks.test/a", event_type="order.created")
        assert len(hook.secret) == 48
        assert "secret" not in hook.to_dict()
        assert hook.to_dict(include_secret=True)["secret"] == hook.secret

    @pytest.mark.parametrize("url, event_type", [
        ("ftp://hooks.test", "order.created"),
        ("", "order.created"),
        ("https://hooks.test", "order.exploded"),
    ])
    def test_rejects_bad_subscription(self, db_session, tenant_a, url, event_type):
        with pytest.raises(ValidationError):
            webhook_service.create_webhook(tenant_a.id, url=url, event_type=event_type)

    def test_other_tenant_cannot_read_logs(self, db_session, tenant_a, tenant_b):
        hook = webhook_service.create_webhook(tenant_a.id, url="https://hooks.test/a", event_type="*")
        with pytest.raises(NotFoundError):
            webhook_service.list_logs(tenant_b.id, hook.id)


class TestDispatch:

    def test_parallel_delivery_logs_every_attempt(self, db_session, tenant_a):
        for host in ("one.test", "two.test", "down.test"):
            webhook_service.create_webhook(
                tenant_a.id, url=f"https://{host}/hook", event_type="sale.completed", secret=f"s-{host}"
            )
        seen = []

        logs = webhook_service.dispatch_event(
            tenant_a.id, "sale.completed", {"folio": "V-00001"},
            transport=_transport(seen, fail_hosts=("down.test",)),
        )

        assert len(seen) == 3
        assert len(logs) == 3
        assert sorted(log.success for log in logs) == [False, True, True]
        failed = [log for log in logs if not log.success][0]
        assert failed.response_status == 500
        assert failed.response_body == "boom"
        assert db_session.query(WebhookLog).count() == 3

        delivery_ids = {log.delivery_id for log in logs}
        assert len(delivery_ids) == 1

        request = seen[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Event-Type"] == "sale.completed"
        assert request.headers["X-Webhook-Secret"] == f"s-{request.url.host}"
        body = json.loads(request.content)
        assert body["event"] == "sale.completed"
        assert body["data"] == {"folio": "V-00001"}
        assert body["id"] in delivery_ids
        assert body["timestamp"].endswith("Z")

    def test_connection_error_is_logged_not_raised(self, db_session, tenant_a):
        webhook_service.create_webhook(tenant_a.id, url="https://gone.test/hook", event_type="order.created")
        seen = []

        logs = webhook_service.dispatch_event(
            tenant_a.id, "order.created", {"id": 1}, transport=_transport(seen, error_hosts=("gone.test",))
        )

        assert len(logs) == 1
        assert logs[0].success is False
        assert logs[0].response_status == 0
        assert "connection refused" in logs[0].response_body

    def test_wildcard_and_filters(self, db_session, tenant_a, tenant_b):
        webhook_service.create_webhook(tenant_a.id, url="https://all.test/hook", event_type="*")
        webhook_service.create_webhook(tenant_a.id, url="https://sales.test/hook", event_type="sale.completed")
        paused = webhook_service.create_webhook(tenant_a.id, url="https://paused.test/hook", event_type="*")
        webhook_service.update_webhook(tenant_a.id, paused.id, {"is_active": False})
        webhook_service.create_webhook(tenant_b.id, url="https://other.test/hook", event_type="*")
        seen = []

        webhook_service.dispatch_event(tenant_a.id, "order.delivered", {"id": 1}, transport=_transport(seen))

        assert [r.url.host for r in seen] == ["all.test"]

    def test_no_subscribers_is_a_no_op(self, db_session, tenant_a):
        seen = []
        assert webhook_service.dispatch_event(tenant_a.id, "order.created", {}, transport=_transport(seen)) == []
        assert seen == []
