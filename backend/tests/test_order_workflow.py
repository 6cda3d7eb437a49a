# Overview: Pytest coverage for the service order workflow.

"""
Service Order Workflow Tests

Covers folio allocation, the transition table (including the rework
edges and the terminal delivered state), parts leaving and returning to
stock through the ledger, price snapshots, payments and the timeline.
"""

import json
from pathlib import Path

import pytest

from repairdesk.extensions import db
from repairdesk.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from repairdesk.models import InventoryMovement, Notification, ServiceOrderEvent, ServiceOrderItem
from repairdesk.services import (
    catalog_service,
    customer_service,
    inventory_service,
    order_service,
    webhook_service,
)


@pytest.fixture
def order(tenant_a, owner_a, customer_a, asset_a):
    return order_service.create_order(
        tenant_a.id,
        customer_id=customer_a.id,
        asset_id=asset_a.id,
        description="Pantalla rota, no enciende la imagen",
        actor_id=owner_a.id,
    )


def _advance(tenant_id, order_id, *statuses):
    for status in statuses:
        order_service.update_status(tenant_id, order_id, status)


class TestCreateOrder:

    def test_starts_in_reception_with_folio_and_event(self, db_session, order):
        assert order.status == "reception"
        assert order.folio == "OS-00001"

        events = db_session.query(ServiceOrderEvent).filter_by(service_order_id=order.id).all()
        assert len(events) == 1
        assert events[0].type == "status_change"
        assert events[0].metadata_json == {"from": None, "to": "reception"}

    def test_folios_are_sequential_per_tenant(self, db_session, tenant_a, tenant_b, order, customer_a, asset_a):
        second = order_service.create_order(
            tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="Bateria se descarga rapido"
        )
        other_customer = customer_service.create_customer(tenant_b.id, {"full_name": "Jorge Ruiz"})
        other_asset = customer_service.create_asset(
            tenant_b.id, other_customer.id, {"identifier": "ABC-123", "details": {"brand": "Nissan", "model": "Versa"}}
        )
        other = order_service.create_order(
            tenant_b.id, customer_id=other_customer.id, asset_id=other_asset.id, description="Ruido en la suspension"
        )

        assert second.folio == "OS-00002"
        assert other.folio == "OS-00001"

    def test_short_description_rejected(self, db_session, tenant_a, customer_a, asset_a):
        with pytest.raises(ValidationError):
            order_service.create_order(tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="rota")

    def test_asset_must_belong_to_customer(self, db_session, tenant_a, asset_a):
        other = customer_service.create_customer(tenant_a.id, {"full_name": "Pedro Paramo"})
        with pytest.raises(ValidationError):
            order_service.create_order(
                tenant_a.id, customer_id=other.id, asset_id=asset_a.id, description="Pantalla rota del equipo"
            )

    def test_other_tenant_customer_is_not_found(self, db_session, tenant_b, customer_a, asset_a):
        with pytest.raises(NotFoundError):
            order_service.create_order(
                tenant_b.id, customer_id=customer_a.id, asset_id=asset_a.id, description="Pantalla rota del equipo"
            )


class TestTransitions:

    def test_happy_path_to_delivered(self, db_session, tenant_a, order):
        _advance(tenant_a.id, order.id, "diagnosis", "approval", "repair", "qa", "ready", "delivered")

        refreshed = order_service.get_order(tenant_a.id, order.id)
        assert refreshed.status == "delivered"
        assert refreshed.delivered_at is not None

        changes = (
            db_session.query(ServiceOrderEvent)
            .filter_by(service_order_id=order.id, type="status_change")
            .order_by(ServiceOrderEvent.id)
            .all()
        )
        assert [e.metadata_json["to"] for e in changes] == [
            "reception", "diagnosis", "approval", "repair", "qa", "ready", "delivered"
        ]
        assert changes[-1].metadata_json["from"] == "ready"

    def test_rework_edges(self, db_session, tenant_a, order):
        _advance(tenant_a.id, order.id, "diagnosis", "approval", "diagnosis", "approval", "repair", "qa", "repair")
        assert order_service.get_order(tenant_a.id, order.id).status == "repair"

    def test_skipping_steps_is_rejected(self, db_session, tenant_a, order):
        with pytest.raises(InvalidTransitionError) as exc:
            order_service.update_status(tenant_a.id, order.id, "ready")
        assert exc.value.details == {"from": "reception", "to": "ready"}
        assert order_service.get_order(tenant_a.id, order.id).status == "reception"

    def test_same_status_is_rejected(self, db_session, tenant_a, order):
        with pytest.raises(InvalidTransitionError):
            order_service.update_status(tenant_a.id, order.id, "reception")

    def test_delivered_is_terminal(self, db_session, tenant_a, order):
        _advance(tenant_a.id, order.id, "diagnosis", "approval", "repair", "qa", "ready", "delivered")
        with pytest.raises(InvalidTransitionError):
            order_service.update_status(tenant_a.id, order.id, "repair")

    def test_unknown_status(self, db_session, tenant_a, order):
        with pytest.raises(ValidationError):
            order_service.update_status(tenant_a.id, order.id, "lost")

    def test_ready_notifies_linked_portal_user(self, db_session, tenant_a, order, customer_a, portal_user):
        customer_service.link_portal_user(tenant_a.id, customer_a.id, email=portal_user.email)
        _advance(tenant_a.id, order.id, "diagnosis", "approval", "repair", "qa", "ready")

        notes = db_session.query(Notification).filter_by(user_id=portal_user.id).all()
        assert len(notes) == 1
        assert order.folio in notes[0].message

    def test_status_change_webhook_payload(self, db_session, tenant_a, owner_a, order, webhook_requests):
        webhook_service.create_webhook(tenant_a.id, url="https://hooks.test/orders", event_type="order.status_change")

        order_service.update_status(tenant_a.id, order.id, "diagnosis", actor_id=owner_a.id)

        assert len(webhook_requests) == 1
        body = json.loads(webhook_requests[0].content)
        assert body["event"] == "order.status_change"
        assert body["data"] == {
            "order_id": order.id,
            "folio": order.folio,
            "previous_status": "reception",
            "new_status": "diagnosis",
            "updated_by": owner_a.id,
        }


class TestItems:

    def test_part_leaves_and_returns_to_stock(self, db_session, tenant_a, owner_a, order, screen):
        item = order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=1, actor_id=owner_a.id)
        item_id = item.id
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 9

        out = db_session.query(InventoryMovement).filter_by(item_id=item_id, type="out").one()
        assert out.reference_kind == "service_order"
        assert out.reference_id == order.id
        assert out.quantity_delta == -1

        order_service.remove_item(tenant_a.id, order.id, item_id, actor_id=owner_a.id)
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10
        assert inventory_service.get_quantity_on_hand(tenant_a.id, screen.id) == 10

        with pytest.raises(NotFoundError):
            order_service.remove_item(tenant_a.id, order.id, item_id, actor_id=owner_a.id)
        assert db_session.query(InventoryMovement).filter_by(item_id=item_id, type="in").count() == 1
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10

    def test_insufficient_stock_writes_no_item(self, db_session, tenant_a, order, screen):
        with pytest.raises(InsufficientStockError):
            order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=11)

        assert db_session.query(ServiceOrderItem).filter_by(service_order_id=order.id).count() == 0
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10

    def test_services_do_not_move_stock(self, db_session, tenant_a, order, labor):
        order_service.add_item(tenant_a.id, order.id, product_id=labor.id, quantity=2)
        assert db_session.query(InventoryMovement).filter_by(product_id=labor.id).count() == 0

    def test_service_line_never_returns_stock(self, db_session, tenant_a, order, labor):
        item = order_service.add_item(tenant_a.id, order.id, product_id=labor.id, quantity=3)
        item_id = item.id

        # A referenced service can't become stock-tracked
        with pytest.raises(ConflictError):
            catalog_service.update_product(tenant_a.id, labor.id, {"type": "product"})

        order_service.remove_item(tenant_a.id, order.id, item_id)
        assert catalog_service.get_product(tenant_a.id, labor.id).quantity == 0
        assert db_session.query(InventoryMovement).filter_by(product_id=labor.id).count() == 0

    def test_restock_follows_the_recorded_out(self, db_session, tenant_a, order, screen, labor):
        part = order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=2)
        service = order_service.add_item(tenant_a.id, order.id, product_id=labor.id, quantity=1)

        reversed_in = inventory_service.reverse_line_out(
            tenant_id=tenant_a.id, reference_kind="service_order", reference_id=order.id, item_id=part.id
        )
        assert reversed_in.type == "in"
        assert reversed_in.quantity == 2
        assert reversed_in.product_id == screen.id

        # Already reversed, or never took stock out
        assert inventory_service.reverse_line_out(
            tenant_id=tenant_a.id, reference_kind="service_order", reference_id=order.id, item_id=part.id
        ) is None
        assert inventory_service.reverse_line_out(
            tenant_id=tenant_a.id, reference_kind="service_order", reference_id=order.id, item_id=service.id
        ) is None
        db_session.commit()
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10

    def test_price_is_snapshotted(self, db_session, tenant_a, order, screen):
        item = order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=2)
        catalog_service.update_product(tenant_a.id, screen.id, {"sale_price_cents": 99000})

        items = order_service.list_items(tenant_a.id, order.id)
        assert items[0].id == item.id
        assert items[0].unit_price_cents == 15000

    def test_quoted_price_overrides_catalog(self, db_session, tenant_a, order, labor):
        item = order_service.add_item(tenant_a.id, order.id, product_id=labor.id, quantity=1, unit_price_cents=7500)
        assert item.unit_price_cents == 7500

    def test_delivered_order_items_are_frozen(self, db_session, tenant_a, order, screen):
        item = order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=1)
        _advance(tenant_a.id, order.id, "diagnosis", "approval", "repair", "qa", "ready", "delivered")

        with pytest.raises(ConflictError):
            order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=1)
        with pytest.raises(ConflictError):
            order_service.remove_item(tenant_a.id, order.id, item.id)
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 9

    def test_other_tenant_product_is_not_found(self, db_session, tenant_a, order, product_b):
        with pytest.raises(NotFoundError):
            order_service.add_item(tenant_a.id, order.id, product_id=product_b.id, quantity=1)


class TestPaymentsAndTotals:

    def test_partial_payments_and_balance(self, db_session, tenant_a, order, screen, labor):
        order_service.add_item(tenant_a.id, order.id, product_id=screen.id, quantity=1)
        order_service.add_item(tenant_a.id, order.id, product_id=labor.id, quantity=1)
        order_service.register_payment(tenant_a.id, order.id, amount_cents=5000, method="cash")
        order_service.register_payment(tenant_a.id, order.id, amount_cents=3000, method="card")

        totals = order_service.order_totals(tenant_a.id, order.id)
        assert totals == {"items_total_cents": 20000, "paid_cents": 8000, "balance_cents": 12000}
        assert order_service.get_order(tenant_a.id, order.id).status == "reception"

    @pytest.mark.parametrize("amount, method", [(0, "cash"), (-100, "cash"), (100, "bitcoin"), (100, "qr")])
    def test_rejects_bad_payment(self, db_session, tenant_a, order, amount, method):
        with pytest.raises(ValidationError):
            order_service.register_payment(tenant_a.id, order.id, amount_cents=amount, method=method)

    def test_order_with_payments_cannot_be_deleted(self, db_session, tenant_a, order):
        order_service.register_payment(tenant_a.id, order.id, amount_cents=1000, method="cash")
        with pytest.raises(ConflictError):
            order_service.delete_order(tenant_a.id, order.id)

    def test_delete_restocks_parts(self, db_session, tenant_a, order, screen):
        order_id = order.id
        order_service.add_item(tenant_a.id, order_id, product_id=screen.id, quantity=3)
        order_service.delete_order(tenant_a.id, order_id)

        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10
        with pytest.raises(NotFoundError):
            order_service.get_order(tenant_a.id, order_id)


class TestTimeline:

    def test_comment_and_evidence(self, app, db_session, tenant_a, owner_a, order):
        order_service.add_comment(tenant_a.id, order.id, "Cliente autoriza el cambio", actor_id=owner_a.id)
        event = order_service.upload_evidence(
            tenant_a.id, order.id,
            filename="foto pantalla.jpg", data=b"\xff\xd8jpeg", content_type="image/jpeg", actor_id=owner_a.id,
        )

        meta = event.metadata_json
        assert meta["file_name"] == "foto pantalla.jpg"
        assert meta["file_size"] == 6
        assert meta["mime_type"] == "image/jpeg"
        assert meta["file_path"].startswith(f"{tenant_a.id}/{order.id}/")
        assert meta["file_path"].endswith("-foto_pantalla.jpg")

        events = order_service.list_events(tenant_a.id, order.id)
        assert [e["type"] for e in events] == ["status_change", "comment", "evidence"]
        assert events[-1]["signed_url"].startswith("/api/storage/signed/")
        assert "signed_url" not in events[1]

    def test_failed_commit_leaves_no_evidence_file(self, app, db_session, tenant_a, order, monkeypatch):
        evidence_dir = Path(app.config["STORAGE_ROOT"]) / app.config["EVIDENCE_BUCKET"] / str(tenant_a.id) / str(order.id)

        def fail_commit():
            raise RuntimeError("database went away")

        with monkeypatch.context() as m:
            m.setattr(db.session, "commit", fail_commit)
            with pytest.raises(RuntimeError):
                order_service.upload_evidence(
                    tenant_a.id, order.id, filename="antes.jpg", data=b"jpeg-bytes", content_type="image/jpeg"
                )

        assert not evidence_dir.exists() or list(evidence_dir.iterdir()) == []
        assert db_session.query(ServiceOrderEvent).filter_by(service_order_id=order.id, type="evidence").count() == 0

    def test_empty_comment_rejected(self, db_session, tenant_a, order):
        with pytest.raises(ValidationError):
            order_service.add_comment(tenant_a.id, order.id, "   ")
