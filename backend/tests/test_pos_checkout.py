# Overview: Pytest coverage for counter (POS) checkout.

import pytest

from repairdesk.errors import InsufficientStockError, NotFoundError, ValidationError
from repairdesk.models import InventoryMovement, Payment, SalesOrder
from repairdesk.services import catalog_service, inventory_service, sales_service, webhook_service


@pytest.fixture
def case_(tenant_a, owner_a):
    return catalog_service.create_product(
        tenant_a.id,
        patch={"name": "Funda silicona", "sku": "FUN-01", "sale_price_cents": 2500},
        initial_stock=3,
        actor_id=owner_a.id,
    )


class TestPosCheckout:

    def test_prices_come_from_catalog(self, db_session, tenant_a, owner_a, screen):
        order = sales_service.create_pos_order(
            tenant_a.id,
            items=[{"product_id": screen.id, "quantity": 2, "unit_price_cents": 1, "price": 1}],
            payment_method="card",
            actor_id=owner_a.id,
        )

        assert order.folio == "V-00001"
        assert order.channel == "pos"
        assert order.status == "delivered"
        assert order.payment_status == "paid"
        assert order.paid_at is not None
        assert order.total_amount_cents == 30000
        assert [i.unit_price_cents for i in order.items] == [15000]
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 8

        payment = db_session.query(Payment).filter_by(sales_order_id=order.id).one()
        assert payment.amount_cents == 30000
        assert payment.method == "card"
        assert payment.service_order_id is None

    def test_cart_line_may_use_id(self, db_session, tenant_a, screen):
        order = sales_service.create_pos_order(
            tenant_a.id, items=[{"id": screen.id, "quantity": 1}], payment_method="qr"
        )
        assert order.total_amount_cents == 15000

    def test_cash_change(self, db_session, tenant_a, screen):
        order = sales_service.create_pos_order(
            tenant_a.id,
            items=[{"product_id": screen.id, "quantity": 1}],
            payment_method="cash",
            amount_paid_cents=20000,
        )
        assert order.amount_paid_cents == 20000
        assert order.change_cents == 5000

    def test_cash_short_writes_nothing(self, db_session, tenant_a, screen):
        with pytest.raises(ValidationError):
            sales_service.create_pos_order(
                tenant_a.id,
                items=[{"product_id": screen.id, "quantity": 1}],
                payment_method="cash",
                amount_paid_cents=10000,
            )
        assert db_session.query(SalesOrder).count() == 0
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10

    def test_all_or_nothing_on_short_stock(self, db_session, tenant_a, screen, case_):
        with pytest.raises(InsufficientStockError):
            sales_service.create_pos_order(
                tenant_a.id,
                items=[
                    {"product_id": screen.id, "quantity": 2},
                    {"product_id": case_.id, "quantity": 4},
                ],
                payment_method="card",
            )

        assert db_session.query(SalesOrder).count() == 0
        assert db_session.query(Payment).count() == 0
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10
        assert inventory_service.get_cached_quantity(tenant_a.id, case_.id) == 3
        assert db_session.query(InventoryMovement).filter_by(reference_kind="sales_order").count() == 0

        # The failed checkout did not consume a folio
        order = sales_service.create_pos_order(
            tenant_a.id, items=[{"product_id": case_.id, "quantity": 1}], payment_method="card"
        )
        assert order.folio == "V-00001"

    def test_services_sell_without_stock(self, db_session, tenant_a, labor):
        order = sales_service.create_pos_order(
            tenant_a.id, items=[{"product_id": labor.id, "quantity": 1}], payment_method="transfer"
        )
        assert order.total_amount_cents == 5000
        assert db_session.query(InventoryMovement).filter_by(product_id=labor.id).count() == 0

    def test_unknown_or_foreign_product(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            sales_service.create_pos_order(
                tenant_a.id, items=[{"product_id": 999999, "quantity": 1}], payment_method="card"
            )
        with pytest.raises(NotFoundError):
            sales_service.create_pos_order(
                tenant_a.id, items=[{"product_id": product_b.id, "quantity": 1}], payment_method="card"
            )

    @pytest.mark.parametrize("items, method", [
        ([], "cash"),
        (None, "cash"),
        ([{"product_id": 1, "quantity": 0}], "cash"),
        ([{"product_id": 1, "quantity": 1}], "other"),
    ])
    def test_rejects_bad_input(self, db_session, tenant_a, items, method):
        with pytest.raises(ValidationError):
            sales_service.create_pos_order(tenant_a.id, items=items, payment_method=method)

    def test_sale_completed_webhook(self, db_session, tenant_a, screen, webhook_requests):
        webhook_service.create_webhook(tenant_a.id, url="https://hooks.test/sales", event_type="sale.completed")

        sales_service.create_pos_order(
            tenant_a.id, items=[{"product_id": screen.id, "quantity": 1}], payment_method="card"
        )

        assert len(webhook_requests) == 1
        assert webhook_requests[0].headers["X-Event-Type"] == "sale.completed"
