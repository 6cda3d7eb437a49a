# Overview: Pytest coverage for storefront orders and their lifecycle.

import pytest

from repairdesk.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from repairdesk.models import InventoryMovement, Notification, Payment
from repairdesk.services import catalog_service, inventory_service, sales_service, tenant_service


BUYER = {"full_name": "Maria Lopez", "email": "maria@mail.test", "phone": "555-0101", "address": "Av. Juarez 10"}


@pytest.fixture
def store_order(tenant_a, screen, portal_user):
    return sales_service.create_store_order(
        items=[{"product_id": screen.id, "quantity": 2, "unit_price_cents": 1}],
        customer=BUYER,
        payment_method="transfer",
        delivery_method="shipping",
        user_id=portal_user.id,
    )


class TestStoreCheckout:

    def test_pending_order_reserves_stock(self, db_session, tenant_a, screen, store_order):
        assert store_order.tenant_id == tenant_a.id
        assert store_order.channel == "online"
        assert store_order.status == "pending"
        assert store_order.payment_status == "pending"
        assert store_order.total_amount_cents == 30000
        assert store_order.shipping_address["address"] == "Av. Juarez 10"
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 8
        assert db_session.query(Payment).count() == 0

    def test_public_price_wins(self, db_session, tenant_a, screen):
        catalog_service.update_product(tenant_a.id, screen.id, {"public_price_cents": 17000})
        order = sales_service.create_store_order(
            items=[{"product_id": screen.id, "quantity": 1}], customer=BUYER
        )
        assert order.total_amount_cents == 17000

    def test_private_products_are_not_sold(self, db_session, tenant_a, labor):
        with pytest.raises(NotFoundError):
            sales_service.create_store_order(items=[{"product_id": labor.id, "quantity": 1}], customer=BUYER)

    def test_products_from_two_shops_rejected(self, db_session, tenant_b, screen, product_b):
        catalog_service.update_product(tenant_b.id, product_b.id, {"is_public": True})
        with pytest.raises(ValidationError):
            sales_service.create_store_order(
                items=[{"product_id": screen.id, "quantity": 1}, {"product_id": product_b.id, "quantity": 1}],
                customer=BUYER,
            )

    def test_shipping_needs_address(self, db_session, screen):
        with pytest.raises(ValidationError):
            sales_service.create_store_order(
                items=[{"product_id": screen.id, "quantity": 1}],
                customer={"full_name": "Maria Lopez"},
                delivery_method="shipping",
            )


class TestStoreOrderLifecycle:

    def test_cancel_restocks_once(self, db_session, tenant_a, owner_a, screen, store_order):
        sales_service.update_sales_order_status(tenant_a.id, store_order.id, "cancelled", actor_id=owner_a.id)

        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10
        restocks = db_session.query(InventoryMovement).filter_by(reference_kind="sales_order", type="in").all()
        assert len(restocks) == 1
        assert restocks[0].quantity == 2

        with pytest.raises(InvalidTransitionError):
            sales_service.update_sales_order_status(tenant_a.id, store_order.id, "pending")

    def test_paid_order_cannot_be_cancelled(self, db_session, tenant_a, screen, store_order):
        sales_service.mark_sales_order_paid(tenant_a.id, store_order.id)

        with pytest.raises(ConflictError):
            sales_service.update_sales_order_status(tenant_a.id, store_order.id, "cancelled")

        assert sales_service.get_sales_order(tenant_a.id, store_order.id).status == "pending"
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 8
        assert db_session.query(InventoryMovement).filter_by(reference_kind="sales_order", type="in").count() == 0

    def test_shipped_cannot_be_cancelled(self, db_session, tenant_a, store_order):
        sales_service.update_sales_order_status(tenant_a.id, store_order.id, "processing")
        sales_service.update_sales_order_status(tenant_a.id, store_order.id, "shipped")
        with pytest.raises(InvalidTransitionError):
            sales_service.update_sales_order_status(tenant_a.id, store_order.id, "cancelled")

    def test_mark_paid_records_payment_once(self, db_session, tenant_a, owner_a, store_order):
        order = sales_service.mark_sales_order_paid(tenant_a.id, store_order.id, reference="SPEI-123", actor_id=owner_a.id)

        assert order.payment_status == "paid"
        assert order.paid_at is not None
        assert order.payment_reference == "SPEI-123"
        payment = db_session.query(Payment).filter_by(sales_order_id=order.id).one()
        assert payment.method == "transfer"
        assert payment.amount_cents == 30000

        with pytest.raises(ConflictError):
            sales_service.mark_sales_order_paid(tenant_a.id, store_order.id)

    def test_other_tenant_cannot_touch_order(self, db_session, tenant_b, store_order):
        with pytest.raises(NotFoundError):
            sales_service.update_sales_order_status(tenant_b.id, store_order.id, "processing")


class TestConfirmReceived:

    def test_buyer_confirms_and_staff_is_notified(self, db_session, tenant_a, owner_a, tech_a, portal_user, store_order):
        sales_service.update_sales_order_status(tenant_a.id, store_order.id, "processing")
        sales_service.update_sales_order_status(tenant_a.id, store_order.id, "shipped")

        order = sales_service.confirm_order_received(portal_user.id, store_order.id)

        assert order.status == "delivered"
        notified = {n.user_id for n in db_session.query(Notification).filter_by(title="Order received")}
        assert notified == {owner_a.id, tech_a.id}

    def test_only_shipped_orders_can_be_confirmed(self, db_session, portal_user, store_order):
        with pytest.raises(InvalidTransitionError):
            sales_service.confirm_order_received(portal_user.id, store_order.id)

    def test_other_buyer_gets_not_found(self, db_session, tenant_a, store_order):
        stranger = tenant_service.create_user(email="otro@mail.test", role="customer")
        with pytest.raises(NotFoundError):
            sales_service.confirm_order_received(stranger.id, store_order.id)

    def test_purchases_are_scoped_to_buyer(self, db_session, portal_user, store_order):
        purchases = sales_service.list_user_purchases(portal_user.id)
        assert [p.id for p in purchases] == [store_order.id]
