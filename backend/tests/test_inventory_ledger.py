# Overview: Pytest coverage for the stock ledger and its cached counter.

"""
Inventory Ledger Tests

The ledger is the source of truth; Product.quantity is a cache that moves
in the same transaction as every movement. These tests check the signed
deltas, the negative-stock guard, the service/no-stock rule and the
reconciliation report.
"""

import pytest

from repairdesk.errors import InsufficientStockError, NotFoundError, ValidationError
from repairdesk.extensions import db
from repairdesk.models import InventoryMovement, Product
from repairdesk.services import inventory_service


class TestRecordMovement:

    def test_initial_stock_is_an_adjustment(self, db_session, tenant_a, screen):
        movements = db_session.query(InventoryMovement).filter_by(product_id=screen.id).all()
        assert len(movements) == 1
        assert movements[0].type == "adjustment"
        assert movements[0].quantity_delta == 10
        assert movements[0].notes == "Initial stock"
        assert inventory_service.get_quantity_on_hand(tenant_a.id, screen.id) == 10

    def test_in_and_out_move_cache_and_ledger_together(self, db_session, tenant_a, owner_a, screen):
        inventory_service.record_movement(
            tenant_id=tenant_a.id, product_id=screen.id, type="in", quantity=5, actor_id=owner_a.id
        )
        out = inventory_service.record_movement(
            tenant_id=tenant_a.id, product_id=screen.id, type="out", quantity=3, actor_id=owner_a.id
        )

        assert out.quantity == 3
        assert out.quantity_delta == -3
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 12
        assert inventory_service.get_quantity_on_hand(tenant_a.id, screen.id) == 12

    def test_movement_is_committed_on_return(self, db_session, tenant_a, screen):
        inventory_service.record_movement(tenant_id=tenant_a.id, product_id=screen.id, type="in", quantity=2)
        db_session.rollback()

        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 12
        assert db_session.query(InventoryMovement).filter_by(product_id=screen.id, type="in").count() == 1

    def test_negative_adjustment(self, db_session, tenant_a, screen):
        inventory_service.record_movement(
            tenant_id=tenant_a.id, product_id=screen.id, type="adjustment", quantity=-4, notes="Broken in transit"
        )
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 6

    @pytest.mark.parametrize("type_, quantity", [("in", 0), ("out", -1), ("adjustment", 0), ("loss", 1)])
    def test_rejects_bad_type_or_quantity(self, db_session, tenant_a, screen, type_, quantity):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(
                tenant_id=tenant_a.id, product_id=screen.id, type=type_, quantity=quantity
            )
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10

    def test_insufficient_stock_writes_nothing(self, db_session, tenant_a, screen):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.record_movement(
                tenant_id=tenant_a.id, product_id=screen.id, type="out", quantity=11
            )

        assert exc.value.details["available"] == 10
        assert exc.value.details["requested"] == 11
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == 10
        assert db_session.query(InventoryMovement).filter_by(product_id=screen.id).count() == 1

    def test_negative_stock_allowed_by_config(self, app, db_session, tenant_a, screen):
        app.config["ALLOW_NEGATIVE_STOCK"] = True
        try:
            inventory_service.record_movement(
                tenant_id=tenant_a.id, product_id=screen.id, type="out", quantity=12
            )
        finally:
            app.config["ALLOW_NEGATIVE_STOCK"] = False
        assert inventory_service.get_cached_quantity(tenant_a.id, screen.id) == -2
        assert inventory_service.get_quantity_on_hand(tenant_a.id, screen.id) == -2

    def test_services_have_no_stock(self, db_session, tenant_a, labor):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(
                tenant_id=tenant_a.id, product_id=labor.id, type="in", quantity=1
            )
        assert db_session.query(InventoryMovement).filter_by(product_id=labor.id).count() == 0

    def test_other_tenant_product_is_not_found(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            inventory_service.record_movement(
                tenant_id=tenant_a.id, product_id=product_b.id, type="in", quantity=1
            )


class TestMovementHistory:

    def test_newest_first_with_actor(self, db_session, tenant_a, owner_a, screen):
        inventory_service.record_movement(
            tenant_id=tenant_a.id, product_id=screen.id, type="in", quantity=2, actor_id=owner_a.id
        )
        rows = inventory_service.list_movements(tenant_a.id, screen.id)

        assert [r.type for r in rows][0] == "in"
        assert rows[0].to_dict()["created_by_name"] == "Owner A"


class TestReconcile:

    def test_clean_ledger_has_no_drift(self, db_session, tenant_a, screen):
        assert inventory_service.reconcile_stock(tenant_a.id) == []

    def test_reports_and_fixes_drift(self, db_session, tenant_a, screen):
        # Simulate a write that bypassed the ledger
        db_session.query(Product).filter_by(id=screen.id).update({Product.quantity: 7})
        db_session.commit()

        drift = inventory_service.reconcile_stock(tenant_a.id)
        assert drift == [{
            "product_id": screen.id,
            "tenant_id": tenant_a.id,
            "name": "Pantalla iPhone 12",
            "cached": 7,
            "ledger": 10,
            "difference": -3,
        }]
        assert db.session.get(Product, screen.id).quantity == 7

        inventory_service.reconcile_stock(tenant_a.id, fix=True)
        db_session.expire_all()
        assert db.session.get(Product, screen.id).quantity == 10
        assert inventory_service.reconcile_stock(tenant_a.id) == []
