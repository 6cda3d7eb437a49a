# Overview: Pytest coverage for catalog, customers, assets and portal links.

import pytest

from repairdesk.errors import ConflictError, NotFoundError, ValidationError
from repairdesk.models import Asset
from repairdesk.services import (
    catalog_service,
    customer_service,
    inventory_service,
    order_service,
    portal_service,
    tenant_service,
)


class TestCatalog:

    def test_services_cannot_take_initial_stock(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                tenant_a.id, patch={"name": "Diagnostico", "type": "service"}, initial_stock=3
            )

    def test_duplicate_sku_conflicts(self, db_session, tenant_a, tenant_b, screen):
        with pytest.raises(ConflictError):
            catalog_service.create_product(tenant_a.id, patch={"name": "Otra pantalla", "sku": "PANT-12"})
        # SKUs are unique per tenant only
        other = catalog_service.create_product(tenant_b.id, patch={"name": "Pantalla", "sku": "PANT-12"})
        assert other.sku == "PANT-12"

    def test_type_is_fixed_once_stock_moved(self, db_session, tenant_a, screen):
        with pytest.raises(ConflictError):
            catalog_service.update_product(tenant_a.id, screen.id, {"type": "service"})

    def test_quantity_is_not_writable(self, db_session, tenant_a, screen):
        catalog_service.update_product(tenant_a.id, screen.id, {"quantity": 500, "name": "Pantalla OLED"})
        product = catalog_service.get_product(tenant_a.id, screen.id)
        assert product.quantity == 10
        assert product.name == "Pantalla OLED"

    def test_products_with_history_cannot_be_deleted(self, db_session, tenant_a, screen, labor):
        with pytest.raises(ConflictError):
            catalog_service.delete_product(tenant_a.id, screen.id)
        catalog_service.delete_product(tenant_a.id, labor.id)
        with pytest.raises(NotFoundError):
            catalog_service.get_product(tenant_a.id, labor.id)

    def test_low_stock(self, db_session, tenant_a, owner_a, screen, labor):
        assert catalog_service.low_stock_products(tenant_a.id) == []
        inventory_service.record_movement(tenant_id=tenant_a.id, product_id=screen.id, type="out", quantity=8)
        assert [p.id for p in catalog_service.low_stock_products(tenant_a.id)] == [screen.id]

    def test_search_and_pagination(self, db_session, tenant_a, screen, labor):
        result = catalog_service.list_products(tenant_a.id, term="pant")
        assert [p["id"] for p in result["items"]] == [screen.id]

        paged = catalog_service.list_products(tenant_a.id, page=1, per_page=1)
        assert paged["count"] == 1
        assert paged["pagination"]["total"] == 2
        assert paged["pagination"]["has_next"] is True

    def test_categories(self, db_session, tenant_a, screen):
        category = catalog_service.create_category(tenant_a.id, name="Pantallas")
        with pytest.raises(ConflictError):
            catalog_service.create_category(tenant_a.id, name="Pantallas")

        catalog_service.update_product(tenant_a.id, screen.id, {"category_id": category.id})
        catalog_service.delete_category(tenant_a.id, category.id)
        assert catalog_service.get_product(tenant_a.id, screen.id).category_id is None

    def test_storefront_lists_public_products_only(self, db_session, tenant_a, screen, labor):
        listing = catalog_service.list_public_products(tenant_a.id)
        assert [p["id"] for p in listing["items"]] == [screen.id]
        assert listing["items"][0]["price_cents"] == 15000
        assert "cost_price_cents" not in listing["items"][0]


class TestCustomersAndAssets:

    def test_identifier_unique_per_customer(self, db_session, tenant_a, customer_a, asset_a):
        with pytest.raises(ConflictError):
            customer_service.create_asset(
                tenant_a.id, customer_a.id,
                {"identifier": "IMEI-356789", "details": {"brand": "Apple", "model": "iPhone 12"}},
            )

    def test_asset_needs_brand_and_model(self, db_session, tenant_a, customer_a):
        with pytest.raises(ValidationError):
            customer_service.create_asset(tenant_a.id, customer_a.id, {"identifier": "X1", "details": {"brand": "LG"}})

    def test_customer_with_orders_cannot_be_deleted(self, db_session, tenant_a, customer_a, asset_a):
        order_service.create_order(
            tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="No carga la bateria"
        )
        with pytest.raises(ConflictError):
            customer_service.delete_customer(tenant_a.id, customer_a.id)
        with pytest.raises(ConflictError):
            customer_service.delete_asset(tenant_a.id, asset_a.id)

    def test_delete_customer_removes_assets(self, db_session, tenant_a, customer_a, asset_a):
        customer_service.delete_customer(tenant_a.id, customer_a.id)
        assert db_session.query(Asset).count() == 0

    def test_search(self, db_session, tenant_a, customer_a):
        customer_service.create_customer(tenant_a.id, {"full_name": "Jorge Ruiz"})
        assert [c.full_name for c in customer_service.list_customers(tenant_a.id, term="lopez")] == ["Maria Lopez"]


class TestPortal:

    def test_link_requires_portal_user(self, db_session, tenant_a, customer_a, owner_a):
        with pytest.raises(ValidationError):
            customer_service.link_portal_user(tenant_a.id, customer_a.id, email=owner_a.email)
        with pytest.raises(NotFoundError):
            customer_service.link_portal_user(tenant_a.id, customer_a.id, email="nadie@mail.test")

    def test_one_link_per_tenant(self, db_session, tenant_a, customer_a, portal_user):
        customer_service.link_portal_user(tenant_a.id, customer_a.id, email=portal_user.email)
        other = customer_service.create_customer(tenant_a.id, {"full_name": "Maria L."})
        with pytest.raises(ConflictError):
            customer_service.link_portal_user(tenant_a.id, other.id, email=portal_user.email)

    def test_portal_sees_orders_across_shops(self, db_session, tenant_a, tenant_b, customer_a, asset_a, portal_user):
        customer_service.link_portal_user(tenant_a.id, customer_a.id, email=portal_user.email)
        other = customer_service.create_customer(tenant_b.id, {"full_name": "Maria Lopez"})
        car = customer_service.create_asset(
            tenant_b.id, other.id, {"identifier": "XYZ-987", "details": {"brand": "VW", "model": "Jetta"}}
        )
        customer_service.link_portal_user(tenant_b.id, other.id, email=portal_user.email)

        order_service.create_order(
            tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="Pantalla rota del telefono"
        )
        order_service.create_order(
            tenant_b.id, customer_id=other.id, asset_id=car.id, description="Servicio de 20,000 km"
        )

        orders = portal_service.list_portal_orders(portal_user.id)
        assert sorted(o["tenant_name"] for o in orders) == ["Taller A", "Taller B"]
        assert len(portal_service.list_portal_assets(portal_user.id)) == 2

    def test_unlinked_user_sees_nothing(self, db_session, tenant_a, customer_a, asset_a):
        stranger = tenant_service.create_user(email="x@mail.test", role="customer")
        order = order_service.create_order(
            tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="Pantalla rota del telefono"
        )
        assert portal_service.list_portal_orders(stranger.id) == []
        with pytest.raises(NotFoundError):
            portal_service.get_portal_order(stranger.id, order.id)

    def test_tracking_exposes_limited_fields(self, db_session, tenant_a, customer_a, asset_a):
        order = order_service.create_order(
            tenant_a.id, customer_id=customer_a.id, asset_id=asset_a.id, description="Pantalla rota del telefono"
        )
        order_service.update_status(tenant_a.id, order.id, "diagnosis")

        info = portal_service.get_tracking_info(order.id)

        assert set(info) == {
            "folio", "status", "tenant_name", "asset_identifier", "asset_brand", "asset_model",
            "created_at", "updated_at", "delivered_at", "timeline",
        }
        assert info["asset_brand"] == "Apple"
        assert [t["status"] for t in info["timeline"]] == ["reception", "diagnosis"]
