"""
Pytest fixtures for repairdesk backend tests.

Provides the test app and database, two tenants with staff, a small
catalog, a customer with an asset, and actor-token headers.
"""

import httpx
import pytest

from repairdesk import create_app
from repairdesk.extensions import db
from repairdesk.identity import issue_actor_token
from repairdesk.models import User
from repairdesk.services import catalog_service, customer_service, tenant_service


def _ok_handler(request):
    return httpx.Response(200, json={"ok": True})


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SECRET_KEY': 'test-secret',
        'STORAGE_ROOT': str(tmp_path_factory.mktemp('storage')),
        'WEBHOOK_TRANSPORT': httpx.MockTransport(_ok_handler),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A: an electronics repair shop."""
    return tenant_service.create_tenant(name="Taller A", industry="electronics", timezone="UTC")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B: an automotive workshop."""
    return tenant_service.create_tenant(name="Taller B", industry="automotive", timezone="UTC")


@pytest.fixture(scope='function')
def owner_a(tenant_a):
    return tenant_service.create_user(email="owner@a.test", full_name="Owner A", role="owner", tenant_id=tenant_a.id)


@pytest.fixture(scope='function')
def tech_a(tenant_a):
    return tenant_service.create_user(email="tech@a.test", full_name="Tech A", role="technician", tenant_id=tenant_a.id)


@pytest.fixture(scope='function')
def owner_b(tenant_b):
    return tenant_service.create_user(email="owner@b.test", full_name="Owner B", role="owner", tenant_id=tenant_b.id)


@pytest.fixture(scope='function')
def portal_user(db_session):
    """A portal customer; belongs to no tenant."""
    return tenant_service.create_user(email="maria@mail.test", full_name="Maria", role="customer")


@pytest.fixture(scope='function')
def screen(tenant_a, owner_a):
    """Stock-tracked part with 10 units on hand."""
    return catalog_service.create_product(
        tenant_a.id,
        patch={
            "name": "Pantalla iPhone 12",
            "sku": "PANT-12",
            "type": "product",
            "cost_price_cents": 8000,
            "sale_price_cents": 15000,
            "min_stock": 2,
            "is_public": True,
        },
        initial_stock=10,
        actor_id=owner_a.id,
    )


@pytest.fixture(scope='function')
def labor(tenant_a):
    """Labor line; services never carry stock."""
    return catalog_service.create_product(
        tenant_a.id,
        patch={"name": "Mano de obra", "type": "service", "sale_price_cents": 5000},
    )


@pytest.fixture(scope='function')
def product_b(tenant_b, owner_b):
    return catalog_service.create_product(
        tenant_b.id,
        patch={"name": "Filtro de aceite", "sku": "FIL-01", "sale_price_cents": 2000},
        initial_stock=5,
        actor_id=owner_b.id,
    )


@pytest.fixture(scope='function')
def customer_a(tenant_a):
    return customer_service.create_customer(
        tenant_a.id, {"full_name": "Maria Lopez", "email": "maria@mail.test", "phone": "555-0101"}
    )


@pytest.fixture(scope='function')
def asset_a(tenant_a, customer_a):
    return customer_service.create_asset(
        tenant_a.id,
        customer_a.id,
        {"identifier": "IMEI-356789", "details": {"brand": "Apple", "model": "iPhone 12"}},
    )


@pytest.fixture(scope='function')
def webhook_requests(app):
    """
    Route outbound webhooks through a recording mock transport.

    Returns the list of captured httpx.Request objects.
    """
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    previous = app.config['WEBHOOK_TRANSPORT']
    app.config['WEBHOOK_TRANSPORT'] = httpx.MockTransport(handler)
    yield captured
    app.config['WEBHOOK_TRANSPORT'] = previous


def auth_headers(user: User) -> dict:
    """Helper to create Authorization headers for a user."""
    return {'Authorization': f'Bearer {issue_actor_token(user.id)}'}
