"""
Pytest fixtures for Bodega backend tests.

Provides the application (both stores on in-memory SQLite), a per-test wipe of
both stores, SessionContext factories for service tests, and session headers
for API tests.
"""

import pytest

from bodega import create_app
from bodega.extensions import db
from bodega.models import Document, LocalEntry
from bodega.models.records import AppConfig, CATEGORIES, PRODUCTS, CLIENTS, Category, Client, Product
from bodega.services.notification_service import Notifier
from bodega.services.session_service import (
    EMPLOYEE,
    OWNER,
    SESSIONS_KEY,
    Identity,
    SessionContext,
)
from bodega.services.settings_service import ensure_defaults, load_config
from bodega.stores import get_stores


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_BINDS': {'local': 'sqlite:///:memory:'},
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BODEGA_TRANSACTION_BACKOFF': 0.0,
        'LOG_LEVEL': 'WARNING',
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
    """Empty both stores for each test."""
    app.extensions[SESSIONS_KEY].close_all()
    db.session.rollback()
    db.session.query(Document).delete()
    db.session.query(LocalEntry).delete()
    db.session.commit()
    get_stores().local.forget()

    yield db.session

    app.extensions[SESSIONS_KEY].close_all()
    db.session.rollback()


@pytest.fixture(scope='function')
def stores(db_session):
    return get_stores()


def make_ctx(store, *, role=OWNER, demo=False, config=None) -> SessionContext:
    """SessionContext over a seeded store, as a started DataSession would hand out."""
    ensure_defaults(store)
    if config is not None:
        store.set("config", "main", config.to_dict())
    return SessionContext(
        identity=Identity(uid=f"{'demo-' if demo else ''}{role}-1", name=role.title(), role=role, is_demo=demo),
        store=store,
        config=load_config(store),
        notifier=Notifier(),
    )


@pytest.fixture(params=["cloud", "demo"])
def ctx(request, stores):
    """Owner context; every test using it runs against both stores."""
    demo = request.param == "demo"
    return make_ctx(stores.for_mode(demo), demo=demo)


@pytest.fixture
def cloud_ctx(stores):
    return make_ctx(stores.remote)


@pytest.fixture
def demo_ctx(stores):
    return make_ctx(stores.local, demo=True)


def seed_product(store, *, code="P-001", name="Arroz", stock=10, min_stock=5,
                 sale_price="1.20", cost_price="0.80", category_id="", status="active") -> str:
    product = Product(
        id=store.new_id(), code=code, name=name, category_id=category_id,
        cost_price=cost_price, sale_price=sale_price, stock=stock,
        min_stock=min_stock, status=status,
    )
    store.set(PRODUCTS, product.id, product.to_dict())
    return product.id


def seed_client(store, *, name="Maria", debt="0", credit_limit="50") -> str:
    client = Client(id=store.new_id(), name=name, debt=debt, credit_limit=credit_limit)
    store.set(CLIENTS, client.id, client.to_dict())
    return client.id


def seed_category(store, *, name="Granos", color="#3b82f6") -> str:
    category = Category(id=store.new_id(), name=name, color=color)
    store.set(CATEGORIES, category.id, category.to_dict())
    return category.id


def strict_stock_config() -> AppConfig:
    config = AppConfig()
    config.enable_negative_stock = False
    return config


def open_session(client, *, uid, role=OWNER, demo=False) -> str:
    resp = client.post('/api/session', json={'uid': uid, 'name': uid, 'role': role, 'demo': demo})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def owner_headers(client, db_session):
    return auth_headers(open_session(client, uid='owner-1', role=OWNER))


@pytest.fixture
def employee_headers(client, db_session):
    return auth_headers(open_session(client, uid='employee-1', role=EMPLOYEE))


@pytest.fixture
def demo_headers(client, db_session):
    return auth_headers(open_session(client, uid='demo-owner', role=OWNER, demo=True))
