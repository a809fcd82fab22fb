"""
Pytest fixtures for back office tests.

Provides the app (in-memory SQLite), a per-test clean database, tenant
and actor fixtures, and a small priced catalog with a 20% Food tax rule.
"""

from datetime import datetime

import pytest

from backoffice import create_app
from backoffice.config import TestConfig
from backoffice.extensions import db
from backoffice.models import Business, CatalogItem, Option, StockItem, StockMovement, TaxRule
from backoffice.permissions import (
    ROLE_EMPLOYEE,
    ROLE_MANAGER,
    ROLE_OWNER,
    ROLE_SUPER_ADMIN,
    ActorContext,
)
from backoffice.services import exchange_rate_service


TAX_FROM = datetime(2000, 1, 1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    exchange_rate_service.clear_cache()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def business(db_session):
    biz = Business(name="Cafe A", country_code="LT", currency="EUR", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def other_business(db_session):
    biz = Business(name="Cafe B", country_code="LT", currency="EUR", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def admin():
    return ActorContext(user_id=1, role=ROLE_SUPER_ADMIN)


@pytest.fixture(scope='function')
def owner(business):
    return ActorContext(user_id=2, role=ROLE_OWNER, business_id=business.id)


@pytest.fixture(scope='function')
def manager(business):
    return ActorContext(user_id=3, role=ROLE_MANAGER, business_id=business.id)


@pytest.fixture(scope='function')
def employee(business):
    return ActorContext(user_id=4, role=ROLE_EMPLOYEE, business_id=business.id)


@pytest.fixture(scope='function')
def outsider(other_business):
    return ActorContext(user_id=9, role=ROLE_MANAGER, business_id=other_business.id)


@pytest.fixture(scope='function')
def food_tax(db_session):
    rule = TaxRule(
        country_code="LT",
        tax_class="Food",
        rate_percent="20",
        valid_from=TAX_FROM,
        is_active=True,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


@pytest.fixture(scope='function')
def espresso(db_session, business, food_tax):
    """Espresso 3.50 (Food) with options Single (+0) and Double (+1.00)."""
    item = CatalogItem(
        business_id=business.id,
        name="Espresso",
        code="ESP",
        item_type="Product",
        base_price="3.50",
        tax_class="Food",
    )
    db_session.add(item)
    db_session.flush()
    db_session.add(Option(catalog_item_id=item.id, name="Single", price_modifier="0"))
    db_session.add(Option(catalog_item_id=item.id, name="Double", price_modifier="1.00"))
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def single(espresso):
    return espresso.options[0]


@pytest.fixture(scope='function')
def croissant(db_session, business, food_tax):
    """Croissant 3.00 (Food), sold without options."""
    item = CatalogItem(
        business_id=business.id,
        name="Croissant",
        code="CRO",
        item_type="Product",
        base_price="3.00",
        tax_class="Food",
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def espresso_stock(db_session, espresso):
    """40 pcs on hand, seeded through an Adjust movement."""
    stock = StockItem(
        catalog_item_id=espresso.id,
        unit="pcs",
        qty_on_hand="40",
        average_unit_cost="0.80",
    )
    db_session.add(stock)
    db_session.flush()
    db_session.add(StockMovement(
        stock_item_id=stock.id,
        movement_type="Adjust",
        delta="40",
        unit_cost_snapshot="0.80",
        notes="Initial stock",
        created_at=TAX_FROM,
    ))
    db_session.commit()
    return stock


def actor_headers(actor: ActorContext) -> dict:
    """Gateway identity headers for the test client."""
    headers = {
        'X-Actor-Id': str(actor.user_id),
        'X-Actor-Role': actor.role,
    }
    if actor.business_id is not None:
        headers['X-Business-Id'] = str(actor.business_id)
    return headers


@pytest.fixture(scope='function')
def headers():
    return actor_headers
