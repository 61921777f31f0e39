"""
Pytest fixtures for fulfillment backend tests.

Provides test database setup, two tenant merchants with users for every
role, catalog fixtures and a test client.
"""

import pytest
from fulfillment import create_app
from fulfillment.extensions import db
from fulfillment.models import (
    Merchant, Warehouse, Product, SubscriptionPlan, Subscription,
    Service, MerchantServiceSubscription,
)
from fulfillment.roles import (
    PLATFORM_ADMIN, MERCHANT_ADMIN, MERCHANT_STAFF, WAREHOUSE_STAFF, LOGISTICS_PARTNER,
)
from fulfillment.services import auth_service, email_service, order_service
from fulfillment.services.session_service import create_session


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'MAIL_ENABLED': False,
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
def mail_outbox(monkeypatch):
    """Capture outbound email instead of talking to SMTP."""
    sent = []

    def fake_send(to_email, subject, body_html):
        sent.append({"to": to_email, "subject": subject, "html": body_html})
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    return sent


def _user(email, role, merchant_id=None):
    return auth_service.create_user(
        email=email,
        password=PASSWORD,
        role=role,
        merchant_id=merchant_id,
        first_name=role.split("_")[0].title(),
    )


@pytest.fixture(scope='function')
def merchant_a(db_session):
    """First tenant."""
    merchant = Merchant(
        business_name="Acme Stores",
        business_email="ops@acme.test",
        business_phone="+2348000000001",
        onboarding_status="APPROVED",
    )
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def merchant_b(db_session):
    """Second tenant."""
    merchant = Merchant(
        business_name="Beta Goods",
        business_email="ops@beta.test",
        onboarding_status="APPROVED",
    )
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def platform_admin(db_session):
    return _user("admin@sjfs.test", PLATFORM_ADMIN)


@pytest.fixture(scope='function')
def warehouse_staff(db_session):
    return _user("warehouse@sjfs.test", WAREHOUSE_STAFF)


@pytest.fixture(scope='function')
def logistics_partner(db_session):
    return _user("rider@sjfs.test", LOGISTICS_PARTNER)


@pytest.fixture(scope='function')
def merchant_admin(db_session, merchant_a):
    return _user("owner@acme.test", MERCHANT_ADMIN, merchant_a.id)


@pytest.fixture(scope='function')
def merchant_staff(db_session, merchant_a):
    return _user("clerk@acme.test", MERCHANT_STAFF, merchant_a.id)


@pytest.fixture(scope='function')
def merchant_admin_b(db_session, merchant_b):
    return _user("owner@beta.test", MERCHANT_ADMIN, merchant_b.id)


@pytest.fixture(scope='function')
def warehouse(db_session):
    """Platform-owned warehouse."""
    wh = Warehouse(name="Lagos Main", code="LOS-1", city="Lagos")
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def product_a(db_session, merchant_a):
    product = Product(merchant_id=merchant_a.id, sku="ACME-001", name="Blue Kettle", unit_price_cents=5000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, merchant_b):
    product = Product(merchant_id=merchant_b.id, sku="BETA-001", name="Red Mug", unit_price_cents=1200)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def plan(db_session):
    p = SubscriptionPlan(name="Starter", base_price_cents=25000)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def subscription_a(db_session, merchant_a, plan):
    """ACTIVE plan subscription for merchant A."""
    sub = Subscription(merchant_id=merchant_a.id, plan_id=plan.id, status="ACTIVE")
    db_session.add(sub)
    db_session.commit()
    return sub


@pytest.fixture(scope='function')
def api_access_a(db_session, merchant_a):
    """ACTIVE "API Access" service subscription for merchant A."""
    service = Service(name="API Access", price_cents=35000)
    db_session.add(service)
    db_session.flush()
    link = MerchantServiceSubscription(merchant_id=merchant_a.id, service_id=service.id, status="ACTIVE")
    db_session.add(link)
    db_session.commit()
    return link


@pytest.fixture(scope='function')
def order_a(db_session, merchant_admin, product_a):
    """PENDING order for merchant A with two units of product_a."""
    result = order_service.create_order(None, {
        "customerName": "Ada Obi",
        "customerEmail": "ada@example.test",
        "customerPhone": "+2348011111111",
        "shippingAddress": {"line1": "1 Marina", "city": "Lagos"},
        "deliveryFeeCents": 1500,
        "items": [{"productId": product_a.id, "quantity": 2}],
    }, merchant_admin)
    return result.order


def auth_headers_for(user) -> dict:
    """Helper to create Authorization headers for a fresh session."""
    _, token = create_session(user_id=user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Returns a callable: auth_headers(user) -> Authorization headers."""
    return auth_headers_for
