"""
Pytest fixtures for stockflow backend tests.

Provides an in-memory database, location-scoped users, products and
bearer-credential headers.
"""

import pytest

from stockflow import create_app
from stockflow.extensions import db
from stockflow.models import Location, Product, User, UserLocationAccess
from stockflow.services import stock_service
from stockflow.services.auth_service import hash_password
from stockflow.services.credential_service import issue_for_principal, principal_for_user


TEST_PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'CREDENTIAL_SIGNING_KEY': 'test-signing-key',
    'CREDENTIAL_TTL': 3600,
    'BCRYPT_ROUNDS': 4,
    'TRANSACTION_RETRY_BASE_BACKOFF': 0.0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(dict(TEST_CONFIG))

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


def _location(db_session, name, type_="Store"):
    location = Location(name=name, type=type_, is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_1(db_session):
    return _location(db_session, "Store L1")


@pytest.fixture(scope='function')
def location_2(db_session):
    return _location(db_session, "Store L2")


@pytest.fixture(scope='function')
def warehouse(db_session):
    return _location(db_session, "Warehouse W", "Warehouse")


def _user(db_session, username, role, locations=()):
    user = User(
        username=username,
        email=f"{username}@stockflow.test",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.flush()
    for location in locations:
        db_session.add(UserLocationAccess(user_id=user.id, location_id=location.id))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session, location_1, warehouse):
    """Manager of L1 and the warehouse."""
    return _user(db_session, "manager", "manager", [location_1, warehouse])


@pytest.fixture(scope='function')
def staff_user(db_session, location_2):
    """Staff member at L2 only."""
    return _user(db_session, "staff", "staff", [location_2])


@pytest.fixture(scope='function')
def admin(admin_user):
    return principal_for_user(admin_user)


@pytest.fixture(scope='function')
def manager(manager_user):
    return principal_for_user(manager_user)


@pytest.fixture(scope='function')
def staff(staff_user):
    return principal_for_user(staff_user)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(issue_for_principal(admin))


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(issue_for_principal(manager))


@pytest.fixture(scope='function')
def staff_headers(staff):
    return auth_headers(issue_for_principal(staff))


def _product(db_session, sku, name, price_cents):
    product = Product(sku=sku, name=name, category_id=1, price_cents=price_cents, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    return _product(db_session, "SKU-001", "Widget", 400)


@pytest.fixture(scope='function')
def product_b(db_session):
    return _product(db_session, "SKU-002", "Gadget", 1250)


@pytest.fixture(scope='function')
def make_row(admin):
    """Factory: stock row for (product, location) holding quantity units."""
    def _make(product, location, quantity, **kwargs):
        return stock_service.create_stock_row(
            product.id, location.id, admin, quantity=quantity, **kwargs
        )
    return _make


def quantity_of(product, location) -> int | None:
    """Current committed quantity, or None when there is no row."""
    from stockflow.models import StockRow

    db.session.expire_all()
    row = db.session.query(StockRow).filter_by(product_id=product.id, location_id=location.id).first()
    return row.quantity if row is not None else None


def fold_events(row_id: int) -> int:
    """Replay a row's audit log from 0."""
    from stockflow.models import StockEvent

    events = db.session.query(StockEvent).filter_by(stock_row_id=row_id).order_by(StockEvent.id).all()
    quantity = 0
    for event in events:
        assert event.new_quantity == quantity + event.adjustment
        quantity = event.new_quantity
    return quantity


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
