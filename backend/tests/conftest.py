"""
Pytest fixtures for KONTA backend tests.

Provides an in-memory database, a test client, and factories for the
parties and products most tests need. Fixture data is committed before
the code under test runs: write operations open their own transaction.
"""

import pytest

from konta import create_app
from konta.extensions import db
from konta.models import Customer, Supplier, User
from konta.models.users import ROLE_ADMIN, ROLE_SELLER
from konta.services import products_service, sales_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'COMPANY_NIT': '900123456',
        'DIAN_TECHNICAL_KEY': 'test-technical-key',
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
    """Empty every table before the test; the schema is kept."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def _user(email, full_name, role):
    user = User(email=email, full_name=full_name, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _user("admin@konta.test", "Admin Principal", ROLE_ADMIN)


@pytest.fixture(scope='function')
def seller(db_session):
    return _user("ana@konta.test", "Ana Ruiz", ROLE_SELLER)


@pytest.fixture(scope='function')
def other_seller(db_session):
    return _user("luis@konta.test", "Luis Gomez", ROLE_SELLER)


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Tienda La Esquina", nit_cedula="1020304050", email="compras@esquina.test")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Distribuidora Andina", nit="800111222")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def make_product(db_session, admin):
    """Factory: tax-inclusive price at 19% IVA unless told otherwise."""
    counter = {"n": 0}

    def _make(price_cents=11900, stock=10, tax_rate_bps=1900, name=None, **extra):
        counter["n"] += 1
        patch = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": name or f"Producto {counter['n']}",
            "price_cents": price_cents,
            "tax_rate_bps": tax_rate_bps,
            "stock": stock,
            **extra,
        }
        return products_service.create_product(patch=patch, user_id=admin.id)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def make_invoice(customer, seller):
    """Factory: commit a POS sale of (product, quantity[, discount %]) tuples."""
    def _make(*lines, status="paid", seller_user=None):
        items = []
        for line in lines:
            p, qty = line[0], line[1]
            item = {"product_id": p.id, "quantity": qty}
            if len(line) > 2:
                item["discount_percentage"] = line[2]
            items.append(item)
        sold_by = seller_user or seller
        return sales_service.commit_sale(
            customer_id=customer.id,
            seller_id=sold_by.id,
            items=items,
            created_by_user_id=sold_by.id,
            status=status,
        )

    return _make


def user_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}
