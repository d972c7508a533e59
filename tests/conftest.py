# tests/conftest.py

"""
Shared fixtures for the storefront tests.

Every test function gets its own in-memory SQLite database and upload
directory, so tests never see each other's rows or files.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from storefront.auth import get_password_hash
from storefront.db import Database
from storefront.main import create_app
from storefront.schemas import CategoryCreate, ProductCreate, UserCreate
from storefront.storage import Storage

# Suppress noisy logs from SQLAlchemy/FastAPI during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("storefront").setLevel(logging.WARNING)

ADMIN_PASSWORD = "admin-secret"
CUSTOMER_PASSWORD = "customer-secret"


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def storage(database):
    """A Storage bound to its own session, for tests that skip HTTP."""
    db = database.session()
    try:
        yield Storage(db)
    finally:
        db.close()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app(database, upload_dir):
    return create_app(database, upload_dir=upload_dir)


@pytest.fixture
def client(app):
    """
    Anonymous client. Entering the context runs the app's startup handler.
    """
    with TestClient(app) as test_client:
        yield test_client


def _create_user(database, username, password, is_admin=False, email=None):
    db = database.session()
    try:
        user = Storage(db).create_user(
            UserCreate(
                username=username,
                password=password,
                first_name=username.capitalize(),
                last_name="Tester",
                email=email or f"{username}@example.com",
            ),
            get_password_hash(password),
            is_admin=is_admin,
        )
        return user.id
    finally:
        db.close()


def _logged_in_client(app, username, password):
    # No context manager: only the `client` fixture drives startup/shutdown
    test_client = TestClient(app)
    response = test_client.post("/api/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return test_client


@pytest.fixture
def admin_client(app, database, client):
    _create_user(database, "admin", ADMIN_PASSWORD, is_admin=True)
    return _logged_in_client(app, "admin", ADMIN_PASSWORD)


@pytest.fixture
def customer_id(database):
    return _create_user(database, "maria", CUSTOMER_PASSWORD)


@pytest.fixture
def customer_client(app, client, customer_id):
    return _logged_in_client(app, "maria", CUSTOMER_PASSWORD)


@pytest.fixture
def other_customer_client(app, database, client):
    _create_user(database, "joana", CUSTOMER_PASSWORD)
    return _logged_in_client(app, "joana", CUSTOMER_PASSWORD)


@pytest.fixture
def category_id(database):
    db = database.session()
    try:
        return Storage(db).create_category(CategoryCreate(name="Roupas", description="Peças de vestuário")).id
    finally:
        db.close()


@pytest.fixture
def product_id(database, category_id):
    db = database.session()
    try:
        product = Storage(db).create_product(
            ProductCreate(
                name="Vestido Floral",
                description="Vestido em algodão com estampa floral.",
                price="289.90",
                image_url="https://images.example.com/vestido.jpg",
                category_id=category_id,
            )
        )
        return product.id
    finally:
        db.close()
