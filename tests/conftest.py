import os

# Must be set before the application modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_dummy"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["ADMIN_NAME"] = "Shop Admin"

import pytest
from fastapi.testclient import TestClient

from jewellery_store.database import SessionLocal, engine
from jewellery_store.main import app
from jewellery_store.models import Base

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client(reset_database):
    # entering the context runs the startup hook, which seeds the admin account
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(reset_database):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def register_and_login(client, email="user@example.com", password="secret-pw", name="Test User"):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


@pytest.fixture
def user_token(client):
    return register_and_login(client)


@pytest.fixture
def admin_token(client):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


@pytest.fixture
def make_product(client, admin_token):
    def _make(name="Ring", price="100.00", stock=5, **extra):
        body = {"name": name, "price": price, "stock": stock, **extra}
        response = client.post("/api/admin/products", json=body, headers=auth_headers(admin_token))
        assert response.status_code == 201, response.text
        return response.json()

    return _make
