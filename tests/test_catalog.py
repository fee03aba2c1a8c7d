from decimal import Decimal

import pytest

from conftest import auth_headers
from jewellery_store.models import Category, Product


def test_create_product_round_trips_exact_values(client, admin_token):
    body = {
        "name": "Sapphire Ring",
        "description": "18k white gold",
        "price": "1249.99",
        "stock": 3,
        "image_url": "https://cdn.example.com/sapphire.jpg",
    }
    response = client.post("/api/admin/products", json=body, headers=auth_headers(admin_token))
    assert response.status_code == 201
    product_id = response.json()["id"]

    response = client.get(f"/api/products/{product_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == body["name"]
    assert data["description"] == body["description"]
    assert Decimal(str(data["price"])) == Decimal("1249.99")
    assert data["stock"] == 3
    assert data["image_url"] == body["image_url"]
    assert data["category_id"] is None


def test_get_missing_product_is_not_found(client):
    response = client.get("/api/products/999")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.parametrize(
    "body",
    [
        {"name": "Ring", "price": "-1.00", "stock": 1},
        {"name": "Ring", "price": "10.00", "stock": -1},
        {"name": "", "price": "10.00", "stock": 1},
        {"price": "10.00", "stock": 1},
    ],
)
def test_create_product_rejects_invalid_fields(client, admin_token, db, body):
    response = client.post("/api/admin/products", json=body, headers=auth_headers(admin_token))
    assert response.status_code == 422
    assert db.query(Product).count() == 0


def test_blank_product_name_is_rejected(client, admin_token, db):
    response = client.post(
        "/api/admin/products",
        json={"name": "   ", "price": "10.00", "stock": 1},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"
    assert db.query(Product).count() == 0


def test_non_admin_cannot_write_catalog(client, user_token, db):
    headers = auth_headers(user_token)
    response = client.post("/api/admin/products", json={"name": "Ring", "price": "1.00", "stock": 1}, headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"

    response = client.post("/api/admin/categories", json={"name": "Rings"}, headers=headers)
    assert response.status_code == 403

    assert db.query(Product).count() == 0
    assert db.query(Category).count() == 0


def test_catalog_writes_require_a_token(client):
    response = client.post("/api/admin/categories", json={"name": "Rings"})
    assert response.status_code == 401


def test_create_category_derives_slug(client, admin_token):
    response = client.post(
        "/api/admin/categories", json={"name": "Gold Necklaces"}, headers=auth_headers(admin_token)
    )
    assert response.status_code == 201
    assert response.json()["slug"] == "gold-necklaces"


def test_duplicate_category_slug_conflicts(client, admin_token):
    headers = auth_headers(admin_token)
    client.post("/api/admin/categories", json={"name": "Rings", "slug": "rings"}, headers=headers)
    response = client.post("/api/admin/categories", json={"name": "Other Rings", "slug": "Rings"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_slug"


def test_product_with_unknown_category_is_rejected(client, admin_token):
    response = client.post(
        "/api/admin/products",
        json={"name": "Ring", "price": "1.00", "stock": 1, "category_id": 42},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == 404


def test_deleting_category_keeps_its_products(client, admin_token, make_product):
    headers = auth_headers(admin_token)
    category = client.post("/api/admin/categories", json={"name": "Rings"}, headers=headers).json()
    product = make_product(category_id=category["id"])

    response = client.delete(f"/api/admin/categories/{category['id']}", headers=headers)
    assert response.status_code == 204

    response = client.get(f"/api/products/{product['id']}")
    assert response.status_code == 200
    assert response.json()["category_id"] is None


def test_list_products_filters_and_paginates(client, admin_token, make_product):
    headers = auth_headers(admin_token)
    rings = client.post("/api/admin/categories", json={"name": "Rings"}, headers=headers).json()
    make_product(name="Gold Ring", category_id=rings["id"])
    make_product(name="Silver Ring", stock=0, category_id=rings["id"])
    make_product(name="Pearl Earrings", description="freshwater pearls")

    names = [p["name"] for p in client.get("/api/products").json()]
    assert names == ["Gold Ring", "Silver Ring", "Pearl Earrings"]

    page = client.get("/api/products", params={"skip": 1, "limit": 1}).json()
    assert [p["name"] for p in page] == ["Silver Ring"]

    by_category = client.get("/api/products", params={"category": "rings"}).json()
    assert {p["name"] for p in by_category} == {"Gold Ring", "Silver Ring"}

    in_stock = client.get("/api/products", params={"category": "rings", "in_stock": "true"}).json()
    assert [p["name"] for p in in_stock] == ["Gold Ring"]

    searched = client.get("/api/products", params={"search": "PEARL"}).json()
    assert [p["name"] for p in searched] == ["Pearl Earrings"]


def test_list_products_rejects_oversized_page(client):
    response = client.get("/api/products", params={"limit": 1000})
    assert response.status_code == 422


def test_admin_updates_and_deletes_product(client, admin_token, make_product):
    headers = auth_headers(admin_token)
    product = make_product()

    response = client.patch(f"/api/admin/products/{product['id']}", json={"price": "80.50", "stock": 9}, headers=headers)
    assert response.status_code == 200
    assert Decimal(str(response.json()["price"])) == Decimal("80.50")
    assert response.json()["stock"] == 9

    response = client.delete(f"/api/admin/products/{product['id']}", headers=headers)
    assert response.status_code == 204
    assert client.get(f"/api/products/{product['id']}").status_code == 404


def test_list_categories_is_public(client, admin_token):
    headers = auth_headers(admin_token)
    client.post("/api/admin/categories", json={"name": "Watches"}, headers=headers)
    client.post("/api/admin/categories", json={"name": "Bracelets"}, headers=headers)
    response = client.get("/api/categories")
    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["Bracelets", "Watches"]
