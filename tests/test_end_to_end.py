from decimal import Decimal

from conftest import auth_headers
from jewellery_store import crud
from jewellery_store.auth import authenticate
from jewellery_store.models import PaymentStatus


def test_register_to_paid_order(client, admin_token, db):
    response = client.post("/api/auth/register", json={"name": "A", "email": "a@x.com", "password": "pw1"})
    assert response.status_code == 201
    user_id = response.json()["id"]

    response = client.post("/api/auth/login", json={"email": "a@x.com", "password": "pw1"})
    token = response.json()["access_token"]
    assert authenticate(token).user_id == user_id
    headers = auth_headers(token)

    response = client.post(
        "/api/admin/products",
        json={"name": "Ring", "price": "100.00", "stock": 5},
        headers=auth_headers(admin_token),
    )
    product_id = response.json()["id"]

    response = client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=headers)
    assert response.status_code == 201

    response = client.post("/api/orders", headers=headers)
    assert response.status_code == 201
    order = response.json()
    assert Decimal(str(order["total_amount"])) == Decimal("200.00")
    assert order["payment_status"] == "pending"

    confirmed, _ = crud.confirm_payment(db, order["id"], PaymentStatus.SUCCEEDED)
    assert confirmed.payment_status == PaymentStatus.SUCCEEDED

    assert client.get(f"/api/products/{product_id}").json()["stock"] == 3
    assert client.get("/api/cart", headers=headers).json()["items"] == []
    assert client.get(f"/api/orders/{order['id']}", headers=headers).json()["payment_status"] == "succeeded"
