# tests/test_main.py

"""
Integration tests for the storefront HTTP API.
These tests drive the FastAPI application through TestClient against a
fresh in-memory database per test.
"""

from fastapi.testclient import TestClient

PRODUCT = {
    "name": "Bolsa Bordada",
    "description": "Bolsa artesanal com bordado manual.",
    "price": 159.90,
    "imageUrl": "https://images.example.com/bolsa.jpg",
}


def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the Storefront API!"}


def test_health_check(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "storefront"}


# --- Products ---


def test_create_product_success(admin_client: TestClient, category_id: int):
    response = admin_client.post("/api/admin/products", json={**PRODUCT, "categoryId": category_id})

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == PRODUCT["name"]
    assert data["description"] == PRODUCT["description"]
    assert float(data["price"]) == 159.90
    assert data["imageUrl"] == PRODUCT["imageUrl"]
    assert data["categoryId"] == category_id
    assert data["inStock"] is True
    assert isinstance(data["id"], int)
    assert data["createdAt"]
    assert data["category"]["name"] == "Roupas"


def test_create_product_with_comma_price(admin_client: TestClient, category_id: int):
    response = admin_client.post(
        "/api/admin/products", json={**PRODUCT, "price": "150,00", "categoryId": category_id}
    )
    assert response.status_code == 201
    assert float(response.json()["price"]) == 150.00

    fetched = admin_client.get(f"/api/products/{response.json()['id']}")
    assert float(fetched.json()["price"]) == 150.00


def test_create_product_validation_errors(admin_client: TestClient, category_id: int):
    response = admin_client.post(
        "/api/admin/products",
        json={"name": "ab", "description": "short", "price": "-3", "imageUrl": "not a url", "categoryId": category_id},
    )
    assert response.status_code == 400
    fields = {err["field"] for err in response.json()["errors"]}
    assert {"name", "description", "price", "imageUrl"} <= fields
    assert admin_client.get("/api/products").json() == []


def test_create_product_huge_price(admin_client: TestClient, category_id: int):
    response = admin_client.post("/api/admin/products", json={**PRODUCT, "price": "1e1000", "categoryId": category_id})
    assert response.status_code == 400
    assert "price" in [e["field"] for e in response.json()["errors"]]


def test_create_product_missing_field(admin_client: TestClient, category_id: int):
    body = {k: v for k, v in PRODUCT.items() if k != "name"}
    response = admin_client.post("/api/admin/products", json={**body, "categoryId": category_id})
    assert response.status_code == 400
    assert any(err["field"] == "name" for err in response.json()["errors"])


def test_create_product_unknown_category(admin_client: TestClient):
    response = admin_client.post("/api/admin/products", json={**PRODUCT, "categoryId": 999})
    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "categoryId", "message": "Category does not exist"}]


def test_list_products_filters_and_order(admin_client: TestClient, client: TestClient, category_id: int):
    other = admin_client.post("/api/admin/categories", json={"name": "Decoração"}).json()["id"]
    admin_client.post("/api/admin/products", json={**PRODUCT, "name": "Toalha Bordada", "categoryId": other})
    admin_client.post("/api/admin/products", json={**PRODUCT, "name": "Almofada Floral", "description": "Almofada com bordado floral.", "categoryId": other})
    admin_client.post("/api/admin/products", json={**PRODUCT, "name": "Saia Midi", "description": "Saia leve e confortável.", "categoryId": category_id})

    names = [p["name"] for p in client.get("/api/products").json()]
    assert names == ["Almofada Floral", "Saia Midi", "Toalha Bordada"]

    in_category = client.get(f"/api/products?categoryId={other}").json()
    assert [p["name"] for p in in_category] == ["Almofada Floral", "Toalha Bordada"]

    # Search hits the description too and ignores case
    found = client.get("/api/products", params={"q": "BORDADO"}).json()
    assert [p["name"] for p in found] == ["Almofada Floral", "Toalha Bordada"]

    both = client.get("/api/products", params={"q": "bordado", "categoryId": category_id}).json()
    assert both == []


def test_get_product_not_found(client: TestClient):
    response = client.get("/api/products/999999")
    assert response.status_code == 404
    assert response.json()["detail"] == "Product not found"


def test_update_product_partial(admin_client: TestClient, product_id: int):
    response = admin_client.put(f"/api/admin/products/{product_id}", json={"price": "199,90", "inStock": False})
    assert response.status_code == 200
    data = response.json()
    assert float(data["price"]) == 199.90
    assert data["inStock"] is False
    assert data["name"] == "Vestido Floral"


def test_update_product_rejects_null(admin_client: TestClient, product_id: int):
    response = admin_client.put(f"/api/admin/products/{product_id}", json={"name": None})
    assert response.status_code == 400


def test_update_product_not_found(admin_client: TestClient):
    response = admin_client.put("/api/admin/products/999999", json={"name": "Non Existent"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Product not found"


def test_update_missing_product_with_unknown_category(admin_client: TestClient):
    response = admin_client.put("/api/admin/products/999999", json={"categoryId": 999})
    assert response.status_code == 404
    assert response.json()["detail"] == "Product not found"


def test_delete_product(admin_client: TestClient, client: TestClient, product_id: int):
    response = admin_client.delete(f"/api/admin/products/{product_id}")
    assert response.status_code == 204
    assert client.get(f"/api/products/{product_id}").status_code == 404
    assert admin_client.delete(f"/api/admin/products/{product_id}").status_code == 404


def test_delete_ordered_product_conflicts(admin_client: TestClient, customer_client: TestClient, product_id: int):
    customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 1}]})
    response = admin_client.delete(f"/api/admin/products/{product_id}")
    assert response.status_code == 409
    assert admin_client.get(f"/api/products/{product_id}").status_code == 200


# --- Authorization tiers ---


def test_admin_routes_require_login(client: TestClient, product_id: int):
    response = client.put(f"/api/admin/products/{product_id}", json={"name": "Hacked name"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_customer_cannot_mutate_products(customer_client: TestClient, client: TestClient, product_id: int):
    response = customer_client.put(f"/api/admin/products/{product_id}", json={"name": "Hacked name"})
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"
    assert client.get(f"/api/products/{product_id}").json()["name"] == "Vestido Floral"


def test_authorization_checked_before_validation(customer_client: TestClient):
    response = customer_client.post("/api/admin/products", json={"name": "x"})
    assert response.status_code == 403


# --- Categories ---


def test_category_crud(admin_client: TestClient, client: TestClient):
    created = admin_client.post("/api/admin/categories", json={"name": "Acessórios", "description": "Bolsas"})
    assert created.status_code == 201
    category_id = created.json()["id"]

    assert client.get(f"/api/categories/{category_id}").json()["name"] == "Acessórios"

    updated = admin_client.put(f"/api/admin/categories/{category_id}", json={"description": None})
    assert updated.status_code == 200
    assert updated.json()["description"] is None

    assert admin_client.delete(f"/api/admin/categories/{category_id}").status_code == 204
    assert client.get(f"/api/categories/{category_id}").status_code == 404


def test_categories_listed_by_name(admin_client: TestClient, client: TestClient):
    for name in ("Roupas", "Acessórios", "Decoração"):
        admin_client.post("/api/admin/categories", json={"name": name})
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Acessórios", "Decoração", "Roupas"]


def test_duplicate_category_name(admin_client: TestClient, category_id: int):
    response = admin_client.post("/api/admin/categories", json={"name": "Roupas"})
    assert response.status_code == 409


def test_delete_category_in_use(admin_client: TestClient, category_id: int, product_id: int):
    response = admin_client.delete(f"/api/admin/categories/{category_id}")
    assert response.status_code == 409
    assert admin_client.get(f"/api/categories/{category_id}").status_code == 200


def test_category_not_found(admin_client: TestClient):
    assert admin_client.put("/api/admin/categories/999", json={"name": "Nada aqui"}).status_code == 404
    assert admin_client.delete("/api/admin/categories/999").status_code == 404


# --- Messages ---


def test_submit_message(client: TestClient):
    response = client.post(
        "/api/messages",
        json={
            "name": "Ana",
            "email": "ana@x.com",
            "subject": "Orçamento",
            "message": "Gostaria de saber o preço",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["read"] is False
    assert isinstance(data["id"], int)
    assert data["createdAt"]


def test_submit_message_invalid_email(client: TestClient):
    response = client.post(
        "/api/messages",
        json={"name": "Ana", "email": "not-an-email", "subject": "Oi", "message": "curta"},
    )
    assert response.status_code == 400
    fields = {err["field"] for err in response.json()["errors"]}
    assert fields == {"email", "subject", "message"}


def test_admin_messages(admin_client: TestClient, client: TestClient):
    for subject in ("Primeira", "Segunda"):
        client.post(
            "/api/messages",
            json={"name": "Ana", "email": "ana@x.com", "subject": subject, "message": "Mensagem de teste longa"},
        )
    messages = admin_client.get("/api/admin/messages").json()
    assert [m["subject"] for m in messages] == ["Segunda", "Primeira"]

    read = admin_client.put(f"/api/admin/messages/{messages[0]['id']}/read")
    assert read.status_code == 200
    assert read.json()["read"] is True

    unread = admin_client.get("/api/admin/messages?unread=true").json()
    assert [m["subject"] for m in unread] == ["Primeira"]

    assert admin_client.put("/api/admin/messages/999/read").status_code == 404


# --- Service requests ---

SERVICE_REQUEST = {"serviceType": "Ajuste de roupa", "description": "Preciso ajustar a barra de uma calça."}


def test_service_requests_require_login(client: TestClient):
    assert client.get("/api/service-requests").status_code == 401
    assert client.post("/api/service-requests", json=SERVICE_REQUEST).status_code == 401


def test_create_service_request(customer_client: TestClient, customer_id: int):
    response = customer_client.post("/api/service-requests", json=SERVICE_REQUEST)
    assert response.status_code == 201
    data = response.json()
    assert data["userId"] == customer_id
    assert data["status"] == "pending"
    assert data["createdAt"] == data["updatedAt"]


def test_service_request_listing_by_role(
    admin_client: TestClient, customer_client: TestClient, other_customer_client: TestClient
):
    customer_client.post("/api/service-requests", json=SERVICE_REQUEST)
    other_customer_client.post(
        "/api/service-requests", json={"serviceType": "Bordado", "description": "Bordar um nome em uma toalha."}
    )

    own = customer_client.get("/api/service-requests").json()
    assert [r["serviceType"] for r in own] == ["Ajuste de roupa"]
    assert "user" not in own[0]

    everything = admin_client.get("/api/service-requests").json()
    assert [r["serviceType"] for r in everything] == ["Bordado", "Ajuste de roupa"]
    assert {r["user"]["username"] for r in everything} == {"maria", "joana"}
    assert all("password" not in r["user"] for r in everything)


def test_update_service_request_status(admin_client: TestClient, customer_client: TestClient):
    created = customer_client.post("/api/service-requests", json=SERVICE_REQUEST).json()

    response = admin_client.put(f"/api/admin/service-requests/{created['id']}/status", json={"status": "in_progress"})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["updatedAt"] > created["updatedAt"]

    invalid = admin_client.put(f"/api/admin/service-requests/{created['id']}/status", json={"status": "lost"})
    assert invalid.status_code == 400

    missing = admin_client.put("/api/admin/service-requests/999/status", json={"status": "completed"})
    assert missing.status_code == 404


# --- Testimonials ---


def test_testimonial_approval_flow(admin_client: TestClient, customer_client: TestClient, client: TestClient):
    first = customer_client.post("/api/testimonials", json={"text": "Trabalho impecável, recomendo!", "rating": 5})
    assert first.status_code == 201
    assert first.json()["approved"] is False
    second = customer_client.post("/api/testimonials", json={"text": "Entrega rápida e peça linda.", "rating": 4})

    assert client.get("/api/testimonials").json() == []
    assert len(admin_client.get("/api/admin/testimonials").json()) == 2

    approved = admin_client.put(f"/api/admin/testimonials/{first.json()['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["approved"] is True

    public = client.get("/api/testimonials").json()
    assert [t["id"] for t in public] == [first.json()["id"]]
    assert public[0]["user"]["username"] == "maria"

    others = [t for t in admin_client.get("/api/admin/testimonials").json() if t["id"] == second.json()["id"]]
    assert others[0]["approved"] is False

    assert admin_client.put("/api/admin/testimonials/999/approve").status_code == 404


def test_testimonial_rating_bounds(customer_client: TestClient):
    response = customer_client.post("/api/testimonials", json={"text": "Texto suficiente aqui.", "rating": 6})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "rating"


# --- Orders ---


def test_place_order_snapshots_prices(
    admin_client: TestClient, customer_client: TestClient, customer_id: int, product_id: int
):
    response = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 2}]})
    assert response.status_code == 201
    order = response.json()
    assert order["userId"] == customer_id
    assert order["status"] == "pending"
    assert float(order["total"]) == 579.80
    assert order["items"][0]["quantity"] == 2
    assert float(order["items"][0]["price"]) == 289.90
    assert order["items"][0]["product"]["name"] == "Vestido Floral"

    admin_client.put(f"/api/admin/products/{product_id}", json={"price": "10.00"})
    mine = customer_client.get("/api/orders").json()
    assert float(mine[0]["items"][0]["price"]) == 289.90


def test_place_order_rejects_unknown_or_unavailable(
    admin_client: TestClient, customer_client: TestClient, product_id: int
):
    missing = customer_client.post("/api/orders", json={"items": [{"productId": 999, "quantity": 1}]})
    assert missing.status_code == 400
    assert missing.json()["errors"][0]["field"] == "items.0.productId"

    admin_client.put(f"/api/admin/products/{product_id}", json={"inStock": False})
    unavailable = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 1}]})
    assert unavailable.status_code == 400
    assert admin_client.get("/api/admin/orders").json() == []


def test_place_order_validation(customer_client: TestClient, product_id: int):
    assert customer_client.post("/api/orders", json={"items": []}).status_code == 400
    zero = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 0}]})
    assert zero.status_code == 400
    huge = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 1000000000}]})
    assert huge.status_code == 400


def test_place_order_total_too_large(admin_client: TestClient, customer_client: TestClient, product_id: int):
    admin_client.put(f"/api/admin/products/{product_id}", json={"price": "99999999.99"})
    response = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 2}]})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "items"
    assert admin_client.get("/api/admin/orders").json() == []


def test_admin_order_management(admin_client: TestClient, customer_client: TestClient, product_id: int):
    order = customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 1}]}).json()

    listed = admin_client.get("/api/admin/orders").json()
    assert [o["id"] for o in listed] == [order["id"]]
    assert listed[0]["user"]["username"] == "maria"
    assert listed[0]["items"][0]["product"]["id"] == product_id

    updated = admin_client.put(f"/api/admin/orders/{order['id']}/status", json={"status": "shipped"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "shipped"
    assert updated.json()["updatedAt"] > order["updatedAt"]

    assert admin_client.get(f"/api/admin/orders/{order['id']}").json()["status"] == "shipped"
    assert admin_client.get("/api/admin/orders/999").status_code == 404
    assert admin_client.put("/api/admin/orders/999/status", json={"status": "shipped"}).status_code == 404


def test_orders_are_private_to_their_owner(other_customer_client: TestClient, customer_client: TestClient, product_id: int):
    customer_client.post("/api/orders", json={"items": [{"productId": product_id, "quantity": 1}]})
    assert other_customer_client.get("/api/orders").json() == []
    assert other_customer_client.get("/api/admin/orders").status_code == 403


# --- Customers ---


def test_admin_customer_listing(admin_client: TestClient, customer_client: TestClient, other_customer_client: TestClient):
    customers = admin_client.get("/api/admin/customers").json()
    assert [c["username"] for c in customers] == ["maria", "joana"]
    assert all(c["isAdmin"] is False for c in customers)
    assert all("password" not in c for c in customers)

    everyone = admin_client.get("/api/admin/users").json()
    assert [u["username"] for u in everyone] == ["admin", "maria", "joana"]
