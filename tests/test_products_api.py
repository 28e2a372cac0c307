# tests/test_products_api.py

from decimal import Decimal

from conftest import auth_headers

PRODUCTS = "/api/products"


async def test_list_products_paginates_active_products(client, make_product):
    for i in range(3):
        await make_product(name=f"Therapy Ball {i}", category="Exercise")
    await make_product(name="Retired Brace", is_active=False)

    first_page = await client.get(f"{PRODUCTS}?limit=2")
    last_page = await client.get(f"{PRODUCTS}?limit=2&offset=2")

    assert first_page.status_code == 200
    assert len(first_page.json()["products"]) == 2
    assert first_page.json()["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}
    assert len(last_page.json()["products"]) == 1
    assert last_page.json()["pagination"]["hasMore"] is False


async def test_list_products_filters(client, make_product):
    await make_product(name="Cervical Pillow", category="Sleep", description="Neck support")
    await make_product(name="Ankle Weights", category="Exercise", description="Pair of 1kg weights")

    by_category = await client.get(f"{PRODUCTS}?category=sleep")
    by_search = await client.get(f"{PRODUCTS}?search=weights")

    assert [p["name"] for p in by_category.json()["products"]] == ["Cervical Pillow"]
    assert [p["name"] for p in by_search.json()["products"]] == ["Ankle Weights"]


async def test_featured_products(client, make_product):
    await make_product(name="TENS Unit", is_featured=True)
    await make_product(name="Hot Pack")

    response = await client.get(f"{PRODUCTS}/featured")

    assert [p["name"] for p in response.json()["products"]] == ["TENS Unit"]


async def test_get_product(client, make_product):
    product_id = await make_product(name="Lumbar Belt", price="899.00", stock=4)

    response = await client.get(f"{PRODUCTS}/{product_id}")

    assert response.status_code == 200
    product = response.json()["product"]
    assert product["name"] == "Lumbar Belt"
    assert Decimal(product["price"]) == Decimal("899.00")
    assert product["stock_quantity"] == 4


async def test_get_unknown_product(client):
    response = await client.get(f"{PRODUCTS}/missing")

    assert response.status_code == 404
    assert response.json() == {"error": "Product not found"}


async def test_product_writes_require_admin(client, make_user):
    customer = await make_user()
    body = {"name": "Foam Roller", "price": "650.00", "stock_quantity": 10}

    anonymous = await client.post(PRODUCTS, json=body)
    as_customer = await client.post(PRODUCTS, json=body, headers=auth_headers(customer))

    assert anonymous.status_code == 401
    assert as_customer.status_code == 403


async def test_admin_manages_products(client, make_user):
    admin = await make_user(email="admin@example.com", is_admin=True)
    headers = auth_headers(admin, is_admin=True)

    created = await client.post(
        PRODUCTS,
        json={"name": "Foam Roller", "price": "650.00", "stock_quantity": 10, "category": "Recovery"},
        headers=headers,
    )
    assert created.status_code == 201
    product_id = created.json()["product"]["id"]

    updated = await client.put(
        f"{PRODUCTS}/{product_id}", json={"price": "599.00", "stock_quantity": 8}, headers=headers
    )
    assert updated.status_code == 200
    assert Decimal(updated.json()["product"]["price"]) == Decimal("599.00")
    assert updated.json()["product"]["stock_quantity"] == 8
    assert updated.json()["product"]["name"] == "Foam Roller"

    deleted = await client.delete(f"{PRODUCTS}/{product_id}", headers=headers)
    assert deleted.status_code == 200
    assert (await client.get(f"{PRODUCTS}/{product_id}")).status_code == 404


async def test_invalid_product_is_rejected(client, make_user):
    admin = await make_user(email="admin@example.com", is_admin=True)

    response = await client.post(
        PRODUCTS,
        json={"name": "Foam Roller", "price": "0", "stock_quantity": 10},
        headers=auth_headers(admin, is_admin=True),
    )

    assert response.status_code == 400
