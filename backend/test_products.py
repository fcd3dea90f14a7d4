"""
Product catalog and stock movements.
"""
import pytest

from models import StockMovementType
from products import apply_movement
from errors import InsufficientStock


async def create_product(client, hotel, code="SODA", stock=10, minimum=5, **extra):
    payload = {
        "code": code,
        "name": f"Product {code}",
        "selling_price": 35,
        "stock_on_hand": stock,
        "minimum_stock": minimum,
        **extra,
    }
    response = await client.post("/api/products", json=payload, headers=hotel.headers)
    assert response.status_code == 201
    return response.json()


async def move(client, hotel, product_id, movement_type, quantity):
    return await client.post(
        f"/api/products/{product_id}/movements",
        json={"movement_type": movement_type, "quantity": quantity, "reference": "test"},
        headers=hotel.headers,
    )


def test_apply_movement_rules():
    assert apply_movement(5, StockMovementType.IN, 3) == 8
    assert apply_movement(5, StockMovementType.OUT, 5) == 0
    assert apply_movement(5, StockMovementType.ADJUSTMENT, 12) == 12
    with pytest.raises(InsufficientStock):
        apply_movement(2, StockMovementType.SALE, 3)


@pytest.mark.asyncio
async def test_product_with_category(client, hotel):
    category = await client.post("/api/products/categories", json={"name": "Minibar"}, headers=hotel.headers)
    assert category.status_code == 201

    product = await create_product(client, hotel, category_id=category.json()["id"])

    assert product["category_name"] == "Minibar"
    assert product["is_low_stock"] is False

    response = await client.post("/api/products/categories", json={"name": "Minibar"}, headers=hotel.headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_product_code(client, hotel):
    await create_product(client, hotel, code="SODA")
    response = await client.post(
        "/api/products", json={"code": "SODA", "name": "Again", "selling_price": 10}, headers=hotel.headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_movements_update_stock(client, hotel):
    product = await create_product(client, hotel, stock=10)

    response = await move(client, hotel, product["id"], "In", 5)
    assert response.status_code == 201
    assert (response.json()["previous_stock"], response.json()["new_stock"]) == (10, 15)

    response = await move(client, hotel, product["id"], "Out", 4)
    assert response.json()["new_stock"] == 11

    response = await move(client, hotel, product["id"], "Adjustment", 0)
    assert response.json()["new_stock"] == 0

    response = await client.get(f"/api/products/{product['id']}/movements", headers=hotel.headers)
    assert [m["movement_type"] for m in response.json()] == ["Adjustment", "Out", "In", "In"]


@pytest.mark.asyncio
async def test_outgoing_movement_cannot_exceed_stock(client, hotel):
    product = await create_product(client, hotel, stock=2)

    response = await move(client, hotel, product["id"], "Out", 3)

    assert response.status_code == 400
    assert response.json() == {"error": "Insufficient stock", "available": 2, "requested": 3}

    response = await client.get(f"/api/products/{product['id']}", headers=hotel.headers)
    assert response.json()["stock_on_hand"] == 2


@pytest.mark.asyncio
async def test_zero_quantity_only_for_adjustments(client, hotel):
    product = await create_product(client, hotel)
    response = await move(client, hotel, product["id"], "In", 0)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_low_stock_filter(client, hotel):
    await create_product(client, hotel, code="SODA", stock=10, minimum=5)
    low = await create_product(client, hotel, code="CHIPS", stock=2, minimum=5)

    response = await client.get("/api/products", params={"low_stock": "true"}, headers=hotel.headers)

    assert [p["id"] for p in response.json()] == [low["id"]]
    assert response.json()[0]["is_low_stock"] is True


@pytest.mark.asyncio
async def test_update_and_delete_product(client, hotel):
    product = await create_product(client, hotel)

    response = await client.put(
        f"/api/products/{product['id']}", json={"selling_price": 40, "stock_on_hand": 999}, headers=hotel.headers
    )
    assert response.json()["selling_price"] == 40.0
    assert response.json()["stock_on_hand"] == 10

    response = await client.delete(f"/api/products/{product['id']}", headers=hotel.headers)
    assert response.status_code == 200
    assert (await client.get(f"/api/products/{product['id']}", headers=hotel.headers)).status_code == 404

    response = await client.get(f"/api/products/{product['id']}/movements", headers=hotel.headers)
    assert response.status_code == 200
