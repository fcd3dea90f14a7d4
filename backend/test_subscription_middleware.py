"""
HTTP tests for authentication and the per-hotel subscription gate.
"""
import pytest
from sqlalchemy import update

import subscription_middleware
from conftest import create_hotel, auth_headers
from models import Subscription, Account, User, Property


@pytest.mark.asyncio
async def test_health_needs_no_auth(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_token(client, hotel):
    response = await client.get("/api/rooms", headers={"x-hotel-id": str(hotel.property_id)})
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_current_user(client, hotel):
    response = await client.get("/api/auth/me", headers=hotel.headers)
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "admin"
    assert body["property_id"] == hotel.property_id


@pytest.mark.asyncio
async def test_inactive_user_rejected(client, hotel, async_session):
    await async_session.execute(update(User).where(User.id == hotel.admin_id).values(is_active=False))
    await async_session.commit()

    response = await client.get("/api/rooms", headers=hotel.headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Inactive user"


@pytest.mark.asyncio
async def test_missing_hotel_header(client, hotel):
    headers = {"Authorization": hotel.headers["Authorization"]}
    response = await client.get("/api/rooms", headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Hotel ID required (x-hotel-id header)"}


@pytest.mark.asyncio
async def test_non_numeric_hotel_header(client, hotel):
    headers = {**hotel.headers, "x-hotel-id": "central"}
    response = await client.get("/api/rooms", headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_user_cannot_reach_another_hotel(client, hotel, async_session):
    other = await create_hotel(async_session, name="Hotel Norte", email="owner@norte.example.com")

    headers = {**hotel.headers, "x-hotel-id": str(other.property_id)}
    response = await client.get("/api/rooms", headers=headers)

    assert response.status_code == 403
    assert response.json()["error"] == "You do not have access to this hotel"


@pytest.mark.asyncio
async def test_unknown_hotel(client, super_admin):
    response = await client.get("/api/rooms", headers=auth_headers(super_admin, 999))
    assert response.status_code == 403
    assert response.json()["error"] == "Hotel not found"


@pytest.mark.asyncio
async def test_retired_hotel_is_not_found(client, hotel, super_admin, async_session):
    prop = await async_session.get(Property, hotel.property_id)
    prop.retire()
    await async_session.commit()

    response = await client.get("/api/rooms", headers=auth_headers(super_admin, hotel.property_id))

    assert response.status_code == 403
    assert response.json()["error"] == "Hotel not found"


@pytest.mark.asyncio
async def test_unaffiliated_user_reaches_subscribed_hotel(client, hotel, super_admin):
    response = await client.get("/api/rooms", headers=auth_headers(super_admin, hotel.property_id))
    assert response.status_code == 200
    assert len(response.json()) == 3


@pytest.mark.asyncio
async def test_expired_subscription_blocks(client, hotel, clock):
    clock.advance(days=40)

    response = await client.get("/api/rooms", headers=hotel.headers)

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "Subscription expired"
    assert body["blocked"] is True
    assert body["expires_at"] == "2025-07-01T15:00:00"


@pytest.mark.asyncio
async def test_revoked_subscription_blocks(client, hotel, async_session):
    await async_session.execute(
        update(Subscription).where(Subscription.id == hotel.subscription_id).values(status="cancelled")
    )
    await async_session.commit()

    response = await client.get("/api/rooms", headers=hotel.headers)

    assert response.status_code == 403
    assert response.json() == {
        "error": "No active subscription for this hotel",
        "blocked": True,
        "has_subscription": True,
    }


@pytest.mark.asyncio
async def test_disabled_account_blocks(client, hotel, async_session):
    await async_session.execute(update(Account).where(Account.id == hotel.account_id).values(is_active=False))
    await async_session.commit()

    response = await client.get("/api/rooms", headers=hotel.headers)

    assert response.status_code == 403
    assert response.json()["error"] == "Account is disabled"


@pytest.mark.asyncio
async def test_lookup_failure_fails_closed(client, hotel, monkeypatch):
    async def broken_lookup(db, property_id):
        raise RuntimeError("database went away")

    monkeypatch.setattr(subscription_middleware, "load_gate_inputs", broken_lookup)

    response = await client.get("/api/rooms", headers=hotel.headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Error verifying subscription"}


@pytest.mark.asyncio
async def test_validation_errors_list_fields(client, hotel):
    response = await client.post("/api/reservations", json={"checkin_date": "2025-06-01"}, headers=hotel.headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request data"
    assert {"client_id", "checkout_date"} <= {f["field"] for f in body["fields"]}
