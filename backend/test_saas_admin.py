"""
Platform administration: plans, accounts, hotels and subscriptions.
"""
import pytest

from conftest import auth_headers


async def onboard(client, admin_headers, email="owner@costa.example.com"):
    account = await client.post(
        "/api/saas/accounts", json={"business_name": "Costa Hotels", "email": email}, headers=admin_headers
    )
    assert account.status_code == 201
    prop = await client.post(
        "/api/saas/properties", json={"account_id": account.json()["id"], "name": "Hotel Costa"}, headers=admin_headers
    )
    assert prop.status_code == 201
    return account.json(), prop.json()


@pytest.mark.asyncio
async def test_requires_super_admin(client, hotel):
    response = await client.get("/api/saas/accounts", headers=hotel.headers)
    assert response.status_code == 403
    assert response.json() == {"error": "Super admin privileges required"}


@pytest.mark.asyncio
async def test_plans(client, admin_headers):
    response = await client.post(
        "/api/saas/plans", json={"name": "Pro", "monthly_cost": "1499.00", "max_properties": 3}, headers=admin_headers
    )
    assert response.status_code == 201
    plan_id = response.json()["id"]

    duplicate = await client.post("/api/saas/plans", json={"name": "Pro"}, headers=admin_headers)
    assert duplicate.status_code == 400

    response = await client.put(f"/api/saas/plans/{plan_id}", json={"monthly_cost": 1299}, headers=admin_headers)
    assert response.json()["monthly_cost"] == 1299.0


@pytest.mark.asyncio
async def test_onboarding_applies_hotel_defaults(client, admin_headers):
    account, prop = await onboard(client, admin_headers)

    assert prop["account_id"] == account["id"]
    assert prop["tax_rate"] == 0.16
    assert prop["timezone"] == "America/Mexico_City"
    assert prop["currency"] == "MXN"

    response = await client.get("/api/saas/accounts", headers=admin_headers)
    assert [(a["business_name"], a["property_count"]) for a in response.json()] == [("Costa Hotels", 1)]


@pytest.mark.asyncio
async def test_duplicate_account_email(client, admin_headers):
    await onboard(client, admin_headers)
    response = await client.post(
        "/api/saas/accounts", json={"business_name": "Other", "email": "owner@costa.example.com"}, headers=admin_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_new_hotel_is_blocked_until_subscribed(client, admin_headers, super_admin):
    account, prop = await onboard(client, admin_headers)
    hotel_headers = auth_headers(super_admin, prop["id"])

    response = await client.get("/api/rooms", headers=hotel_headers)
    assert response.status_code == 403
    assert response.json()["has_subscription"] is False

    response = await client.post(
        "/api/saas/subscriptions",
        json={"account_id": account["id"], "property_id": prop["id"]},
        headers=admin_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "active"
    assert body["expires_at"] == "2025-07-01T15:00:00"
    assert body["days_remaining"] == 30
    assert body["property_name"] == "Hotel Costa"

    response = await client.get("/api/rooms", headers=hotel_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_account_wide_subscription(client, admin_headers, super_admin):
    account, prop = await onboard(client, admin_headers)

    response = await client.post(
        "/api/saas/subscriptions", json={"account_id": account["id"], "days": 7}, headers=admin_headers
    )
    assert response.json()["property_id"] is None

    response = await client.get("/api/rooms", headers=auth_headers(super_admin, prop["id"]))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_subscription_hotel_must_belong_to_account(client, admin_headers, hotel):
    account, _ = await onboard(client, admin_headers)
    response = await client.post(
        "/api/saas/subscriptions",
        json={"account_id": account["id"], "property_id": hotel.property_id},
        headers=admin_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_extend_active_subscription(client, admin_headers, hotel):
    response = await client.patch(
        f"/api/saas/subscriptions/{hotel.subscription_id}/extend", json={"days": 10}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["expires_at"] == "2025-07-11T15:00:00"


@pytest.mark.asyncio
async def test_extend_expired_subscription_counts_from_now(client, admin_headers, hotel, clock):
    clock.advance(days=60)
    assert (await client.get("/api/rooms", headers=hotel.headers)).status_code == 403

    response = await client.patch(
        f"/api/saas/subscriptions/{hotel.subscription_id}/extend", json={"days": 10}, headers=admin_headers
    )

    assert response.json()["expires_at"] == "2025-08-10T15:00:00"
    assert response.json()["days_remaining"] == 10
    assert (await client.get("/api/rooms", headers=hotel.headers)).status_code == 200


@pytest.mark.asyncio
async def test_revoke_blocks_and_extend_reactivates(client, admin_headers, hotel):
    response = await client.patch(f"/api/saas/subscriptions/{hotel.subscription_id}/revoke", headers=admin_headers)
    assert response.json()["status"] == "cancelled"

    response = await client.get("/api/rooms", headers=hotel.headers)
    assert response.status_code == 403
    assert response.json()["has_subscription"] is True

    await client.patch(
        f"/api/saas/subscriptions/{hotel.subscription_id}/extend", json={"days": 5}, headers=admin_headers
    )
    assert (await client.get("/api/rooms", headers=hotel.headers)).status_code == 200


@pytest.mark.asyncio
async def test_disabling_account_blocks_its_hotels(client, admin_headers, hotel):
    response = await client.put(
        f"/api/saas/accounts/{hotel.account_id}", json={"is_active": False}, headers=admin_headers
    )
    assert response.json()["is_active"] is False

    response = await client.get("/api/rooms", headers=hotel.headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Account is disabled"


@pytest.mark.asyncio
async def test_delete_account(client, admin_headers, hotel):
    response = await client.delete(f"/api/saas/accounts/{hotel.account_id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["properties"] == 1

    bare = await client.post(
        "/api/saas/accounts", json={"business_name": "Empty", "email": "empty@example.com"}, headers=admin_headers
    )
    await client.post("/api/saas/subscriptions", json={"account_id": bare.json()["id"]}, headers=admin_headers)

    response = await client.delete(f"/api/saas/accounts/{bare.json()['id']}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get("/api/saas/subscriptions", params={"account_id": bare.json()["id"]}, headers=admin_headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_delete_subscription(client, admin_headers, hotel):
    response = await client.delete(f"/api/saas/subscriptions/{hotel.subscription_id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get("/api/rooms", headers=hotel.headers)
    assert response.json()["has_subscription"] is False


@pytest.mark.asyncio
async def test_assigned_properties_overview(client, admin_headers, hotel):
    account, prop = await onboard(client, admin_headers)

    response = await client.get("/api/saas/assigned-properties", headers=admin_headers)

    overview = {p["property_name"]: p for p in response.json()}
    assert overview["Hotel Central"]["subscription_id"] == hotel.subscription_id
    assert overview["Hotel Central"]["days_remaining"] == 30
    assert overview["Hotel Costa"]["subscription_id"] is None


@pytest.mark.asyncio
async def test_activity_log_records_changes(client, admin_headers, hotel):
    await client.patch(f"/api/saas/subscriptions/{hotel.subscription_id}/revoke", headers=admin_headers)
    await client.patch(
        f"/api/saas/subscriptions/{hotel.subscription_id}/extend", json={"days": 3}, headers=admin_headers
    )

    response = await client.get("/api/saas/activity-logs", headers=admin_headers)

    actions = [entry["action"] for entry in response.json()]
    assert actions[:2] == ["extend_subscription", "revoke_subscription"]
    assert response.json()[0]["details"]["days_extended"] == 3
