"""
Reservation lifecycle over HTTP: pricing, availability, transitions and the
room/housekeeping side effects.
"""
import asyncio

import pytest
from sqlalchemy import select

from config import settings
from conftest import book
from models import Room, Client, HousekeepingTask


async def get_room(async_session, room_id) -> Room:
    async_session.expire_all()
    return await async_session.get(Room, room_id)


async def pay(client, hotel, reservation_id, amount):
    return await client.post(
        "/api/payments",
        json={"reservation_id": reservation_id, "amount": amount, "payment_method": "Cash"},
        headers=hotel.headers,
    )


@pytest.mark.asyncio
async def test_create_prices_stay_and_reserves_room(client, hotel, async_session):
    response = await book(client, hotel)

    assert response.status_code == 201
    body = response.json()
    assert body["number"] == "RES-2025-0001"
    assert body["status"] == "Pending"
    assert body["nights"] == 2
    assert body["lodging_subtotal"] == 2000.0
    assert body["lodging_tax"] == 320.0
    assert body["total"] == 2320.0
    assert body["balance_due"] == 2320.0
    assert body["client_name"] == "Ana Lopez"
    assert body["room_number"] == "101"

    room = await get_room(async_session, hotel.room_ids["101"])
    assert room.status == "Reserved"


@pytest.mark.asyncio
async def test_numbers_are_sequential(client, hotel):
    first = await book(client, hotel, room="101")
    second = await book(client, hotel, room="102")
    assert first.json()["number"] == "RES-2025-0001"
    assert second.json()["number"] == "RES-2025-0002"


@pytest.mark.asyncio
async def test_extra_guests_and_discount(client, hotel):
    response = await book(client, hotel, adults=3, discount_percent=10)

    body = response.json()
    assert response.status_code == 201
    assert body["extra_guest_amount"] == 500.0
    assert body["lodging_subtotal"] == 2500.0
    assert body["discount_amount"] == 250.0
    assert body["lodging_tax"] == 360.0
    assert body["total"] == 2610.0


@pytest.mark.asyncio
async def test_checkout_before_checkin_rejected(client, hotel):
    response = await book(client, hotel, checkin="2025-06-03", checkout="2025-06-03")
    assert response.status_code == 400
    assert response.json()["error"] == "Check-out date must be after check-in date"


@pytest.mark.asyncio
async def test_overlapping_stay_rejected(client, hotel):
    await book(client, hotel)
    response = await book(client, hotel, checkin="2025-06-02", checkout="2025-06-04")

    assert response.status_code == 409
    assert response.json()["room_id"] == hotel.room_ids["101"]


@pytest.mark.asyncio
async def test_back_to_back_stays_allowed(client, hotel):
    await book(client, hotel)
    response = await book(client, hotel, checkin="2025-06-03", checkout="2025-06-05")
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_concurrent_bookings_for_same_room(client, hotel):
    responses = await asyncio.gather(
        book(client, hotel, checkin="2025-06-10", checkout="2025-06-12"),
        book(client, hotel, checkin="2025-06-11", checkout="2025-06-13"),
    )
    assert sorted(r.status_code for r in responses) == [201, 409]


@pytest.mark.asyncio
async def test_concurrent_bookings_get_distinct_numbers(client, hotel):
    responses = await asyncio.gather(
        book(client, hotel, room="101"),
        book(client, hotel, room="102"),
        book(client, hotel, room="201"),
        book(client, hotel, room=None, room_type_id=hotel.room_type_id),
    )

    assert [r.status_code for r in responses] == [201, 201, 201, 201]
    numbers = sorted(r.json()["number"] for r in responses)
    assert numbers == ["RES-2025-0001", "RES-2025-0002", "RES-2025-0003", "RES-2025-0004"]


@pytest.mark.asyncio
async def test_out_of_service_room_cannot_be_booked(client, hotel):
    await client.patch(
        f"/api/rooms/{hotel.room_ids['101']}/status",
        json={"status": "OutOfService"},
        headers=hotel.headers,
    )
    response = await book(client, hotel)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_rate_required_without_room_or_type(client, hotel):
    response = await book(client, hotel, room=None)
    assert response.status_code == 400

    response = await book(client, hotel, room=None, nightly_rate=800)
    assert response.status_code == 201
    assert response.json()["total"] == 1856.0


@pytest.mark.asyncio
async def test_full_stay(client, hotel, async_session):
    reservation = (await book(client, hotel)).json()
    rid = reservation["id"]

    response = await client.patch(f"/api/reservations/{rid}/confirm", headers=hotel.headers)
    assert response.json()["status"] == "Confirmed"

    response = await client.patch(f"/api/reservations/{rid}/checkin", headers=hotel.headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CheckIn"
    assert response.json()["actual_checkin_at"] == "2025-06-01T15:00:00"
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Occupied"

    async_session.expire_all()
    guest = await async_session.get(Client, hotel.client_id)
    assert guest.total_stays == 1

    response = await pay(client, hotel, rid, 2320)
    assert response.status_code == 201

    response = await client.patch(f"/api/reservations/{rid}/checkout", headers=hotel.headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CheckOut"
    assert response.json()["balance_due"] == 0.0

    room = await get_room(async_session, hotel.room_ids["101"])
    assert room.status == "Available"
    assert room.housekeeping_status == "Dirty"

    result = await async_session.execute(select(HousekeepingTask).where(HousekeepingTask.room_id == room.id))
    task = result.scalar_one()
    assert task.task_type == "Checkout"
    assert task.priority == "High"
    assert task.status == "Pending"
    assert task.task_date.isoformat() == "2025-06-01"


@pytest.mark.asyncio
async def test_checkout_refused_with_balance(client, hotel, async_session):
    rid = (await book(client, hotel)).json()["id"]
    await client.patch(f"/api/reservations/{rid}/checkin", headers=hotel.headers)
    await pay(client, hotel, rid, 1000)

    response = await client.patch(f"/api/reservations/{rid}/checkout", headers=hotel.headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Reservation has an outstanding balance", "balance": 1320.0}
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Occupied"


@pytest.mark.asyncio
async def test_checkin_needs_a_room(client, hotel):
    rid = (await book(client, hotel, room=None, room_type_id=hotel.room_type_id)).json()["id"]

    response = await client.patch(f"/api/reservations/{rid}/checkin", headers=hotel.headers)
    assert response.status_code == 400
    assert response.json()["error"] == "A room must be assigned before check-in"

    response = await client.patch(
        f"/api/reservations/{rid}/checkin", json={"room_id": hotel.room_ids["201"]}, headers=hotel.headers
    )
    assert response.status_code == 200
    assert response.json()["room_number"] == "201"


@pytest.mark.asyncio
async def test_checkin_into_occupied_room_rejected(client, hotel):
    first = (await book(client, hotel, checkin="2025-06-01", checkout="2025-06-02")).json()["id"]
    await client.patch(f"/api/reservations/{first}/checkin", headers=hotel.headers)
    second = (await book(client, hotel, room=None, room_type_id=hotel.room_type_id)).json()["id"]

    response = await client.patch(
        f"/api/reservations/{second}/checkin", json={"room_id": hotel.room_ids["101"]}, headers=hotel.headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancel_appends_reason_and_frees_room(client, hotel, async_session):
    rid = (await book(client, hotel, internal_notes="Late arrival")).json()["id"]

    response = await client.patch(
        f"/api/reservations/{rid}/cancel", json={"reason": "guest request"}, headers=hotel.headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "Cancelled"
    assert response.json()["internal_notes"] == "Late arrival\nCancelled: guest request"
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Available"


@pytest.mark.asyncio
async def test_cancel_without_body(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    response = await client.patch(f"/api/reservations/{rid}/cancel", headers=hotel.headers)
    assert response.json()["internal_notes"] == "Cancelled"


@pytest.mark.asyncio
async def test_cancel_frees_room_held_by_another_booking(client, hotel, async_session):
    first = (await book(client, hotel)).json()["id"]
    await book(client, hotel, checkin="2025-06-05", checkout="2025-06-07")

    await client.patch(f"/api/reservations/{first}/cancel", headers=hotel.headers)

    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Available"


@pytest.mark.asyncio
async def test_cancel_frees_room_in_any_status(client, hotel, async_session):
    await client.patch(
        f"/api/rooms/{hotel.room_ids['101']}/status", json={"status": "Cleaning"}, headers=hotel.headers
    )
    rid = (await book(client, hotel)).json()["id"]
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Cleaning"

    await client.patch(f"/api/reservations/{rid}/cancel", headers=hotel.headers)

    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Available"


@pytest.mark.asyncio
async def test_cancel_can_keep_room_held_by_another_booking(client, hotel, async_session, monkeypatch):
    monkeypatch.setattr(settings, "CANCEL_FREES_ROOM_UNCONDITIONALLY", False)
    first = (await book(client, hotel)).json()["id"]
    await book(client, hotel, checkin="2025-06-05", checkout="2025-06-07")

    await client.patch(f"/api/reservations/{first}/cancel", headers=hotel.headers)

    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Reserved"


@pytest.mark.asyncio
async def test_no_show_frees_room(client, hotel, async_session):
    rid = (await book(client, hotel)).json()["id"]
    response = await client.patch(f"/api/reservations/{rid}/no-show", headers=hotel.headers)

    assert response.json()["status"] == "NoShow"
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Available"


@pytest.mark.asyncio
async def test_invalid_transitions(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await client.patch(f"/api/reservations/{rid}/cancel", headers=hotel.headers)

    response = await client.patch(f"/api/reservations/{rid}/checkin", headers=hotel.headers)
    assert response.status_code == 409
    assert response.json()["current_status"] == "Cancelled"
    assert response.json()["target_status"] == "CheckIn"

    response = await client.patch(f"/api/reservations/{rid}/cancel", headers=hotel.headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancelled_booking_no_longer_blocks(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await client.patch(f"/api/reservations/{rid}/cancel", headers=hotel.headers)

    response = await book(client, hotel)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_update_requotes_and_keeps_charges(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await client.post(
        "/api/charges",
        json={"reservation_id": rid, "description": "Minibar", "unit_price": 100},
        headers=hotel.headers,
    )

    response = await client.put(
        f"/api/reservations/{rid}", json={"checkout_date": "2025-06-04"}, headers=hotel.headers
    )

    body = response.json()
    assert response.status_code == 200
    assert body["nights"] == 3
    assert body["lodging_subtotal"] == 3000.0
    assert body["charges_total"] == 116.0
    assert body["total"] == 3596.0
    assert body["balance_due"] == 3596.0


@pytest.mark.asyncio
async def test_update_moves_room(client, hotel, async_session):
    rid = (await book(client, hotel)).json()["id"]

    response = await client.put(
        f"/api/reservations/{rid}", json={"room_id": hotel.room_ids["102"]}, headers=hotel.headers
    )

    assert response.status_code == 200
    assert response.json()["room_number"] == "102"
    assert (await get_room(async_session, hotel.room_ids["101"])).status == "Available"
    assert (await get_room(async_session, hotel.room_ids["102"])).status == "Reserved"


@pytest.mark.asyncio
async def test_update_cannot_collide_with_other_booking(client, hotel):
    await book(client, hotel, room="102")
    rid = (await book(client, hotel)).json()["id"]

    response = await client.put(
        f"/api/reservations/{rid}", json={"room_id": hotel.room_ids["102"]}, headers=hotel.headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_checked_in_reservation_not_editable(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await client.patch(f"/api/reservations/{rid}/checkin", headers=hotel.headers)

    response = await client.put(f"/api/reservations/{rid}", json={"adults": 1}, headers=hotel.headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_arrivals_and_departures(client, hotel):
    arriving = (await book(client, hotel)).json()["id"]
    await book(client, hotel, room="102", checkin="2025-06-05", checkout="2025-06-06")
    leaving = (await book(client, hotel, room="201", checkin="2025-05-30", checkout="2025-06-01")).json()["id"]
    await client.patch(f"/api/reservations/{leaving}/checkin", headers=hotel.headers)

    response = await client.get("/api/reservations/arrivals-today", headers=hotel.headers)
    assert [r["id"] for r in response.json()] == [arriving]

    response = await client.get("/api/reservations/departures-today", headers=hotel.headers)
    assert [r["id"] for r in response.json()] == [leaving]


@pytest.mark.asyncio
async def test_list_filters_by_status(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await book(client, hotel, room="102")
    await client.patch(f"/api/reservations/{rid}/confirm", headers=hotel.headers)

    response = await client.get("/api/reservations", params={"status": "Confirmed"}, headers=hotel.headers)
    assert [r["id"] for r in response.json()] == [rid]


@pytest.mark.asyncio
async def test_detail_includes_folio(client, hotel):
    rid = (await book(client, hotel)).json()["id"]
    await pay(client, hotel, rid, 500)

    response = await client.get(f"/api/reservations/{rid}", headers=hotel.headers)

    body = response.json()
    assert len(body["payments"]) == 1
    assert body["charges"] == []
    assert body["total_paid"] == 500.0
