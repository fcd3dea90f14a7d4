import asyncio

import pytest

from models import Product
from room_locks import room_booking_lock, record_lock


@pytest.mark.asyncio
async def test_same_room_is_serialized(async_session):
    events = []

    async def hold(name):
        async with room_booking_lock(async_session, 101):
            events.append(f"{name} in")
            await asyncio.sleep(0.01)
            events.append(f"{name} out")

    await asyncio.gather(hold("a"), hold("b"))

    assert events == ["a in", "a out", "b in", "b out"]


@pytest.mark.asyncio
async def test_different_rooms_do_not_wait(async_session):
    async with room_booking_lock(async_session, 101):
        await asyncio.wait_for(_enter(async_session, 102), timeout=1)


@pytest.mark.asyncio
async def test_no_room_needs_no_lock(async_session):
    async with room_booking_lock(async_session, None):
        async with room_booking_lock(async_session, None):
            pass


async def _enter(session, room_id):
    async with room_booking_lock(session, room_id):
        return True


@pytest.mark.asyncio
async def test_record_lock_serializes_same_row(async_session):
    events = []

    async def hold(name, product_id):
        async with record_lock(async_session, Product, product_id):
            events.append(f"{name} in")
            await asyncio.sleep(0.01)
            events.append(f"{name} out")

    await asyncio.gather(hold("a", 7), hold("b", 7))
    assert events == ["a in", "a out", "b in", "b out"]

    async with record_lock(async_session, Product, 7):
        await asyncio.wait_for(_enter(async_session, 7), timeout=1)
