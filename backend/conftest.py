"""
Shared fixtures: a fresh SQLite database per test, the FastAPI app served
in-process through httpx, a controllable clock and a subscribed demo hotel.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_hotel_pms.sqlite")

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from database import get_db, make_engine, make_session_maker, init_db
from models import (
    Account, Plan, Property, Subscription, User, RoomType, Room, Client, UserRole, SubscriptionStatus
)
from auth import create_access_token
from subscription_middleware import get_clock
from main import app

# 2025-06-01 09:00 in Mexico City
DEFAULT_NOW = datetime(2025, 6, 1, 15, 0, 0)


class FrozenClock:
    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@dataclass
class DemoHotel:
    account_id: int
    property_id: int
    subscription_id: int
    admin_id: int
    room_type_id: int
    client_id: int
    room_ids: Dict[str, int] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


def auth_headers(user: User, property_id=None) -> Dict[str, str]:
    headers = {"Authorization": f"Bearer {create_access_token(user)}"}
    if property_id is not None:
        headers["x-hotel-id"] = str(property_id)
    return headers


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'pms.sqlite'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def async_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest_asyncio.fixture
async def client(session_maker, clock):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


async def create_hotel(
    session: AsyncSession,
    name: str = "Hotel Central",
    email: str = "owner@central.example.com",
    expires_at: datetime = DEFAULT_NOW + timedelta(days=30),
    tax_rate: Decimal = Decimal("0.16"),
) -> DemoHotel:
    account = Account(business_name=f"{name} SA", email=email, is_active=True)
    session.add(account)
    await session.flush()

    plan = Plan(name=f"Plan {name}", monthly_cost=Decimal("999.00"))
    prop = Property(
        account_id=account.id,
        name=name,
        timezone="America/Mexico_City",
        currency="MXN",
        tax_rate=tax_rate,
    )
    session.add_all([plan, prop])
    await session.flush()

    subscription = Subscription(
        account_id=account.id,
        property_id=prop.id,
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE.value,
        starts_at=DEFAULT_NOW - timedelta(days=1),
        expires_at=expires_at,
    )
    admin = User(
        email=f"admin@{email.split('@')[1]}",
        full_name="Front Desk Admin",
        role=UserRole.ADMIN.value,
        account_id=account.id,
        property_id=prop.id,
    )
    room_type = RoomType(
        property_id=prop.id,
        code="STD",
        name="Standard",
        adult_capacity=2,
        child_capacity=1,
        max_capacity=3,
        base_price=Decimal("1000.00"),
        extra_person_price=Decimal("250.00"),
        amenities=["wifi"],
    )
    guest = Client(property_id=prop.id, first_name="Ana", last_name="Lopez", email="ana@example.com")
    session.add_all([subscription, admin, room_type, guest])
    await session.flush()

    rooms = {}
    for number, floor in (("101", 1), ("102", 1), ("201", 2)):
        room = Room(property_id=prop.id, room_type_id=room_type.id, number=number, floor=floor)
        session.add(room)
        await session.flush()
        rooms[number] = room.id

    await session.commit()

    return DemoHotel(
        account_id=account.id,
        property_id=prop.id,
        subscription_id=subscription.id,
        admin_id=admin.id,
        room_type_id=room_type.id,
        client_id=guest.id,
        room_ids=rooms,
        headers=auth_headers(admin, prop.id),
    )


@pytest_asyncio.fixture
async def hotel(async_session) -> DemoHotel:
    return await create_hotel(async_session)


@pytest_asyncio.fixture
async def super_admin(async_session) -> User:
    user = User(email="root@platform.example.com", full_name="Platform Root", role=UserRole.SUPER_ADMIN.value)
    async_session.add(user)
    await async_session.commit()
    return user


@pytest.fixture
def admin_headers(super_admin) -> Dict[str, str]:
    return auth_headers(super_admin)


async def book(client, hotel: DemoHotel, room: str = "101", checkin: str = "2025-06-01",
               checkout: str = "2025-06-03", **extra):
    payload = {
        "client_id": hotel.client_id,
        "room_id": hotel.room_ids[room] if room else None,
        "checkin_date": checkin,
        "checkout_date": checkout,
        "adults": 2,
    }
    payload.update(extra)
    return await client.post("/api/reservations", json=payload, headers=hotel.headers)
