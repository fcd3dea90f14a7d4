"""
Idempotent demo data for local development.

Runs at startup when SEED_DEMO_DATA is on, or manually:

    python seed_data.py

Creates a demo account with one hotel, a plan, a 30-day subscription, a
room type with a handful of rooms and a super admin user. Rows that already
exist are left untouched.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import Account, Plan, Property, Subscription, SubscriptionStatus, RoomType, Room, User, UserRole

logger = logging.getLogger(__name__)

DEMO_ACCOUNT_EMAIL = "demo@hotelpms.local"
DEMO_ADMIN_EMAIL = "superadmin@hotelpms.local"
DEMO_ROOMS = [("101", 1), ("102", 1), ("103", 1), ("201", 2), ("202", 2)]


async def seed_demo_data(db: AsyncSession) -> dict:
    """
    Seed the demo tenant. Safe to run multiple times.

    Returns:
        dict with the ids of the demo account, property and admin user
    """
    result = await db.execute(select(Account).where(Account.email == DEMO_ACCOUNT_EMAIL))
    account = result.scalar_one_or_none()
    if account is None:
        account = Account(business_name="Demo Hotels", email=DEMO_ACCOUNT_EMAIL, is_active=True)
        db.add(account)
        await db.flush()
        logger.info(f"Created demo account {account.id}")

    result = await db.execute(select(Plan).where(Plan.name == "Demo"))
    plan = result.scalar_one_or_none()
    if plan is None:
        plan = Plan(name="Demo", monthly_cost=Decimal("0.00"), max_properties=1, max_rooms_per_property=20)
        db.add(plan)
        await db.flush()

    result = await db.execute(select(Property).where(Property.account_id == account.id).order_by(Property.id))
    prop = result.scalars().first()
    if prop is None:
        prop = Property(
            account_id=account.id,
            name="Demo Hotel",
            city="Guadalajara",
            country="Mexico",
            timezone=settings.DEFAULT_TIMEZONE,
            currency=settings.DEFAULT_CURRENCY,
            tax_rate=settings.DEFAULT_TAX_RATE,
        )
        db.add(prop)
        await db.flush()
        logger.info(f"Created demo hotel {prop.id}")

    result = await db.execute(select(Subscription).where(Subscription.property_id == prop.id))
    if result.scalars().first() is None:
        now = datetime.utcnow()
        db.add(Subscription(
            account_id=account.id,
            property_id=prop.id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE.value,
            starts_at=now,
            expires_at=now + timedelta(days=settings.DEFAULT_SUBSCRIPTION_DAYS),
        ))

    result = await db.execute(select(RoomType).where(RoomType.property_id == prop.id, RoomType.code == "STD"))
    room_type = result.scalar_one_or_none()
    if room_type is None:
        room_type = RoomType(
            property_id=prop.id,
            code="STD",
            name="Standard",
            adult_capacity=2,
            child_capacity=1,
            max_capacity=3,
            base_price=Decimal("1000.00"),
            extra_person_price=Decimal("250.00"),
            amenities=["wifi", "tv", "air conditioning"],
        )
        db.add(room_type)
        await db.flush()

    result = await db.execute(select(Room.number).where(Room.property_id == prop.id))
    existing_numbers = set(result.scalars().all())
    for number, floor in DEMO_ROOMS:
        if number not in existing_numbers:
            db.add(Room(property_id=prop.id, room_type_id=room_type.id, number=number, floor=floor))

    result = await db.execute(select(User).where(User.email == DEMO_ADMIN_EMAIL))
    admin = result.scalar_one_or_none()
    if admin is None:
        admin = User(email=DEMO_ADMIN_EMAIL, full_name="Platform Admin", role=UserRole.SUPER_ADMIN.value)
        db.add(admin)
        await db.flush()

    await db.commit()
    logger.info("Demo data ready")
    return {"account_id": account.id, "property_id": prop.id, "admin_user_id": admin.id}


async def main():
    from database import async_session_maker, init_db
    from auth import create_access_token

    await init_db()
    async with async_session_maker() as session:
        ids = await seed_demo_data(session)
        admin = await session.get(User, ids["admin_user_id"])

    print("=" * 60)
    print(f"Demo hotel id (x-hotel-id): {ids['property_id']}")
    print(f"Super admin token: {create_access_token(admin)}")
    print("=" * 60)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
