"""
Subscription Middleware
Resolves the x-hotel-id header into a TenantContext and blocks hotels
without a current subscription.
"""

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, and_
from sqlalchemy.orm import selectinload
from datetime import datetime
from typing import Optional
import logging

from database import get_db
from models import User, Property, Subscription, LifecycleMixin, alive
from auth import get_current_active_user
from access_gate import (
    authorize, parse_property_id, Affiliation, PropertySnapshot, SubscriptionSnapshot, TenantContext
)
from errors import AppError, NotFound

logger = logging.getLogger(__name__)


def get_clock() -> datetime:
    """Current UTC time. Overridden in tests."""
    return datetime.utcnow()


async def load_gate_inputs(db: AsyncSession, property_id: int):
    """Fetch the property (with its account) and every subscription that can cover it."""
    result = await db.execute(
        select(Property)
        .options(selectinload(Property.account))
        .where(Property.id == property_id, alive(Property))
    )
    prop = result.scalar_one_or_none()
    if prop is None:
        return None, []

    result = await db.execute(
        select(Subscription).where(
            or_(
                Subscription.property_id == prop.id,
                and_(Subscription.property_id.is_(None), Subscription.account_id == prop.account_id),
            )
        )
    )
    subscriptions = result.scalars().all()

    snapshot = PropertySnapshot(
        id=prop.id,
        account_id=prop.account_id,
        account_active=bool(prop.account and prop.account.is_active),
        name=prop.name,
        timezone=prop.timezone,
        currency=prop.currency,
        tax_rate=prop.tax_rate,
    )
    subs = [
        SubscriptionSnapshot(
            account_id=s.account_id,
            property_id=s.property_id,
            status=s.status,
            expires_at=s.expires_at,
        )
        for s in subscriptions
    ]
    return snapshot, subs


async def require_active_subscription(
    request: Request,
    x_hotel_id: Optional[str] = Header(None, alias="x-hotel-id"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> TenantContext:
    """
    Dependency for every operative endpoint.

    Raises:
        MissingTenantIdentifier (400), TenantNotPermitted (403),
        NoActiveSubscription (403), SubscriptionExpired (403)

    Returns:
        TenantContext: the hotel the request acts on
    """
    property_id = parse_property_id(x_hotel_id)
    affiliation = Affiliation(property_id=current_user.property_id, account_id=current_user.account_id)

    try:
        prop, subscriptions = await load_gate_inputs(db, property_id)
    except Exception:
        logger.error(f"Subscription lookup failed for hotel {property_id}", exc_info=True)
        raise AppError("Error verifying subscription")

    try:
        context = authorize(x_hotel_id, affiliation, prop, subscriptions, now)
    except AppError as e:
        logger.warning(f"Access blocked for user {current_user.id} on hotel {property_id}: {e.message}")
        raise

    request.state.tenant = context
    return context


async def get_scoped_or_404(
    db: AsyncSession,
    model,
    object_id: int,
    property_id: int,
    label: str,
    include_deleted: bool = False,
    for_update: bool = False,
):
    """
    Load a row that belongs to the current hotel.

    Rows of other hotels are reported as not found so their existence is not revealed.
    """
    query = select(model).where(model.id == object_id, model.property_id == property_id)
    if not include_deleted and issubclass(model, LifecycleMixin):
        query = query.where(alive(model))
    if for_update:
        # Re-read under the lock; the identity map may hold an older copy
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    obj = result.scalar_one_or_none()
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj
