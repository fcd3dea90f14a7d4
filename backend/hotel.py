"""
Hotel settings endpoints for the hotel selected by x-hotel-id.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from database import get_db
from models import Property, UserRole
from schemas import PropertyResponse, PropertyUpdate
from auth import require_roles
from subscription_middleware import require_active_subscription
from access_gate import TenantContext
from errors import NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hotel", tags=["hotel"])


async def _load_property(db: AsyncSession, property_id: int) -> Property:
    result = await db.execute(select(Property).where(Property.id == property_id))
    prop = result.scalar_one_or_none()
    if prop is None:
        raise NotFound("Hotel not found")
    return prop


@router.get("", response_model=PropertyResponse)
async def get_hotel(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    return await _load_property(db, tenant.property_id)


@router.put("", response_model=PropertyResponse, dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def update_hotel(
    data: PropertyUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Update hotel settings (admin only). Tax rate changes apply to new charges and quotes."""
    prop = await _load_property(db, tenant.property_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(prop, field, value)

    await db.commit()
    await db.refresh(prop)
    logger.info(f"Hotel {prop.id} settings updated")
    return prop
