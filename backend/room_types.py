from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import List

from database import get_db
from models import RoomType, Room, UserRole, alive
from schemas import RoomTypeCreate, RoomTypeUpdate, RoomTypeResponse
from auth import require_roles
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext
from errors import BadRequest

router = APIRouter(prefix="/api/room-types", tags=["room-types"])


async def _ensure_code_free(db: AsyncSession, property_id: int, code: str, exclude_id: int = None):
    query = select(RoomType.id).where(RoomType.property_id == property_id, RoomType.code == code)
    if exclude_id is not None:
        query = query.where(RoomType.id != exclude_id)
    if (await db.execute(query)).first():
        raise BadRequest(f"Room type code '{code}' already exists")


@router.get("", response_model=List[RoomTypeResponse])
async def list_room_types(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(RoomType)
        .where(RoomType.property_id == tenant.property_id, alive(RoomType))
        .order_by(RoomType.base_price, RoomType.id)
    )
    return result.scalars().all()


@router.get("/{room_type_id}", response_model=RoomTypeResponse)
async def get_room_type(
    room_type_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    return await get_scoped_or_404(db, RoomType, room_type_id, tenant.property_id, "Room type")


@router.post("", response_model=RoomTypeResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def create_room_type(
    data: RoomTypeCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_code_free(db, tenant.property_id, data.code)

    room_type = RoomType(property_id=tenant.property_id, **data.model_dump())
    db.add(room_type)
    await db.commit()
    await db.refresh(room_type)
    return room_type


@router.put("/{room_type_id}", response_model=RoomTypeResponse,
            dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def update_room_type(
    room_type_id: int,
    data: RoomTypeUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    room_type = await get_scoped_or_404(db, RoomType, room_type_id, tenant.property_id, "Room type")

    updates = data.model_dump(exclude_unset=True)
    if "code" in updates and updates["code"] != room_type.code:
        await _ensure_code_free(db, tenant.property_id, updates["code"], exclude_id=room_type.id)

    for field, value in updates.items():
        setattr(room_type, field, value)

    await db.commit()
    await db.refresh(room_type)
    return room_type


@router.delete("/{room_type_id}", dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def delete_room_type(
    room_type_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete. Refused while live rooms still use the type."""
    room_type = await get_scoped_or_404(db, RoomType, room_type_id, tenant.property_id, "Room type")

    rooms_in_use = await db.scalar(
        select(func.count(Room.id)).where(Room.room_type_id == room_type.id, alive(Room))
    )
    if rooms_in_use:
        raise BadRequest("Room type still has rooms assigned", rooms=rooms_in_use)

    room_type.retire()
    await db.commit()
    return {"message": "Room type deleted"}
