"""
Room inventory endpoints: listing, availability search and status changes.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from datetime import date
from typing import List, Optional
import logging

from database import get_db
from models import (
    Room, RoomType, Reservation, RoomStatus, HousekeepingStatus, MaintenanceStatus, UserRole, alive
)
from schemas import RoomCreate, RoomUpdate, RoomStatusUpdate, RoomResponse
from auth import require_roles
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext
from booking_rules import BLOCKING_STATUSES, count_nights
from errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


def room_to_response(room: Room) -> RoomResponse:
    response = RoomResponse.model_validate(room)
    if room.room_type is not None:
        response.room_type_name = room.room_type.name
        response.base_price = float(room.room_type.base_price)
    return response


def busy_room_ids(property_id: int, checkin: date, checkout: date, exclude_reservation_id: Optional[int] = None):
    """Subquery of rooms held by a reservation overlapping [checkin, checkout)."""
    query = select(Reservation.room_id).where(
        Reservation.property_id == property_id,
        Reservation.room_id.is_not(None),
        Reservation.status.in_(BLOCKING_STATUSES),
        Reservation.checkin_date < checkout,
        Reservation.checkout_date > checkin,
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)
    return query


async def _load_room(db: AsyncSession, room_id: int, property_id: int) -> Room:
    result = await db.execute(
        select(Room)
        .options(selectinload(Room.room_type))
        .where(Room.id == room_id, Room.property_id == property_id, alive(Room))
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise NotFound("Room not found")
    return room


async def _ensure_room_type(db: AsyncSession, room_type_id: int, property_id: int):
    await get_scoped_or_404(db, RoomType, room_type_id, property_id, "Room type")


async def _ensure_number_free(db: AsyncSession, property_id: int, number: str, exclude_id: Optional[int] = None):
    query = select(Room.id).where(Room.property_id == property_id, Room.number == number)
    if exclude_id is not None:
        query = query.where(Room.id != exclude_id)
    if (await db.execute(query)).first():
        raise BadRequest(f"Room number '{number}' already exists")


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    floor: Optional[int] = None,
    room_type_id: Optional[int] = None,
    housekeeping_status: Optional[HousekeepingStatus] = None,
    maintenance_status: Optional[MaintenanceStatus] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(Room)
        .options(selectinload(Room.room_type))
        .where(Room.property_id == tenant.property_id, alive(Room))
    )
    if room_status:
        query = query.where(Room.status == room_status.value)
    if floor is not None:
        query = query.where(Room.floor == floor)
    if room_type_id:
        query = query.where(Room.room_type_id == room_type_id)
    if housekeeping_status:
        query = query.where(Room.housekeeping_status == housekeeping_status.value)
    if maintenance_status:
        query = query.where(Room.maintenance_status == maintenance_status.value)

    result = await db.execute(query.order_by(Room.floor, Room.number))
    return [room_to_response(r) for r in result.scalars().all()]


@router.get("/available", response_model=List[RoomResponse])
async def list_available_rooms(
    checkin: date,
    checkout: date,
    room_type_id: Optional[int] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Rooms that are in service and not held by an overlapping reservation."""
    count_nights(checkin, checkout)

    query = (
        select(Room)
        .options(selectinload(Room.room_type))
        .where(
            Room.property_id == tenant.property_id,
            alive(Room),
            Room.status != RoomStatus.OUT_OF_SERVICE.value,
            Room.maintenance_status != MaintenanceStatus.OUT_OF_SERVICE.value,
            Room.id.not_in(busy_room_ids(tenant.property_id, checkin, checkout)),
        )
    )
    if room_type_id:
        query = query.where(Room.room_type_id == room_type_id)

    result = await db.execute(query.order_by(Room.floor, Room.number))
    return [room_to_response(r) for r in result.scalars().all()]


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    return room_to_response(await _load_room(db, room_id, tenant.property_id))


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def create_room(
    data: RoomCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_room_type(db, data.room_type_id, tenant.property_id)
    await _ensure_number_free(db, tenant.property_id, data.number)

    room = Room(
        property_id=tenant.property_id,
        room_type_id=data.room_type_id,
        number=data.number,
        floor=data.floor,
        status=data.status.value,
        notes=data.notes,
    )
    db.add(room)
    await db.commit()
    return room_to_response(await _load_room(db, room.id, tenant.property_id))


@router.put("/{room_id}", response_model=RoomResponse,
            dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def update_room(
    room_id: int,
    data: RoomUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    room = await _load_room(db, room_id, tenant.property_id)
    updates = data.model_dump(exclude_unset=True)

    if updates.get("room_type_id"):
        await _ensure_room_type(db, updates["room_type_id"], tenant.property_id)
    if updates.get("number") and updates["number"] != room.number:
        await _ensure_number_free(db, tenant.property_id, updates["number"], exclude_id=room.id)

    for field, value in updates.items():
        setattr(room, field, value)

    await db.commit()
    db.expire(room)
    return room_to_response(await _load_room(db, room_id, tenant.property_id))


@router.patch("/{room_id}/status", response_model=RoomResponse)
async def update_room_status(
    room_id: int,
    data: RoomStatusUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Change any of the operational, housekeeping and maintenance statuses."""
    room = await _load_room(db, room_id, tenant.property_id)

    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise BadRequest("No changes given")

    for field, value in changes.items():
        setattr(room, field, value.value)

    await db.commit()
    logger.info(f"Room {room.number} (hotel {tenant.property_id}) status changed: {changes}")
    db.expire(room)
    return room_to_response(await _load_room(db, room_id, tenant.property_id))


@router.delete("/{room_id}", dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def delete_room(
    room_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    room = await _load_room(db, room_id, tenant.property_id)
    room.retire()
    await db.commit()
    return {"message": "Room deleted"}
