"""
Reservation API Endpoints
Booking, pricing and the Pending -> Confirmed -> CheckIn -> CheckOut lifecycle.

Every transition touching more than one table commits once at the end, so a
failure anywhere leaves the reservation, room and client untouched.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from datetime import datetime, date
from typing import List, Optional
import logging

from config import settings
from database import get_db
from models import (
    Reservation, Room, RoomType, Client, HousekeepingTask, ReservationStatus, RoomStatus,
    HousekeepingStatus, HousekeepingTaskType, HousekeepingTaskStatus, TaskPriority, MaintenanceStatus, alive
)
from schemas import (
    ReservationCreate, ReservationUpdate, ReservationResponse, ReservationDetailResponse,
    CheckInRequest, CancelRequest
)
from subscription_middleware import require_active_subscription, get_scoped_or_404, get_clock
from access_gate import TenantContext
from booking_rules import (
    quote_stay, apply_quote, extra_guests, ensure_transition, recompute_balance, append_note,
    BLOCKING_STATUSES, EDITABLE_STATUSES
)
from room_locks import room_booking_lock
from errors import BadRequest, NotFound, NoRoomAssigned, OutstandingBalance, RoomUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reservations", tags=["reservations"])


# =============================================================================
# HELPERS
# =============================================================================

def reservation_to_response(reservation: Reservation, detail: bool = False) -> ReservationResponse:
    schema = ReservationDetailResponse if detail else ReservationResponse
    response = schema.model_validate(reservation)
    if reservation.client is not None:
        response.client_name = " ".join(
            part for part in (reservation.client.first_name, reservation.client.last_name) if part
        )
    if reservation.room is not None:
        response.room_number = reservation.room.number
    return response


async def _load_reservation(
    db: AsyncSession,
    reservation_id: int,
    property_id: int,
    detail: bool = False,
    for_update: bool = False,
    refresh: bool = False,
) -> Reservation:
    options = [
        selectinload(Reservation.client),
        selectinload(Reservation.room).selectinload(Room.room_type),
        selectinload(Reservation.room_type),
    ]
    if detail:
        options += [selectinload(Reservation.charges), selectinload(Reservation.payments)]

    query = (
        select(Reservation)
        .options(*options)
        .where(Reservation.id == reservation_id, Reservation.property_id == property_id)
    )
    if for_update:
        query = query.with_for_update()
    if refresh:
        query = query.execution_options(populate_existing=True)

    result = await db.execute(query)
    reservation = result.scalar_one_or_none()
    if reservation is None:
        raise NotFound("Reservation not found")
    return reservation


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


def reservation_number(year: int, reservation_id: int) -> str:
    """RES-{year}-{NNNN} from the row id, unique without a counter"""
    return f"RES-{year}-{reservation_id:04d}"


async def ensure_room_available(
    db: AsyncSession,
    room: Room,
    checkin: date,
    checkout: date,
    exclude_reservation_id: Optional[int] = None,
):
    """Raise RoomUnavailable if the room is out of service or held for an overlapping stay."""
    if room.status == RoomStatus.OUT_OF_SERVICE.value or room.maintenance_status == MaintenanceStatus.OUT_OF_SERVICE.value:
        raise RoomUnavailable(room.id, message=f"Room {room.number} is out of service")

    query = select(func.count(Reservation.id)).where(
        Reservation.room_id == room.id,
        Reservation.status.in_(BLOCKING_STATUSES),
        Reservation.checkin_date < checkout,
        Reservation.checkout_date > checkin,
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)

    if await db.scalar(query):
        raise RoomUnavailable(room.id)


async def release_room(db: AsyncSession, reservation: Reservation, room: Optional[Room]):
    """
    Return a room to Available after its reservation stops holding it.

    With CANCEL_FREES_ROOM_UNCONDITIONALLY off, the room is left alone while
    another Pending/Confirmed/CheckIn reservation still references it.
    """
    if room is None:
        return

    if settings.CANCEL_FREES_ROOM_UNCONDITIONALLY:
        room.status = RoomStatus.AVAILABLE.value
        return

    others = await db.scalar(
        select(func.count(Reservation.id)).where(
            Reservation.room_id == room.id,
            Reservation.id != reservation.id,
            Reservation.status.in_(BLOCKING_STATUSES),
        )
    )
    if not others:
        room.status = RoomStatus.AVAILABLE.value


def _quote_for(reservation_fields: dict, room_type: Optional[RoomType], tax_rate):
    rate = reservation_fields.get("nightly_rate")
    if rate is None:
        if room_type is None:
            raise BadRequest("nightly_rate is required when no room or room type is given")
        rate = room_type.base_price

    extra_count = 0
    extra_price = 0
    if room_type is not None:
        extra_count = extra_guests(
            reservation_fields["adults"],
            reservation_fields["children"],
            room_type.adult_capacity,
            room_type.child_capacity,
        )
        extra_price = room_type.extra_person_price

    return quote_stay(
        reservation_fields["checkin_date"],
        reservation_fields["checkout_date"],
        rate,
        tax_rate,
        extra_guest_count=extra_count,
        extra_person_price=extra_price,
        discount_amount=reservation_fields.get("discount_amount"),
        discount_percent=reservation_fields.get("discount_percent"),
    )


async def _resolve_room_and_type(db: AsyncSession, property_id: int, room_id: Optional[int], room_type_id: Optional[int]):
    room = None
    room_type = None
    if room_id:
        room = await _load_room(db, room_id, property_id)
        room_type = room.room_type
        if room_type_id and room_type_id != room.room_type_id:
            raise BadRequest("Room does not belong to the given room type")
    elif room_type_id:
        room_type = await get_scoped_or_404(db, RoomType, room_type_id, property_id, "Room type")
    return room, room_type


# =============================================================================
# QUERIES
# =============================================================================

@router.get("", response_model=List[ReservationResponse])
async def list_reservations(
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    client_id: Optional[int] = None,
    room_id: Optional[int] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """List reservations; the date range filters on check-in date."""
    query = (
        select(Reservation)
        .options(selectinload(Reservation.client), selectinload(Reservation.room))
        .where(Reservation.property_id == tenant.property_id)
    )
    if reservation_status:
        query = query.where(Reservation.status == reservation_status.value)
    if date_from:
        query = query.where(Reservation.checkin_date >= date_from)
    if date_to:
        query = query.where(Reservation.checkin_date <= date_to)
    if client_id:
        query = query.where(Reservation.client_id == client_id)
    if room_id:
        query = query.where(Reservation.room_id == room_id)

    result = await db.execute(query.order_by(Reservation.checkin_date.desc(), Reservation.id.desc()))
    return [reservation_to_response(r) for r in result.scalars().all()]


@router.get("/arrivals-today", response_model=List[ReservationResponse])
async def arrivals_today(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """Pending or confirmed reservations checking in today (hotel local date)"""
    result = await db.execute(
        select(Reservation)
        .options(selectinload(Reservation.client), selectinload(Reservation.room))
        .where(
            Reservation.property_id == tenant.property_id,
            Reservation.checkin_date == tenant.today(now),
            Reservation.status.in_(EDITABLE_STATUSES),
        )
        .order_by(Reservation.arrival_time, Reservation.id)
    )
    return [reservation_to_response(r) for r in result.scalars().all()]


@router.get("/departures-today", response_model=List[ReservationResponse])
async def departures_today(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """In-house reservations due to check out today (hotel local date)"""
    result = await db.execute(
        select(Reservation)
        .options(selectinload(Reservation.client), selectinload(Reservation.room))
        .where(
            Reservation.property_id == tenant.property_id,
            Reservation.checkout_date == tenant.today(now),
            Reservation.status == ReservationStatus.CHECK_IN.value,
        )
        .order_by(Reservation.id)
    )
    return [reservation_to_response(r) for r in result.scalars().all()]


@router.get("/{reservation_id}", response_model=ReservationDetailResponse)
async def get_reservation(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Reservation with its posted charges and payments"""
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, detail=True)
    return reservation_to_response(reservation, detail=True)


# =============================================================================
# CREATE / UPDATE
# =============================================================================

@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """
    Create a reservation.

    The lodging quote is priced from the given nightly rate, or the room type's
    base price. A pre-assigned room is checked for overlapping stays under the
    room's booking lock and marked Reserved.
    """
    client = await get_scoped_or_404(db, Client, data.client_id, tenant.property_id, "Client")
    room, room_type = await _resolve_room_and_type(db, tenant.property_id, data.room_id, data.room_type_id)

    fields = data.model_dump()
    quote = _quote_for(fields, room_type, tenant.tax_rate)

    async with room_booking_lock(db, room.id if room else None):
        if room is not None:
            await ensure_room_available(db, room, data.checkin_date, data.checkout_date)

        reservation = Reservation(
            property_id=tenant.property_id,
            client=client,
            room=room,
            room_type=room_type,
            checkin_date=data.checkin_date,
            checkout_date=data.checkout_date,
            arrival_time=data.arrival_time,
            adults=data.adults,
            children=data.children,
            discount_percent=data.discount_percent,
            status=ReservationStatus.PENDING.value,
            special_requests=data.special_requests,
            internal_notes=data.internal_notes,
        )
        apply_quote(reservation, quote)
        db.add(reservation)
        await db.flush()
        reservation.number = reservation_number(now.year, reservation.id)

        if room is not None and room.status == RoomStatus.AVAILABLE.value:
            room.status = RoomStatus.RESERVED.value

        await db.commit()

    logger.info(f"Reservation {reservation.number} created for hotel {tenant.property_id} (total {reservation.total})")
    reservation = await _load_reservation(db, reservation.id, tenant.property_id, refresh=True)
    return reservation_to_response(reservation)


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    reservation_id: int,
    data: ReservationUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a Pending or Confirmed reservation.

    Lodging figures are re-quoted; posted charges and payments are kept and
    the balance is recomputed from them.
    """
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    if reservation.status not in EDITABLE_STATUSES:
        raise BadRequest(f"A reservation in status {reservation.status} cannot be edited")

    updates = data.model_dump(exclude_unset=True)
    fields = {
        "checkin_date": reservation.checkin_date,
        "checkout_date": reservation.checkout_date,
        "adults": reservation.adults,
        "children": reservation.children,
        "nightly_rate": reservation.nightly_rate,
        "discount_percent": reservation.discount_percent,
        "discount_amount": None if reservation.discount_percent is not None else reservation.discount_amount,
    }
    if updates.get("room_id", reservation.room_id) != reservation.room_id or \
            updates.get("room_type_id", reservation.room_type_id) != reservation.room_type_id:
        # A new room or type is re-priced at its base rate unless a rate is given
        fields["nightly_rate"] = None
    if "discount_percent" in updates:
        fields["discount_amount"] = None
    if "discount_amount" in updates:
        fields["discount_percent"] = None
    fields.update(updates)

    old_room = reservation.room
    room_id = updates["room_id"] if "room_id" in updates else reservation.room_id
    room_type_id = updates.get("room_type_id") or (None if "room_id" in updates else reservation.room_type_id)
    room, room_type = await _resolve_room_and_type(db, tenant.property_id, room_id, room_type_id)

    quote = _quote_for(fields, room_type, tenant.tax_rate)

    async with room_booking_lock(db, room.id if room else None):
        if room is not None:
            await ensure_room_available(
                db, room, fields["checkin_date"], fields["checkout_date"],
                exclude_reservation_id=reservation.id,
            )

        for field in ("checkin_date", "checkout_date", "arrival_time", "adults", "children",
                      "special_requests", "internal_notes"):
            if field in updates:
                setattr(reservation, field, updates[field])
        reservation.room = room
        reservation.room_type = room_type
        reservation.discount_percent = fields["discount_percent"]
        apply_quote(reservation, quote)

        if old_room is not None and (room is None or old_room.id != room.id):
            await db.flush()
            await release_room(db, reservation, old_room)
        if room is not None and room.status == RoomStatus.AVAILABLE.value:
            room.status = RoomStatus.RESERVED.value

        await db.commit()

    reservation = await _load_reservation(db, reservation.id, tenant.property_id, refresh=True)
    return reservation_to_response(reservation)


# =============================================================================
# TRANSITIONS
# =============================================================================

@router.patch("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    ensure_transition(reservation.status, ReservationStatus.CONFIRMED.value)

    reservation.status = ReservationStatus.CONFIRMED.value
    await db.commit()

    logger.info(f"Reservation {reservation.number} confirmed")
    return reservation_to_response(reservation)


@router.patch("/{reservation_id}/checkin", response_model=ReservationResponse)
async def check_in(
    reservation_id: int,
    data: Optional[CheckInRequest] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """
    Check the guest in.

    Uses the room from the payload, else the one already assigned. The room
    becomes Occupied and the client's stay counter goes up by one.
    """
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    ensure_transition(reservation.status, ReservationStatus.CHECK_IN.value)

    room_id = (data.room_id if data else None) or reservation.room_id
    if room_id is None:
        raise NoRoomAssigned()
    room = await _load_room(db, room_id, tenant.property_id)
    old_room = reservation.room

    async with room_booking_lock(db, room.id):
        occupied_by_other = await db.scalar(
            select(func.count(Reservation.id)).where(
                Reservation.room_id == room.id,
                Reservation.id != reservation.id,
                Reservation.status == ReservationStatus.CHECK_IN.value,
            )
        )
        if occupied_by_other:
            raise RoomUnavailable(room.id, message=f"Room {room.number} is occupied")

        if old_room is None or old_room.id != room.id:
            await ensure_room_available(
                db, room, reservation.checkin_date, reservation.checkout_date,
                exclude_reservation_id=reservation.id,
            )

        reservation.room = room
        if reservation.room_type_id is None:
            reservation.room_type_id = room.room_type_id
        reservation.status = ReservationStatus.CHECK_IN.value
        reservation.actual_checkin_at = now
        room.status = RoomStatus.OCCUPIED.value
        reservation.client.total_stays = (reservation.client.total_stays or 0) + 1

        if old_room is not None and old_room.id != room.id:
            await db.flush()
            await release_room(db, reservation, old_room)

        await db.commit()

    logger.info(f"Reservation {reservation.number} checked in to room {room.number}")
    return reservation_to_response(reservation)


@router.patch("/{reservation_id}/checkout", response_model=ReservationResponse)
async def check_out(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """
    Check the guest out. Refused while a balance is due.

    The room returns to Available with housekeeping Dirty, and a high
    priority checkout cleaning task is queued for today.
    """
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    ensure_transition(reservation.status, ReservationStatus.CHECK_OUT.value)

    balance = recompute_balance(reservation)
    if balance > 0:
        raise OutstandingBalance(balance=balance)

    reservation.status = ReservationStatus.CHECK_OUT.value
    reservation.actual_checkout_at = now

    room = reservation.room
    if room is not None:
        room.status = RoomStatus.AVAILABLE.value
        room.housekeeping_status = HousekeepingStatus.DIRTY.value
        db.add(HousekeepingTask(
            property_id=tenant.property_id,
            room_id=room.id,
            task_date=tenant.today(now),
            task_type=HousekeepingTaskType.CHECKOUT.value,
            priority=TaskPriority.HIGH.value,
            status=HousekeepingTaskStatus.PENDING.value,
            notes=f"Checkout {reservation.number}",
        ))

    await db.commit()

    logger.info(f"Reservation {reservation.number} checked out")
    return reservation_to_response(reservation)


@router.patch("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    data: Optional[CancelRequest] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a reservation; the reason is appended to the internal notes."""
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    ensure_transition(reservation.status, ReservationStatus.CANCELLED.value)

    reason = data.reason if data and data.reason else None
    reservation.status = ReservationStatus.CANCELLED.value
    reservation.internal_notes = append_note(
        reservation.internal_notes, f"Cancelled: {reason}" if reason else "Cancelled"
    )
    await db.flush()
    await release_room(db, reservation, reservation.room)
    await db.commit()

    logger.info(f"Reservation {reservation.number} cancelled")
    return reservation_to_response(reservation)


@router.patch("/{reservation_id}/no-show", response_model=ReservationResponse)
async def mark_no_show(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    reservation = await _load_reservation(db, reservation_id, tenant.property_id, for_update=True)
    ensure_transition(reservation.status, ReservationStatus.NO_SHOW.value)

    reservation.status = ReservationStatus.NO_SHOW.value
    await db.flush()
    await release_room(db, reservation, reservation.room)
    await db.commit()

    logger.info(f"Reservation {reservation.number} marked as no-show")
    return reservation_to_response(reservation)
