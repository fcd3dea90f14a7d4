from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from datetime import datetime, date
from typing import List, Optional
import logging

from database import get_db
from models import Reservation, Payment, ReservationStatus
from schemas import PaymentCreate, PaymentResponse, LedgerResponse
from subscription_middleware import require_active_subscription, get_scoped_or_404, get_clock
from access_gate import TenantContext
from booking_rules import post_payment_to, refund_payment_from
from room_locks import record_lock
from timezone_utils import get_property_day_bounds
from errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def payment_to_response(payment: Payment) -> PaymentResponse:
    response = PaymentResponse.model_validate(payment)
    if payment.reservation is not None:
        response.reservation_number = payment.reservation.number
    return response


def payment_number(year: int, payment_id: int) -> str:
    return f"PAY-{year}-{payment_id:05d}"


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_method: Optional[str] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Payments of the hotel; dates are local calendar days of the hotel."""
    query = (
        select(Payment)
        .options(selectinload(Payment.reservation))
        .where(Payment.property_id == tenant.property_id)
    )
    if date_from:
        start, _ = get_property_day_bounds(date_from, tenant.timezone)
        query = query.where(Payment.paid_at >= start)
    if date_to:
        _, end = get_property_day_bounds(date_to, tenant.timezone)
        query = query.where(Payment.paid_at <= end)
    if payment_method:
        query = query.where(Payment.payment_method == payment_method)

    result = await db.execute(query.order_by(Payment.paid_at.desc(), Payment.id.desc()))
    return [payment_to_response(p) for p in result.scalars().all()]


@router.get("/reservation/{reservation_id}", response_model=List[PaymentResponse])
async def list_reservation_payments(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    await get_scoped_or_404(db, Reservation, reservation_id, tenant.property_id, "Reservation")
    result = await db.execute(
        select(Payment)
        .options(selectinload(Payment.reservation))
        .where(Payment.reservation_id == reservation_id, Payment.property_id == tenant.property_id)
        .order_by(Payment.paid_at, Payment.id)
    )
    return [payment_to_response(p) for p in result.scalars().all()]


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def post_payment(
    data: PaymentCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """Record a payment against a reservation and recompute its balance"""
    async with record_lock(db, Reservation, data.reservation_id):
        reservation = await get_scoped_or_404(db, Reservation, data.reservation_id, tenant.property_id, "Reservation", for_update=True)
        if reservation.status in (ReservationStatus.CANCELLED.value, ReservationStatus.NO_SHOW.value):
            raise BadRequest(f"Cannot take payments on a reservation in status {reservation.status}")

        payment = Payment(
            property_id=tenant.property_id,
            reservation=reservation,
            amount=data.amount,
            payment_method=data.payment_method,
            reference=data.reference,
            kind=data.kind.value,
            notes=data.notes,
            paid_at=now,
        )
        db.add(payment)
        await db.flush()
        payment.number = payment_number(now.year, payment.id)
        post_payment_to(reservation, data.amount)
        await db.commit()

    logger.info(f"Payment {payment.number} of {payment.amount} on {reservation.number}; balance {reservation.balance_due}")
    return payment_to_response(payment)


@router.delete("/{payment_id}", response_model=LedgerResponse)
async def refund_payment(
    payment_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Delete a payment (refund); the amount is taken off total_paid"""
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.property_id == tenant.property_id)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment not found")

    async with record_lock(db, Reservation, payment.reservation_id):
        reservation = await get_scoped_or_404(db, Reservation, payment.reservation_id, tenant.property_id, "Reservation", for_update=True)
        if reservation.status == ReservationStatus.CHECK_OUT.value:
            raise BadRequest("Cannot refund payments of a checked-out reservation")

        refund_payment_from(reservation, payment.amount)
        await db.delete(payment)
        await db.commit()

    logger.info(f"Payment {payment.number} refunded on {reservation.number}")
    return LedgerResponse(
        reservation_id=reservation.id,
        total=reservation.total,
        total_paid=reservation.total_paid,
        balance_due=reservation.balance_due,
    )
