"""
Room charges posted to a reservation's folio.

Posting a stocked product also moves inventory in the same transaction;
deleting a charge reverses both the folio amount and the stock.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List
import logging

from database import get_db
from models import (
    Reservation, RoomCharge, Product, ChargeConcept, InventoryMovement, StockMovementType,
    ReservationStatus, User
)
from schemas import ChargeCreate, ChargeResponse, LedgerResponse
from auth import get_current_active_user
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext
from booking_rules import price_charge, post_charge_to, reverse_charge_from
from room_locks import record_lock
from errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/charges", tags=["charges"])

CLOSED_STATUSES = (ReservationStatus.CANCELLED.value, ReservationStatus.NO_SHOW.value)


@router.get("/reservation/{reservation_id}", response_model=List[ChargeResponse])
async def list_reservation_charges(
    reservation_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    await get_scoped_or_404(db, Reservation, reservation_id, tenant.property_id, "Reservation")
    result = await db.execute(
        select(RoomCharge)
        .where(RoomCharge.reservation_id == reservation_id, RoomCharge.property_id == tenant.property_id)
        .order_by(RoomCharge.created_at, RoomCharge.id)
    )
    return result.scalars().all()


@router.post("", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def post_charge(
    data: ChargeCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Post a charge and add its tax-inclusive total to the reservation.

    A product charge decrements stock only when enough is on hand; otherwise
    the charge is still posted and stock is left as it is.
    """
    async with record_lock(db, Product, data.product_id), record_lock(db, Reservation, data.reservation_id):
        reservation = await get_scoped_or_404(db, Reservation, data.reservation_id, tenant.property_id, "Reservation", for_update=True)
        if reservation.status in CLOSED_STATUSES or reservation.status == ReservationStatus.CHECK_OUT.value:
            raise BadRequest(f"Cannot post charges to a reservation in status {reservation.status}")

        product = None
        concept = None
        description = data.description
        unit_price = data.unit_price
        taxable = True

        if data.product_id:
            product = await get_scoped_or_404(db, Product, data.product_id, tenant.property_id, "Product", for_update=True)
            description = description or product.name
            unit_price = unit_price if unit_price is not None else product.selling_price
        elif data.concept_id:
            concept = await get_scoped_or_404(db, ChargeConcept, data.concept_id, tenant.property_id, "Charge concept")
            if not concept.is_active:
                raise BadRequest(f"Charge concept '{concept.name}' is inactive")
            description = description or concept.name
            unit_price = unit_price if unit_price is not None else concept.default_price
            taxable = concept.taxable

        if not description or unit_price is None:
            raise BadRequest("description and unit_price are required without a product or concept")

        amounts = price_charge(data.quantity, unit_price, tenant.tax_rate, taxable)

        charge = RoomCharge(
            property_id=tenant.property_id,
            reservation_id=reservation.id,
            product_id=product.id if product else None,
            concept_id=concept.id if concept else None,
            description=description,
            quantity=data.quantity,
            unit_price=unit_price,
            subtotal=amounts.subtotal,
            tax=amounts.tax,
            total=amounts.total,
            notes=data.notes,
        )
        db.add(charge)

        if product is not None:
            if product.stock_on_hand >= data.quantity:
                previous = product.stock_on_hand
                product.stock_on_hand = previous - data.quantity
                charge.stock_applied = True
                db.add(InventoryMovement(
                    product_id=product.id,
                    user_id=current_user.id,
                    movement_type=StockMovementType.SALE.value,
                    quantity=data.quantity,
                    previous_stock=previous,
                    new_stock=product.stock_on_hand,
                    reference=f"Reservation {reservation.number}",
                ))
            else:
                logger.warning(
                    f"Charge on {reservation.number} posted without stock: product {product.code} "
                    f"has {product.stock_on_hand}, needed {data.quantity}"
                )

        post_charge_to(reservation, amounts.total)
        await db.commit()

    await db.refresh(charge)
    return charge


@router.delete("/{charge_id}", response_model=LedgerResponse)
async def delete_charge(
    charge_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove a charge, taking its total off the reservation and restoring any stock it used."""
    result = await db.execute(
        select(RoomCharge).where(RoomCharge.id == charge_id, RoomCharge.property_id == tenant.property_id)
    )
    charge = result.scalar_one_or_none()
    if charge is None:
        raise NotFound("Charge not found")

    async with record_lock(db, Product, charge.product_id), record_lock(db, Reservation, charge.reservation_id):
        reservation = await get_scoped_or_404(db, Reservation, charge.reservation_id, tenant.property_id, "Reservation", for_update=True)
        if reservation.status == ReservationStatus.CHECK_OUT.value:
            raise BadRequest("Cannot remove charges from a checked-out reservation")

        if charge.stock_applied and charge.product_id is not None:
            product = await get_scoped_or_404(
                db, Product, charge.product_id, tenant.property_id, "Product", include_deleted=True, for_update=True
            )
            previous = product.stock_on_hand
            product.stock_on_hand = previous + charge.quantity
            db.add(InventoryMovement(
                product_id=product.id,
                user_id=current_user.id,
                movement_type=StockMovementType.IN.value,
                quantity=charge.quantity,
                previous_stock=previous,
                new_stock=product.stock_on_hand,
                reference=f"Charge {charge.id} removed from {reservation.number}",
            ))

        reverse_charge_from(reservation, charge.total)
        await db.delete(charge)
        await db.commit()

    return LedgerResponse(
        reservation_id=reservation.id,
        total=reservation.total,
        total_paid=reservation.total_paid,
        balance_due=reservation.balance_due,
    )
