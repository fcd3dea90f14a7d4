"""
Pricing, ledger and status rules for reservations.

Pure functions over Decimal amounts and reservation objects; the routers
call these inside their transactions.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from errors import InvalidDateRange, InvalidTransition, BadRequest, BalanceInvariantViolated
from models import ReservationStatus

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def money(value: Optional[Number]) -> Decimal:
    """Quantize to cents, half-up. None counts as zero."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# LODGING QUOTE
# =============================================================================

@dataclass(frozen=True)
class StayQuote:
    nights: int
    nightly_rate: Decimal
    extra_guest_amount: Decimal
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


def count_nights(checkin: date, checkout: date) -> int:
    nights = (checkout - checkin).days
    if nights < 1:
        raise InvalidDateRange()
    return nights


def extra_guests(adults: int, children: int, adult_capacity: Optional[int], child_capacity: Optional[int]) -> int:
    """Guests above what the room type's base price includes."""
    if adult_capacity is None:
        return 0
    extra_adults = max(0, adults - adult_capacity)
    extra_children = max(0, children - (child_capacity or 0))
    return extra_adults + extra_children


def quote_stay(
    checkin: date,
    checkout: date,
    nightly_rate: Number,
    tax_rate: Number,
    extra_guest_count: int = 0,
    extra_person_price: Number = 0,
    discount_amount: Optional[Number] = None,
    discount_percent: Optional[Number] = None,
) -> StayQuote:
    """
    Price a stay.

    subtotal = rate * nights + extra guests * extra price * nights
    The discount (flat or percentage of the subtotal) is applied before tax.
    """
    nights = count_nights(checkin, checkout)
    rate = money(nightly_rate)
    if rate < 0:
        raise BadRequest("Nightly rate cannot be negative")

    extra = money(Decimal(extra_guest_count) * money(extra_person_price) * nights)
    subtotal = money(rate * nights + extra)

    if discount_amount is not None and discount_percent is not None:
        raise BadRequest("Give either a discount amount or a discount percent, not both")

    discount = Decimal("0.00")
    if discount_percent is not None:
        percent = Decimal(str(discount_percent))
        if percent < 0 or percent > 100:
            raise BadRequest("Discount percent must be between 0 and 100")
        discount = money(subtotal * percent / 100)
    elif discount_amount is not None:
        discount = money(discount_amount)
        if discount < 0 or discount > subtotal:
            raise BadRequest("Discount must be between 0 and the lodging subtotal")

    taxable = subtotal - discount
    tax = money(taxable * Decimal(str(tax_rate)))

    return StayQuote(
        nights=nights,
        nightly_rate=rate,
        extra_guest_amount=extra,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=money(taxable + tax),
    )


# =============================================================================
# CHARGES
# =============================================================================

@dataclass(frozen=True)
class ChargeAmounts:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def price_charge(quantity: int, unit_price: Number, tax_rate: Number, taxable: bool = True) -> ChargeAmounts:
    if quantity < 1:
        raise BadRequest("Quantity must be at least 1")
    subtotal = money(Decimal(quantity) * money(unit_price))
    tax = money(subtotal * Decimal(str(tax_rate))) if taxable else Decimal("0.00")
    return ChargeAmounts(subtotal=subtotal, tax=tax, total=subtotal + tax)


# =============================================================================
# LEDGER
# =============================================================================

def apply_quote(reservation, quote: StayQuote):
    """Write lodging figures onto a reservation, keeping posted charges and payments."""
    reservation.nights = quote.nights
    reservation.nightly_rate = quote.nightly_rate
    reservation.extra_guest_amount = quote.extra_guest_amount
    reservation.lodging_subtotal = quote.subtotal
    reservation.discount_amount = quote.discount
    reservation.lodging_tax = quote.tax
    if reservation.charges_total is None:
        reservation.charges_total = Decimal("0.00")
    if reservation.total_paid is None:
        reservation.total_paid = Decimal("0.00")
    reservation.total = money(
        quote.subtotal - quote.discount + quote.tax + money(reservation.charges_total)
    )
    recompute_balance(reservation)


def post_charge_to(reservation, charge_total: Number):
    reservation.charges_total = money(money(reservation.charges_total) + money(charge_total))
    reservation.total = money(money(reservation.total) + money(charge_total))
    recompute_balance(reservation)


def reverse_charge_from(reservation, charge_total: Number):
    reservation.charges_total = money(money(reservation.charges_total) - money(charge_total))
    reservation.total = money(money(reservation.total) - money(charge_total))
    recompute_balance(reservation)


def post_payment_to(reservation, amount: Number):
    reservation.total_paid = money(money(reservation.total_paid) + money(amount))
    recompute_balance(reservation)


def refund_payment_from(reservation, amount: Number):
    reservation.total_paid = money(money(reservation.total_paid) - money(amount))
    recompute_balance(reservation)


def recompute_balance(reservation) -> Decimal:
    """balance_due is always derived from total and total_paid."""
    reservation.balance_due = money(money(reservation.total) - money(reservation.total_paid))
    if reservation.balance_due != money(reservation.total) - money(reservation.total_paid):
        raise BalanceInvariantViolated(reservation_id=reservation.id)
    return reservation.balance_due


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

TRANSITIONS = {
    ReservationStatus.PENDING: {
        ReservationStatus.CONFIRMED,
        ReservationStatus.CHECK_IN,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    },
    ReservationStatus.CONFIRMED: {
        ReservationStatus.CHECK_IN,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    },
    ReservationStatus.CHECK_IN: {ReservationStatus.CHECK_OUT},
    ReservationStatus.CHECK_OUT: set(),
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.NO_SHOW: set(),
}

# Reservations in these states still hold their room for availability checks
BLOCKING_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.CHECK_IN.value,
)

EDITABLE_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
)


def can_transition(current: str, target: str) -> bool:
    try:
        return ReservationStatus(target) in TRANSITIONS[ReservationStatus(current)]
    except ValueError:
        return False


def ensure_transition(current: str, target: str):
    if not can_transition(current, target):
        raise InvalidTransition(current=current, target=target)


def dates_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open [checkin, checkout) ranges; a checkout day can be the next checkin day."""
    return start_a < end_b and start_b < end_a


def append_note(existing: Optional[str], note: str) -> str:
    if not existing:
        return note
    return f"{existing}\n{note}"
