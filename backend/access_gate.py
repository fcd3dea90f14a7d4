"""
Access gate for operative endpoints.

Decides whether a request may act on a hotel. All inputs are passed in
explicitly (including the clock) so the decision can be tested without a
database; subscription_middleware.py loads the rows and calls authorize().
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Sequence

from errors import (
    MissingTenantIdentifier, TenantNotPermitted, NoActiveSubscription, SubscriptionExpired
)
from timezone_utils import utc_to_property_date, get_property_today


ACTIVE_STATE = "active"


@dataclass(frozen=True)
class Affiliation:
    """Fixed property/account the authenticated user is bound to (None = unrestricted)."""
    property_id: Optional[int] = None
    account_id: Optional[int] = None


@dataclass(frozen=True)
class PropertySnapshot:
    id: int
    account_id: int
    account_active: bool
    name: str = ""
    timezone: Optional[str] = None
    currency: str = "MXN"
    tax_rate: Decimal = Decimal("0.16")


@dataclass(frozen=True)
class SubscriptionSnapshot:
    account_id: int
    property_id: Optional[int]
    status: str
    expires_at: datetime

    def covers(self, prop: PropertySnapshot) -> bool:
        if self.property_id is not None:
            return self.property_id == prop.id
        return self.account_id == prop.account_id


@dataclass(frozen=True)
class TenantContext:
    """Resolved hotel for the current request."""
    property_id: int
    account_id: int
    name: str = ""
    timezone: Optional[str] = None
    currency: str = "MXN"
    tax_rate: Decimal = Decimal("0.16")
    subscription_expires_at: Optional[datetime] = field(default=None, compare=False)

    def today(self, now: Optional[datetime] = None) -> date:
        return get_property_today(self.timezone, now)


def parse_property_id(raw: Optional[str]) -> int:
    """Parse the x-hotel-id header value."""
    if raw is None or not str(raw).strip():
        raise MissingTenantIdentifier()
    try:
        return int(str(raw).strip())
    except ValueError:
        raise MissingTenantIdentifier("Hotel ID must be an integer")


def authorize(
    raw_property_id: Optional[str],
    affiliation: Affiliation,
    prop: Optional[PropertySnapshot],
    subscriptions: Sequence[SubscriptionSnapshot],
    now: datetime,
) -> TenantContext:
    """
    Resolve the requested hotel into a TenantContext or raise.

    A subscription is valid through the end of its expiration date, measured
    in the property's timezone.

    Raises:
        MissingTenantIdentifier: header absent or not an integer
        TenantNotPermitted: hotel unknown or outside the user's affiliation
        NoActiveSubscription: account disabled or no subscription in state active
        SubscriptionExpired: active subscriptions exist but all expired
    """
    property_id = parse_property_id(raw_property_id)

    if affiliation.property_id is not None and affiliation.property_id != property_id:
        raise TenantNotPermitted()

    if prop is None or prop.id != property_id:
        raise TenantNotPermitted("Hotel not found")

    if affiliation.account_id is not None and affiliation.account_id != prop.account_id:
        raise TenantNotPermitted()

    relevant = [s for s in subscriptions if s.covers(prop)]

    if not prop.account_active:
        raise NoActiveSubscription(has_subscription=bool(relevant), message="Account is disabled")

    active = [s for s in relevant if s.status == ACTIVE_STATE]
    if not active:
        raise NoActiveSubscription(has_subscription=bool(relevant))

    today = get_property_today(prop.timezone, now)
    latest = max(active, key=lambda s: s.expires_at)

    if utc_to_property_date(latest.expires_at, prop.timezone) < today:
        raise SubscriptionExpired(expires_at=latest.expires_at)

    return TenantContext(
        property_id=prop.id,
        account_id=prop.account_id,
        name=prop.name,
        timezone=prop.timezone,
        currency=prop.currency,
        tax_rate=prop.tax_rate,
        subscription_expires_at=latest.expires_at,
    )
