"""
Unit tests for the access gate decision (no database involved).
"""
from datetime import datetime
from decimal import Decimal

import pytest

from access_gate import (
    Affiliation, PropertySnapshot, SubscriptionSnapshot, TenantContext, authorize, parse_property_id
)
from errors import MissingTenantIdentifier, TenantNotPermitted, NoActiveSubscription, SubscriptionExpired

NOW = datetime(2025, 6, 1, 15, 0)

HOTEL = PropertySnapshot(
    id=7,
    account_id=3,
    account_active=True,
    name="Hotel Central",
    timezone="America/Mexico_City",
    currency="MXN",
    tax_rate=Decimal("0.16"),
)


def subscription(status="active", expires_at=datetime(2025, 7, 1, 10, 0), property_id=7, account_id=3):
    return SubscriptionSnapshot(account_id=account_id, property_id=property_id, status=status, expires_at=expires_at)


def test_missing_header_is_rejected():
    with pytest.raises(MissingTenantIdentifier) as exc:
        authorize(None, Affiliation(), HOTEL, [subscription()], NOW)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("raw", ["", "  ", "abc", "7.5"])
def test_malformed_header_is_rejected(raw):
    with pytest.raises(MissingTenantIdentifier):
        parse_property_id(raw)


def test_header_is_trimmed():
    assert parse_property_id(" 7 ") == 7


def test_active_subscription_yields_context():
    context = authorize("7", Affiliation(property_id=7, account_id=3), HOTEL, [subscription()], NOW)

    assert isinstance(context, TenantContext)
    assert context.property_id == 7
    assert context.account_id == 3
    assert context.tax_rate == Decimal("0.16")
    assert context.subscription_expires_at == datetime(2025, 7, 1, 10, 0)


def test_user_bound_to_another_hotel():
    with pytest.raises(TenantNotPermitted):
        authorize("7", Affiliation(property_id=8), HOTEL, [subscription()], NOW)


def test_user_bound_to_another_account():
    with pytest.raises(TenantNotPermitted):
        authorize("7", Affiliation(account_id=99), HOTEL, [subscription()], NOW)


def test_unknown_hotel():
    with pytest.raises(TenantNotPermitted) as exc:
        authorize("7", Affiliation(), None, [], NOW)
    assert exc.value.message == "Hotel not found"


def test_no_subscription_at_all():
    with pytest.raises(NoActiveSubscription) as exc:
        authorize("7", Affiliation(), HOTEL, [], NOW)
    body = exc.value.to_dict()
    assert body["blocked"] is True
    assert body["has_subscription"] is False


def test_only_cancelled_subscriptions():
    with pytest.raises(NoActiveSubscription) as exc:
        authorize("7", Affiliation(), HOTEL, [subscription(status="cancelled")], NOW)
    assert exc.value.to_dict()["has_subscription"] is True


def test_subscription_for_another_hotel_does_not_count():
    with pytest.raises(NoActiveSubscription) as exc:
        authorize("7", Affiliation(), HOTEL, [subscription(property_id=8)], NOW)
    assert exc.value.to_dict()["has_subscription"] is False


def test_account_wide_subscription_covers_hotel():
    context = authorize("7", Affiliation(), HOTEL, [subscription(property_id=None)], NOW)
    assert context.property_id == 7


def test_disabled_account_is_blocked():
    disabled = PropertySnapshot(id=7, account_id=3, account_active=False, timezone="America/Mexico_City")
    with pytest.raises(NoActiveSubscription) as exc:
        authorize("7", Affiliation(), disabled, [subscription()], NOW)
    assert exc.value.message == "Account is disabled"
    assert exc.value.to_dict()["has_subscription"] is True


def test_expired_subscription_reports_expiry():
    expired = subscription(expires_at=datetime(2025, 5, 20, 12, 0))
    with pytest.raises(SubscriptionExpired) as exc:
        authorize("7", Affiliation(), HOTEL, [expired], NOW)

    body = exc.value.to_dict()
    assert exc.value.status_code == 403
    assert body["blocked"] is True
    assert body["expires_at"] == "2025-05-20T12:00:00"


def test_subscription_valid_through_local_expiry_date():
    # 04:00 UTC on July 2nd is still July 1st in Mexico City
    late_evening = datetime(2025, 7, 2, 4, 0)
    context = authorize("7", Affiliation(), HOTEL, [subscription()], late_evening)
    assert context.property_id == 7


def test_subscription_expires_on_next_local_day():
    next_morning = datetime(2025, 7, 2, 8, 0)
    with pytest.raises(SubscriptionExpired):
        authorize("7", Affiliation(), HOTEL, [subscription()], next_morning)


def test_latest_active_subscription_wins():
    old = subscription(expires_at=datetime(2025, 5, 1))
    renewed = subscription(expires_at=datetime(2025, 8, 1))
    context = authorize("7", Affiliation(), HOTEL, [old, renewed], NOW)
    assert context.subscription_expires_at == datetime(2025, 8, 1)


def test_context_today_uses_hotel_timezone():
    context = authorize("7", Affiliation(), HOTEL, [subscription()], NOW)
    assert context.today(datetime(2025, 6, 2, 3, 0)).isoformat() == "2025-06-01"
