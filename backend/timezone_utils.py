"""
Timezone utilities for property-aware date handling.

Timestamps are stored as naive UTC. A hotel's "today" (arrivals, departures,
housekeeping rosters, subscription expiry) is the calendar date in the
property's own timezone, which can differ from the UTC date by a day.
"""
from datetime import datetime, date, timedelta
from typing import Optional
import pytz

from config import settings


def get_property_timezone(property_timezone: Optional[str] = None) -> pytz.timezone:
    """
    Get pytz timezone object for a property.

    Args:
        property_timezone: Timezone string (e.g., "America/Mexico_City")

    Returns:
        pytz timezone object
    """
    try:
        return pytz.timezone(property_timezone or settings.DEFAULT_TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        # Fallback to UTC if invalid timezone
        return pytz.UTC


def utc_to_property_date(utc_datetime: datetime, property_timezone: Optional[str] = None) -> date:
    """
    Convert a UTC datetime to the calendar date in the property's timezone.

    Args:
        utc_datetime: UTC datetime (naive or aware)
        property_timezone: Timezone string

    Returns:
        Date in the property's timezone
    """
    tz = get_property_timezone(property_timezone)

    if utc_datetime.tzinfo is None:
        utc_datetime = utc_datetime.replace(tzinfo=pytz.UTC)

    return utc_datetime.astimezone(tz).date()


def get_property_today(property_timezone: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Get the current date in the property's timezone.

    `now` is a UTC datetime; defaults to the wall clock.
    """
    return utc_to_property_date(now or datetime.utcnow(), property_timezone)


def get_property_day_bounds(day: date, property_timezone: Optional[str] = None) -> tuple[datetime, datetime]:
    """
    Naive UTC datetimes bounding a local calendar day in the property timezone.

    Used to filter stored UTC timestamps (payments, movements) by local date.
    """
    tz = get_property_timezone(property_timezone)
    local_start = tz.localize(datetime.combine(day, datetime.min.time()))
    local_end = local_start + timedelta(days=1) - timedelta(microseconds=1)

    start_utc = local_start.astimezone(pytz.UTC).replace(tzinfo=None)
    end_utc = local_end.astimezone(pytz.UTC).replace(tzinfo=None)
    return start_utc, end_utc
