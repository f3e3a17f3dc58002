"""Business hours checks in the business's local timezone.

Outbound automation that is not a direct reply (renewal reminders) only goes
out inside the configured window, and never on a public holiday when a
holiday country is configured.
"""

from datetime import date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

import holidays

from replyflow.core.config import settings


@lru_cache(maxsize=32)
def get_public_holidays(country: str, year: int) -> frozenset[date]:
    """Cache holiday sets per (country, year) for performance."""
    return frozenset(holidays.country_holidays(country, years=year).keys())


def to_business_time(dt: datetime, timezone: str | None = None) -> datetime:
    """Convert an aware datetime to the business's local timezone."""
    return dt.astimezone(ZoneInfo(timezone or settings.BUSINESS_TIMEZONE))


def is_public_holiday(day: date, country: str | None = None) -> bool:
    country = settings.BUSINESS_HOLIDAY_COUNTRY if country is None else country
    if not country:
        return False
    return day in get_public_holidays(country, day.year)


def is_business_time(
    dt: datetime,
    *,
    timezone: str | None = None,
    start_hour: int | None = None,
    end_hour: int | None = None,
    holiday_country: str | None = None,
) -> bool:
    """Check if ``dt`` falls inside business hours (local time, not a holiday)."""
    start_hour = settings.BUSINESS_HOURS_START if start_hour is None else start_hour
    end_hour = settings.BUSINESS_HOURS_END if end_hour is None else end_hour

    local = to_business_time(dt, timezone)
    if is_public_holiday(local.date(), holiday_country):
        return False
    return start_hour <= local.hour < end_hour


def end_of_business_day(dt: datetime, timezone: str | None = None) -> datetime:
    """
    Return the close of business for the local day containing ``dt``.

    After close, the next day's close is returned. The result is in the
    business timezone; callers store it as UTC.
    """
    local = to_business_time(dt, timezone)
    close = datetime.combine(
        local.date(), time(hour=settings.BUSINESS_HOURS_END), tzinfo=local.tzinfo
    )
    if local >= close:
        close = datetime.combine(
            local.date() + timedelta(days=1),
            time(hour=settings.BUSINESS_HOURS_END),
            tzinfo=local.tzinfo,
        )
    return close


def business_date(dt: datetime, timezone: str | None = None) -> date:
    """Local calendar date used in day-scoped idempotency keys."""
    return to_business_time(dt, timezone).date()
