"""Tests for business hours in the business timezone."""

from datetime import date, datetime, timezone

import pytest

from replyflow.utils.business_hours import (
    business_date,
    end_of_business_day,
    is_business_time,
    is_public_holiday,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "dt, expected",
    [
        (_utc(2026, 3, 10, 4, 59), False),  # 08:59 Dubai
        (_utc(2026, 3, 10, 5, 0), True),  # 09:00
        (_utc(2026, 3, 10, 16, 59), True),  # 20:59
        (_utc(2026, 3, 10, 17, 0), False),  # 21:00
    ],
)
def test_business_hours_window(dt, expected):
    assert is_business_time(dt, holiday_country="") is expected


def test_custom_hours_and_timezone():
    dt = _utc(2026, 3, 10, 8, 30)

    assert is_business_time(dt, timezone="Europe/London", start_hour=8, end_hour=17, holiday_country="")
    assert not is_business_time(dt, timezone="Asia/Tokyo", start_hour=8, end_hour=17, holiday_country="")


def test_public_holidays():
    assert is_public_holiday(date(2026, 1, 1), "AE")
    assert not is_public_holiday(date(2026, 3, 10), "AE")
    assert not is_public_holiday(date(2026, 1, 1), "")


def test_holiday_is_outside_business_time():
    assert not is_business_time(_utc(2026, 1, 1, 6, 0), holiday_country="AE")


def test_end_of_business_day():
    close = end_of_business_day(_utc(2026, 3, 10, 6, 0))

    assert close == _utc(2026, 3, 10, 17, 0)


def test_end_of_business_day_after_close_rolls_over():
    close = end_of_business_day(_utc(2026, 3, 10, 18, 0))

    assert close == _utc(2026, 3, 11, 17, 0)


def test_business_date_uses_local_calendar():
    assert business_date(_utc(2026, 3, 10, 21, 0)) == date(2026, 3, 11)
    assert business_date(_utc(2026, 3, 10, 19, 59)) == date(2026, 3, 10)
