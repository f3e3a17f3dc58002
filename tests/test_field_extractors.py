"""Tests for deterministic field extraction."""

from datetime import date

import pytest

from replyflow.db.enums import ExpiryItemType, ServiceType
from replyflow.services import field_extractors
from replyflow.services.field_extractors import (
    detect_service,
    extract_counts,
    extract_expiry_dates,
    extract_expiry_hint,
    extract_fields,
    extract_identity,
    extract_nationality,
    pivot_two_digit_year,
)

TODAY = date(2026, 1, 15)


# =============================================================================
# Expiry dates
# =============================================================================


def test_explicit_dmy_date_with_keyword_is_extracted():
    expiries = extract_expiry_dates("My visa expires on 10/02/2026", TODAY)

    assert len(expiries) == 1
    assert expiries[0].item_type == ExpiryItemType.VISA_EXPIRY
    assert expiries[0].expiry_date == date(2026, 2, 10)
    assert expiries[0].matched_text == "10/02/2026"


def test_two_digit_year_is_pivoted_into_this_century():
    expiries = extract_expiry_dates("Emirates ID valid until 10/02/26", TODAY)

    assert [(e.item_type, e.expiry_date) for e in expiries] == [
        (ExpiryItemType.EMIRATES_ID_EXPIRY, date(2026, 2, 10))
    ]


@pytest.mark.parametrize(
    "year, expected",
    [(0, 2000), (26, 2026), (49, 2049), (50, 1950), (99, 1999), (2031, 2031)],
)
def test_pivot_two_digit_year(year, expected):
    assert pivot_two_digit_year(year) == expected


def test_relative_date_produces_no_structured_expiry():
    text = "My visa expires next month"

    assert extract_expiry_dates(text, TODAY) == []
    assert extract_expiry_hint(text) == "My visa expires next month"


def test_relative_phrase_disqualifies_explicit_dates_in_same_message():
    text = "Visa expires 10/02/2026 but I want to renew in 2 weeks"

    assert extract_expiry_dates(text, TODAY) == []


def test_date_without_expiry_keyword_is_ignored():
    assert extract_expiry_dates("Can we meet on 10/02/2026 at the office?", TODAY) == []


def test_month_name_dates_are_parsed():
    expiries = extract_expiry_dates("my passport expires 5th March 2027", TODAY)

    assert expiries[0].item_type == ExpiryItemType.PASSPORT_EXPIRY
    assert expiries[0].expiry_date == date(2027, 3, 5)


def test_expiry_keyword_without_document_type_is_generic():
    expiries = extract_expiry_dates("It expires on 2026-05-01", TODAY)

    assert expiries[0].item_type == ExpiryItemType.DOCUMENT_EXPIRY


def test_nearest_document_keyword_wins():
    text = "Passport is fine. Trade license expiry is 30/06/2026"

    expiries = extract_expiry_dates(text, TODAY)

    assert expiries[0].item_type == ExpiryItemType.TRADE_LICENSE_EXPIRY


def test_dates_outside_plausible_range_are_dropped():
    assert extract_expiry_dates("passport expired 01/01/2020", TODAY) == []
    assert extract_expiry_dates("visa expires 01/01/2050", TODAY) == []


def test_impossible_calendar_dates_are_dropped():
    assert extract_expiry_dates("visa expiry 31/02/2026", TODAY) == []


def test_hint_is_only_set_when_no_date_was_extracted():
    with_date = extract_fields("My visa expires on 10/02/2026", TODAY)
    without_date = extract_fields("Hello. My visa expires soon, can you help?", TODAY)

    assert with_date.expiry_hint_text is None
    assert without_date.expiries == []
    assert without_date.expiry_hint_text == "My visa expires soon, can you help?"


# =============================================================================
# Service, nationality, counts, identity
# =============================================================================


@pytest.mark.parametrize(
    "text, service, term",
    [
        ("I want a golden visa", ServiceType.GOLDEN_VISA, "golden visa"),
        ("Looking for a free zone license", ServiceType.FREEZONE_BUSINESS_SETUP, "free zone"),
        ("I need a famly visa", ServiceType.FAMILY_VISA, "famly visa"),
    ],
)
def test_detect_service(text, service, term):
    match = detect_service(text)

    assert match.service == service
    assert match.matched_term == term


def test_keyword_beats_misspelling():
    match = detect_service("golden visa or maybe famly visa")

    assert match.service == ServiceType.GOLDEN_VISA


def test_detect_service_returns_none_without_a_match():
    assert detect_service("hello there") is None
    assert detect_service("") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("I am Indian", "Indian"),
        ("I'm from Sri Lanka", "Sri Lankan"),
        ("Pakistani national here", "Pakistani"),
        ("nationality: egyptian", "Egyptian"),
        ("I am looking for a visa", None),
    ],
)
def test_extract_nationality(text, expected):
    assert extract_nationality(text) == expected


def test_extract_counts():
    counts = extract_counts("We are 3 partners and need two visas")

    assert counts.partners == 3
    assert counts.visas == 2


def test_extract_counts_ignores_out_of_range_values():
    counts = extract_counts("15 partners and 12 visas")

    assert counts.is_empty()


def test_extract_identity():
    identity = extract_identity("My name is Sara Ali, email Sara@Example.com")

    assert identity.name == "Sara Ali"
    assert identity.email == "sara@example.com"


def test_extract_identity_stops_at_common_words():
    identity = extract_identity("This is Omar Golden Visa enquiry")

    assert identity.name == "Omar"


# =============================================================================
# Aggregate
# =============================================================================


def test_extract_fields_collects_every_extractor():
    fields = extract_fields(
        "My name is Sara Ali, I am Indian. Golden visa for 2 partners. "
        "My visa expires on 10/02/2026",
        TODAY,
    )

    assert fields.service.service == ServiceType.GOLDEN_VISA
    assert fields.nationality == "Indian"
    assert fields.counts.partners == 2
    assert fields.identity.name == "Sara Ali"
    assert [e.expiry_date for e in fields.expiries] == [date(2026, 2, 10)]
    assert fields.failed_extractors == []


def test_failing_extractor_does_not_hide_the_others(monkeypatch):
    def boom(text):
        raise RuntimeError("bad pattern")

    monkeypatch.setattr(field_extractors, "detect_service", boom)

    fields = extract_fields("I am Indian, 2 partners", TODAY)

    assert fields.failed_extractors == ["service"]
    assert fields.service is None
    assert fields.nationality == "Indian"
    assert fields.counts.partners == 2
