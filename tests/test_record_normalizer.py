import os
import sys
from datetime import datetime
from decimal import Decimal

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import pytest

from record_normalizer import parse_amount, parse_time_of_day, parse_timestamp


@pytest.mark.parametrize("raw, expected", [
    ("2024-01-15T14:30:00Z", datetime(2024, 1, 15, 14, 30)),
    ("2024-01-15T14:30:00+02:00", datetime(2024, 1, 15, 12, 30)),
    ("2024-01-15T14:30:00", datetime(2024, 1, 15, 14, 30)),
    ("01/15/2024", datetime(2024, 1, 15)),
    ("1/5/2024", datetime(2024, 1, 5)),
    ("2024-01-15", datetime(2024, 1, 15)),
    ("2024-1-5", datetime(2024, 1, 5)),
    ("15-01-2024", datetime(2024, 1, 15)),
])
def test_parse_timestamp_known_shapes(raw, expected):
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "yesterday", "13/45/2024", "2024-02-30", 20240115])
def test_parse_timestamp_unparseable_returns_none(raw):
    assert parse_timestamp(raw) is None


def test_parse_timestamp_is_idempotent():
    for raw in ["01/15/2024", "2024-01-15T14:30:00Z", "garbage"]:
        assert parse_timestamp(raw) == parse_timestamp(raw)


def test_separate_time_of_day_applies_to_plain_dates_only():
    assert parse_timestamp("01/15/2024", "2:30 PM") == datetime(2024, 1, 15, 14, 30)
    assert parse_timestamp("2024-01-15", "08:05") == datetime(2024, 1, 15, 8, 5)
    # an explicit time in the date wins
    assert parse_timestamp("2024-01-15T09:00:00", "14:30") == datetime(2024, 1, 15, 9, 0)
    assert parse_timestamp("2024-01-15T00:00:00", "14:30") == datetime(2024, 1, 15, 0, 0)
    assert parse_timestamp("2024-01-15T00:00:00Z", "14:30") == datetime(2024, 1, 15, 0, 0)
    # an unreadable time leaves the date alone
    assert parse_timestamp("2024-01-15", "noonish") == datetime(2024, 1, 15)


def test_parse_time_of_day():
    assert parse_time_of_day("14:30:15").hour == 14
    assert parse_time_of_day("2:30pm").minute == 30
    assert parse_time_of_day("") is None
    assert parse_time_of_day("25:00") is None


@pytest.mark.parametrize("raw, expected", [
    ("16.00", Decimal("16.00")),
    (16, Decimal("16")),
    (4.25, Decimal("4.25")),
    (Decimal("12.5"), Decimal("12.5")),
])
def test_parse_amount_non_negative_decimal(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "$16.00", "abc", True, float("nan"), "Infinity"])
def test_parse_amount_unparseable(raw):
    assert parse_amount(raw) is None


@pytest.mark.parametrize("raw", ["-6.50", -16, -4.25, Decimal("-0.01")])
def test_parse_amount_rejects_negative(raw):
    assert parse_amount(raw) is None
