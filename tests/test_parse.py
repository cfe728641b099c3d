from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from tripledger.utils.money import format_amount, parse_amount
from tripledger.utils.parse import normalize_date


def test_parse_amount():
    assert parse_amount("12.50") == 1250
    assert parse_amount("1,234.5") == 123450
    assert parse_amount(300) == 30000
    assert parse_amount(" 0.01 ") == 1


@pytest.mark.parametrize("value", ["abc", "", "NaN"])
def test_parse_amount_invalid(value):
    with pytest.raises(ValueError):
        parse_amount(value)


def test_format_amount():
    assert format_amount(123450) == "₹1,234.50"
    assert format_amount(-5, "EUR") == "-€0.05"
    assert format_amount(100, "jpy") == "1.00 JPY"


def test_normalize_naive_string_uses_default_zone():
    value = normalize_date("2026-01-02 10:00", ZoneInfo("Asia/Kolkata"))
    assert value == datetime(2026, 1, 2, 4, 30, tzinfo=timezone.utc)


def test_normalize_explicit_zone():
    value = normalize_date("2025-12-20 19:00 Europe/Paris")
    assert value == datetime(2025, 12, 20, 18, 0, tzinfo=timezone.utc)


def test_normalize_day_first_format():
    assert normalize_date("20.12.2025 19:00") == datetime(2025, 12, 20, 19, 0, tzinfo=timezone.utc)


def test_normalize_date_and_datetime():
    assert normalize_date(date(2026, 1, 2)) == datetime(2026, 1, 2, tzinfo=timezone.utc)
    aware = datetime(2026, 1, 2, 12, 0, tzinfo=ZoneInfo("Europe/Moscow"))
    assert normalize_date(aware) == datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", ["not a date", "2025-12-20 19:00 Mars/Base"])
def test_normalize_invalid(value):
    with pytest.raises(ValueError):
        normalize_date(value)


def test_normalize_rejects_other_types():
    with pytest.raises(TypeError):
        normalize_date(1700000000)  # type: ignore[arg-type]
