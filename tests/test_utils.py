from datetime import datetime, timedelta, timezone

import pytest

from utils import ensure_utc, from_db_str, parse_iso_to_utc, to_db_str, utc_to_user_local_display


def test_local_display():
    dt = datetime(2025, 10, 30, 3, 25, tzinfo=timezone.utc)
    assert utc_to_user_local_display(dt, "Asia/Tokyo") == "12:25, 30 October"


def test_local_display_crosses_day():
    dt = datetime(2025, 10, 30, 20, 5, tzinfo=timezone.utc)
    assert utc_to_user_local_display(dt, "Asia/Tokyo") == "05:05, 31 October"


def test_ensure_utc():
    naive = datetime(2025, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    plus_five = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=5)))
    assert ensure_utc(plus_five).hour == 7


def test_parse_iso_to_utc_rejects_empty():
    with pytest.raises(ValueError):
        parse_iso_to_utc("  ")
    with pytest.raises(ValueError):
        parse_iso_to_utc("tomorrow")


def test_db_str():
    dt = datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert from_db_str(to_db_str(dt)) == dt
    assert from_db_str("2025-01-01 12:00:00") == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_parse_iso_to_utc_overflow_is_value_error():
    with pytest.raises(ValueError):
        parse_iso_to_utc("0001-01-01T00:00:00+05:00")
