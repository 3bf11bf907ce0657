from datetime import date, datetime

import pytest

from sitelog.utils.dates import elapsed_days, parse_log_date


def test_elapsed_days():
    start = date(2024, 1, 1)
    assert elapsed_days(start, date(2024, 1, 1)) == 1
    assert elapsed_days(start, date(2024, 1, 11)) == 11
    assert elapsed_days(start, date(2023, 12, 31)) == 0
    assert elapsed_days(None, date(2024, 1, 11)) is None
    # Leap day counted
    assert elapsed_days(start, date(2024, 3, 1)) == 61


def test_parse_log_date():
    assert parse_log_date("2024-03-02") == date(2024, 3, 2)
    assert parse_log_date(date(2024, 3, 2)) == date(2024, 3, 2)
    assert parse_log_date(datetime(2024, 3, 2, 23, 59)) == date(2024, 3, 2)
    with pytest.raises(ValueError):
        parse_log_date("02/03/2024")
