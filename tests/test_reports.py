from datetime import date, datetime

import pytest

from restaurant_api.errors import ValidationError
from restaurant_api.reports import (
    DateBounds,
    detect_quarter,
    earnings_filename,
    ordinal_suffix,
    orders_filename,
    parse_date,
    resolve_date_range,
)

NOW = datetime(2024, 3, 15, 14, 30)
TODAY = NOW.date()
END_OF_TODAY = datetime(2024, 3, 15, 23, 59, 59, 999000)


def test_weeks_covers_the_last_seven_days():
    bounds = resolve_date_range("weeks", None, None, NOW)
    assert bounds.start == datetime(2024, 3, 9)
    assert bounds.end == END_OF_TODAY


def test_today_months_and_three_months():
    assert resolve_date_range("today", None, None, NOW) == DateBounds(start=datetime(2024, 3, 15), end=END_OF_TODAY)
    assert resolve_date_range("months", None, None, NOW).start == datetime(2024, 3, 1)
    assert resolve_date_range("months3", None, None, NOW).start == datetime(2023, 12, 1)


def test_custom_dates_override_preset():
    bounds = resolve_date_range("weeks", "2024-02-03", "2024-02-10", NOW)
    assert bounds.custom
    assert bounds.start == datetime(2024, 2, 3)
    assert bounds.end == datetime(2024, 2, 10, 23, 59, 59, 999000)


def test_single_custom_date_is_ignored():
    assert resolve_date_range("months", "2024-02-03", None, NOW).start == datetime(2024, 3, 1)
    assert resolve_date_range(None, None, "2024-02-10", NOW).unbounded


@pytest.mark.parametrize("date_range", [None, "all", "quarter", "custom", "bogus"])
def test_unbounded_ranges(date_range):
    assert resolve_date_range(date_range, None, None, NOW).unbounded


def test_invalid_custom_date_is_rejected():
    with pytest.raises(ValidationError):
        resolve_date_range("custom", "03/01/2024", "2024-03-31", NOW)


def test_parse_date_normalises_offsets_to_utc():
    assert parse_date("2024-03-31T22:00:00-05:00") == date(2024, 4, 1)
    assert parse_date("2024-03-31") == date(2024, 3, 31)
    assert parse_date("2024-03-31T23:30:00.000Z") == date(2024, 3, 31)
    assert parse_date("2024-03-31T23:30:00+00:00") == date(2024, 3, 31)


def test_custom_dates_accept_utc_designator():
    bounds = resolve_date_range("custom", "2024-01-01T00:00:00.000Z", "2024-03-31T00:00:00.000Z", NOW)
    assert bounds.start == datetime(2024, 1, 1)
    assert bounds.end == datetime(2024, 3, 31, 23, 59, 59, 999000)


@pytest.mark.parametrize("day,suffix", [
    (1, "st"), (2, "nd"), (3, "rd"), (4, "th"), (11, "th"), (12, "th"),
    (13, "th"), (20, "th"), (21, "st"), (22, "nd"), (23, "rd"), (31, "st"),
])
def test_ordinal_suffix(day, suffix):
    assert ordinal_suffix(day) == suffix


def test_detect_quarter():
    assert detect_quarter(date(2024, 1, 1), date(2024, 3, 31)) == (1, 2024)
    assert detect_quarter(date(2024, 10, 1), date(2024, 12, 31)) == (4, 2024)
    assert detect_quarter(date(2024, 1, 2), date(2024, 3, 31)) is None
    assert detect_quarter(date(2024, 1, 1), date(2024, 4, 30)) is None
    assert detect_quarter(date(2024, 5, 10), date(2024, 5, 20), "quarter") == (2, 2024)


@pytest.mark.parametrize("status,date_range,expected", [
    ("completed", "today", "Mar15th_completeOrders_report.xlsx"),
    ("pending", "weeks", "Mar15thWeek_pendingOrder_report.xlsx"),
    ("processing", "months", "Mar_processingOrder_report.xlsx"),
    (None, "months3", "ThreeMonths_allOrders_report.xlsx"),
    ("cancelled", "quarter", "Quarter_allOrders_report.xlsx"),
    ("completed", None, "completeOrders_report.xlsx"),
    ("pending", "all", "AllPendingOrders_report.xlsx"),
    ("processing", "custom", "AllProcessingOrders_report.xlsx"),
    (None, None, "AllOrders_report.xlsx"),
    ("", "all", "AllOrders_report.xlsx"),
])
def test_orders_filename(status, date_range, expected):
    assert orders_filename(status, date_range, TODAY) == expected


def test_earnings_filename_for_presets():
    assert earnings_filename("today", DateBounds(), TODAY) == "2024Mar15th_Earning report.xlsx"
    assert earnings_filename("weeks", DateBounds(), TODAY) == "2024Mar15thweek_earning.xlsx"
    assert earnings_filename("months", DateBounds(), TODAY) == "2024Mar_earning.xlsx"
    assert earnings_filename("months3", DateBounds(), TODAY) == "2024Mar15th_AllTime_earning.xlsx"
    assert earnings_filename("all", DateBounds(), TODAY) == "2024Mar15th_AllTime_earning.xlsx"


def test_earnings_filename_for_custom_range():
    bounds = resolve_date_range("custom", "2024-02-03", "2024-02-21", NOW)
    assert earnings_filename("custom", bounds, TODAY) == "2024Feb3rd_to_Feb21st_earning.xlsx"


def test_earnings_filename_for_quarter():
    bounds = resolve_date_range("custom", "2023-07-01", "2023-09-30", NOW)
    assert earnings_filename("custom", bounds, TODAY) == "thirdquarter_2023_report.xlsx"
