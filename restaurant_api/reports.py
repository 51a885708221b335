# Report date ranges and download filenames. Callers pass the current time in.
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pydantic
from pydantic import TypeAdapter

from .errors import ValidationError

_datetime = TypeAdapter(datetime)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
DATE_RANGES = ("all", "today", "weeks", "months", "months3", "quarter", "custom")
QUARTER_NAMES = {1: "firstquarter", 2: "secondquarter", 3: "thirdquarter", 4: "fourthquarter"}
# (start month, end month) of each calendar quarter
QUARTER_MONTHS = {(1, 3): 1, (4, 6): 2, (7, 9): 3, (10, 12): 4}

ORDER_STATUS_SUFFIX = {
    "completed": "completeOrders",
    "pending": "pendingOrder",
    "processing": "processingOrder",
}
ORDER_ALL_TIME_NAMES = {
    "completed": "completeOrders_report.xlsx",
    "pending": "AllPendingOrders_report.xlsx",
    "processing": "AllProcessingOrders_report.xlsx",
}


@dataclass(frozen=True)
class DateBounds:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    custom: bool = False
    # (quarter number, year) when a custom range covers a calendar quarter
    quarter: Optional[tuple[int, int]] = None

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time(23, 59, 59, 999000))


def parse_datetime(value: str) -> datetime:
    """ISO-8601 date or datetime (``Z`` and offsets included) as naive UTC."""
    try:
        parsed = _datetime.validate_python(value.strip())
    except pydantic.ValidationError:
        raise ValidationError(f"Invalid date: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: str) -> date:
    return parse_datetime(value).date()


def ordinal_suffix(day: int) -> str:
    if 3 < day < 21:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def detect_quarter(start: date, end: date, date_range: Optional[str] = None) -> Optional[tuple[int, int]]:
    if date_range == "quarter":
        return (start.month - 1) // 3 + 1, start.year
    if start.day != 1:
        return None
    quarter = QUARTER_MONTHS.get((start.month, end.month))
    if quarter is None:
        return None
    return quarter, start.year


def _months_back(d: date, months: int) -> date:
    month = d.month - months
    year = d.year
    while month <= 0:
        month += 12
        year -= 1
    return date(year, month, 1)


def resolve_date_range(
    date_range: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    now: datetime,
) -> DateBounds:
    """
    Custom start+end dates win over a preset, a preset wins over all time.

    ``quarter`` is picked on the client, which then sends the quarter's
    custom dates; without them it behaves like all time.
    """
    if start_date and end_date:
        start, end = parse_date(start_date), parse_date(end_date)
        return DateBounds(
            start=start_of_day(start),
            end=end_of_day(end),
            custom=True,
            quarter=detect_quarter(start, end, date_range),
        )

    today = now.date()
    if date_range == "today":
        return DateBounds(start=start_of_day(today), end=end_of_day(today))
    if date_range == "weeks":
        return DateBounds(start=start_of_day(today - timedelta(days=6)), end=end_of_day(today))
    if date_range == "months":
        return DateBounds(start=start_of_day(today.replace(day=1)), end=end_of_day(today))
    if date_range == "months3":
        return DateBounds(start=start_of_day(_months_back(today, 3)), end=end_of_day(today))
    return DateBounds()


def _day_label(d: date) -> str:
    return f"{MONTH_NAMES[d.month - 1]}{d.day}{ordinal_suffix(d.day)}"


def orders_filename(status: Optional[str], date_range: Optional[str], today: date) -> str:
    suffix = ORDER_STATUS_SUFFIX.get(status or "", "allOrders")
    month = MONTH_NAMES[today.month - 1]
    prefix = _day_label(today)
    patterns = {
        "today": f"{prefix}_{suffix}_report.xlsx",
        "weeks": f"{prefix}Week_{suffix}_report.xlsx",
        "months": f"{month}_{suffix}_report.xlsx",
        "months3": f"ThreeMonths_{suffix}_report.xlsx",
        "quarter": f"Quarter_{suffix}_report.xlsx",
    }
    if date_range in patterns:
        return patterns[date_range]
    return ORDER_ALL_TIME_NAMES.get(status or "", "AllOrders_report.xlsx")


def earnings_filename(date_range: Optional[str], bounds: DateBounds, today: date) -> str:
    year = today.year
    if bounds.quarter:
        quarter, quarter_year = bounds.quarter
        return f"{QUARTER_NAMES[quarter]}_{quarter_year}_report.xlsx"
    if date_range == "today":
        return f"{year}{_day_label(today)}_Earning report.xlsx"
    if date_range == "weeks":
        return f"{year}{_day_label(today)}week_earning.xlsx"
    if date_range == "months":
        return f"{year}{MONTH_NAMES[today.month - 1]}_earning.xlsx"
    if date_range == "custom" and bounds.custom:
        return f"{year}{_day_label(bounds.start.date())}_to_{_day_label(bounds.end.date())}_earning.xlsx"
    return f"{year}{_day_label(today)}_AllTime_earning.xlsx"
