"""Date parsing and manipulation utilities"""

import re
from datetime import date, datetime, timedelta
from typing import List, Optional

# Date tokens as they appear at the start of statement lines
DATE_TOKEN = (
    r"(?:\d{1,2}/\d{1,2}/\d{2,4}"
    r"|\d{1,2}-\d{1,2}-\d{4}"
    r"|\d{4}-\d{2}-\d{2}"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2},?\s+\d{4}"
    r"|\d{1,2}\s+[A-Za-z]{3}\s+\d{4}"
    r"|\d{1,2}-[A-Za-z]{3}-\d{4}"
    r"|\d{1,2}/\d{1,2})"
)

DATE_START_RX = re.compile(rf"^{DATE_TOKEN}\b")

# Slashes read month-first, dashes read day-first
_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d-%m-%Y",
    "%Y-%m-%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d-%b-%Y",
)

_MONTH_DAY_RX = re.compile(r"^(\d{1,2})/(\d{1,2})$")


def parse_date(value: Optional[str], year_hint: Optional[int] = None) -> Optional[date]:
    """
    Parse a statement date token into a date.

    Day/month-only tokens (``MM/DD``) need ``year_hint``; without it they are
    rejected rather than guessed.
    """
    if not value:
        return None

    cleaned = re.sub(r"\s+", " ", value.strip()).replace(".", "")
    if not cleaned:
        return None

    month_day = _MONTH_DAY_RX.match(cleaned)
    if month_day:
        if year_hint is None:
            return None
        try:
            return date(year_hint, int(month_day.group(1)), int(month_day.group(2)))
        except ValueError:
            return None

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    return None


def year_for_month(month: int, period_start: Optional[date], period_end: Optional[date]) -> Optional[int]:
    """Pick the year of a day/month date from the statement period, handling December/January wrap"""
    if period_end is None:
        return period_start.year if period_start else None
    if period_start is not None and period_start.year != period_end.year and month > period_end.month:
        return period_start.year
    return period_end.year


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days
