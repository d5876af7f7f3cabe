"""
Calendar Helpers

All dates cross the engine boundary as ``YYYY-MM-DD`` strings and are parsed
to date-only values. No time-of-day or timezone is ever involved, so a date
cannot shift by one when the host clock runs in a different zone.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union
import calendar

from .errors import ValidationError


DateLike = Union[date, datetime, str]

DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: DateLike) -> date:
    """Parse a date-like value into a plain ``date``"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return datetime.strptime(text, DATE_FORMAT).date()
            # Full ISO timestamps keep only their calendar date
            return datetime.fromisoformat(text).date()
        except ValueError as e:
            raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from e
    raise ValidationError(f"Invalid date value: {value!r}")


def parse_optional_date(value: Optional[DateLike]) -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_date(value)


def format_date(value: DateLike) -> str:
    """Render a date in canonical ``YYYY-MM-DD`` form"""
    return parse_date(value).strftime(DATE_FORMAT)


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _shift_month(year: int, month: int, months: int):
    index = month - 1 + months
    return year + index // 12, index % 12 + 1


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the end of short months"""
    year, month = _shift_month(start_date.year, start_date.month, months)
    day = min(start_date.day, last_day_of_month(year, month))
    return date(year, month, day)


def add_months_rollover(start_date: date, months: int) -> date:
    """Add months to a date, letting days past the month end spill over

    2024-01-31 plus one month is 2024-03-02: the 31st of February does not
    exist, so the two surplus days roll into March.
    """
    year, month = _shift_month(start_date.year, start_date.month, months)
    return date(year, month, 1) + timedelta(days=start_date.day - 1)


def add_years_rollover(start_date: date, years: int) -> date:
    """Add years to a date; 29 February rolls to 1 March in common years"""
    year = start_date.year + years
    return date(year, start_date.month, 1) + timedelta(days=start_date.day - 1)
