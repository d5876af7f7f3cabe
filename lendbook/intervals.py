"""
Interval Calculator

Counts complete repayment cadences between two calendar dates. A cadence is
a unit (days, weeks, months, years) and a positive multiplier; partial
cadences never count.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union

from .dates import DateLike, parse_date
from .errors import ValidationError


class IntervalUnit(Enum):
    """Units a repayment cadence can be expressed in"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


@dataclass(frozen=True)
class Cadence:
    """Repayment interval: a unit and a positive multiplier"""
    unit: IntervalUnit = IntervalUnit.MONTHS
    value: int = 1

    def __post_init__(self):
        if not isinstance(self.unit, IntervalUnit):
            object.__setattr__(self, 'unit', coerce_unit(self.unit))
        if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value <= 0:
            raise ValidationError(f"Interval multiplier must be a positive integer, got {self.value!r}")

    @classmethod
    def from_fields(cls, unit: Optional[Union[IntervalUnit, str]],
                    value: Optional[int]) -> 'Cadence':
        """Build a cadence from stored fields, defaulting to monthly when unset"""
        if not unit or not value:
            return cls()
        return cls(coerce_unit(unit), value)

    def describe(self) -> str:
        if self.value == 1:
            return f"every {self.unit.value[:-1]}"
        return f"every {self.value} {self.unit.value}"


def coerce_unit(unit: Union[IntervalUnit, str]) -> IntervalUnit:
    if isinstance(unit, IntervalUnit):
        return unit
    try:
        return IntervalUnit(str(unit).lower())
    except ValueError as e:
        raise ValidationError(f"Unknown interval unit: {unit}") from e


def intervals_elapsed(start: DateLike, end: DateLike,
                      unit: Union[IntervalUnit, str], multiplier: int) -> int:
    """
    Count complete cadences between two dates

    Args:
        start: Date the counting starts from
        end: Date the counting stops at
        unit: Cadence unit
        multiplier: Cadence multiplier (positive)

    Returns:
        Number of whole cadences elapsed, never negative
    """
    cadence = Cadence(coerce_unit(unit), multiplier)
    start_date = parse_date(start)
    end_date = parse_date(end)

    if end_date <= start_date:
        return 0

    if cadence.unit == IntervalUnit.DAYS:
        return (end_date - start_date).days // cadence.value

    if cadence.unit == IntervalUnit.WEEKS:
        return (end_date - start_date).days // (cadence.value * 7)

    if cadence.unit == IntervalUnit.MONTHS:
        months = (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)
        if end_date.day < start_date.day:
            months -= 1  # Final month not complete yet
        return max(0, months) // cadence.value

    years = end_date.year - start_date.year
    if (end_date.month < start_date.month or
            (end_date.month == start_date.month and end_date.day < start_date.day)):
        years -= 1
    return max(0, years) // cadence.value


def cadence_intervals(start: date, end: date, cadence: Cadence) -> int:
    """Count complete cadences using a ``Cadence`` object"""
    return intervals_elapsed(start, end, cadence.unit, cadence.value)
