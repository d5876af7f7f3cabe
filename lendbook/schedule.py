"""
Due-Date Projector

Projects the next contractual due date of a loan or fixed-income asset from
its start date, its repayment cadence and, when one exists, the date of the
last payment.

Month cadences behave differently depending on the base date. Counting from
the start date keeps the start's day of month as the anchor and clamps it to
short months (a loan started on the 31st falls due on the 30th in a 30-day
month). Counting from a last payment adds calendar months with rollover, so
a payment on 31 January is followed by a due date of 2 or 3 March.
"""

from datetime import date, timedelta
from typing import Optional, Union

from .dates import (
    DateLike, add_months, add_months_rollover, add_years_rollover,
    format_date, parse_date, parse_optional_date,
)
from .intervals import Cadence, IntervalUnit
from .models import FixedIncome, Loan


def project_due_date(start_date: DateLike, cadence: Cadence,
                     last_payment_date: Optional[DateLike] = None) -> date:
    """
    Project the next due date as a ``date``

    Args:
        start_date: Start of the agreement
        cadence: Repayment cadence
        last_payment_date: Date of the most recent payment, if any

    Returns:
        Next due date
    """
    start = parse_date(start_date)
    last_payment = parse_optional_date(last_payment_date)
    base_date = last_payment or start

    if cadence.unit == IntervalUnit.DAYS:
        return base_date + timedelta(days=cadence.value)
    if cadence.unit == IntervalUnit.WEEKS:
        return base_date + timedelta(days=cadence.value * 7)
    if cadence.unit == IntervalUnit.YEARS:
        return add_years_rollover(base_date, cadence.value)

    if last_payment is None:
        # Keep the start's day of month, clamped to the target month length
        return add_months(start, cadence.value)
    return add_months_rollover(last_payment, cadence.value)


def next_due_date(loan: Loan, last_payment_date: Optional[DateLike] = None) -> str:
    """Next contractual due date of a loan in ``YYYY-MM-DD`` form"""
    return format_date(project_due_date(loan.start_date, loan.cadence, last_payment_date))


def next_income_payment_date(fixed_income: FixedIncome,
                             last_payment_date: Optional[DateLike] = None) -> str:
    """Next expected income date of a fixed-income asset in ``YYYY-MM-DD`` form"""
    return format_date(project_due_date(fixed_income.start_date, fixed_income.cadence,
                                        last_payment_date))


def days_since_last_payment(start_date: DateLike, last_payment_date: Optional[DateLike],
                            as_of: DateLike) -> int:
    """Days between the last payment (or the start date) and ``as_of``"""
    reference = parse_optional_date(last_payment_date) or parse_date(start_date)
    return (parse_date(as_of) - reference).days


def is_overdue(due_date: Union[str, date], as_of: DateLike) -> bool:
    """A due date strictly before ``as_of`` is overdue"""
    return parse_date(due_date) < parse_date(as_of)
