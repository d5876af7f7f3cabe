"""
Interest Accrual Module

Computes the interest a loan has accrued. Installment loans use a single
per-interval formula on the current balance. Bullet loans walk the full
payment history, because their principal can shrink between two accrual
calculations and interest owed depends on when that happened.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Iterable, List

from .dates import DateLike, parse_date
from .errors import InvalidOperation
from .intervals import cadence_intervals
from .models import FixedIncome, Loan, LoanType, Payment
from .money import ZERO, round_money


HUNDRED = Decimal('100')


@dataclass(frozen=True)
class BulletInterest:
    """Interest position of a bullet loan as of a date"""
    total_interest_accrued: Decimal
    total_interest_paid: Decimal
    pending_interest: Decimal

    @classmethod
    def zero(cls) -> 'BulletInterest':
        return cls(round_money(ZERO), round_money(ZERO), round_money(ZERO))


def sort_payments(payments: Iterable[Payment]) -> List[Payment]:
    """Order payments chronologically, oldest first"""
    return sorted(payments, key=lambda p: (p.payment_date, p.created_at))


def calculate_accrued_interest(loan: Loan) -> Decimal:
    """
    Interest owed for one repayment interval of an installment loan

    ``current_balance × interest_rate / 100``, rounded half-up to the cent.

    Raises:
        InvalidOperation: if the loan is a bullet loan
    """
    if loan.loan_type != LoanType.INSTALLMENT:
        raise InvalidOperation(
            f"Loan {loan.id} is a {loan.loan_type.value} loan; "
            "use calculate_bullet_loan_interest for bullet loans"
        )

    if loan.interest_rate <= ZERO or loan.current_balance <= ZERO:
        return round_money(ZERO)

    return round_money(loan.current_balance * (loan.interest_rate / HUNDRED))


def calculate_bullet_loan_interest(loan: Loan, payments: Iterable[Payment],
                                   as_of: DateLike) -> BulletInterest:
    """
    Walk a bullet loan's payment history to compute its interest position

    Each span between consecutive payments accrues interest on the principal
    outstanding during that span, counted in complete cadences only. A final
    span runs from the last payment (or the start date) to ``as_of``.

    Args:
        loan: Bullet loan
        payments: Payments for the loan, in any order
        as_of: Date the accrual is computed up to

    Returns:
        BulletInterest with accrued, paid and pending totals

    Raises:
        InvalidOperation: if the loan is not a bullet loan
    """
    if loan.loan_type != LoanType.BULLET:
        raise InvalidOperation(
            f"Loan {loan.id} is a {loan.loan_type.value} loan; "
            "use calculate_accrued_interest for installment loans"
        )

    if loan.interest_rate <= ZERO or loan.principal_amount <= ZERO:
        return BulletInterest.zero()

    target = parse_date(as_of)
    cadence = loan.cadence
    rate = loan.interest_rate / HUNDRED

    principal = loan.principal_amount
    cursor: date = loan.start_date
    accrued = ZERO
    paid_interest = ZERO

    for payment in sort_payments(payments):
        if payment.loan_id != loan.id or payment.payment_date > target:
            continue
        intervals = cadence_intervals(cursor, payment.payment_date, cadence)
        accrued += max(principal, ZERO) * rate * intervals
        paid_interest += payment.interest_amount
        principal -= payment.principal_amount
        # Payments dated before the start never move the cursor backwards
        cursor = max(cursor, payment.payment_date)

    intervals = cadence_intervals(cursor, target, cadence)
    accrued += max(principal, ZERO) * rate * intervals

    return BulletInterest(
        total_interest_accrued=round_money(accrued),
        total_interest_paid=round_money(paid_interest),
        pending_interest=round_money(accrued - paid_interest),
    )


def calculate_accrued_income(fixed_income: FixedIncome) -> Decimal:
    """Income due per interval of a fixed-income asset: its fixed amount"""
    if fixed_income.amount <= ZERO:
        return round_money(ZERO)
    return round_money(fixed_income.amount)


def interest_due(loan: Loan, payments: Iterable[Payment], as_of: DateLike) -> Decimal:
    """Interest currently due on a loan of either type

    Installment loans report one interval of interest on the current
    balance; bullet loans report their pending (accrued minus paid) interest.
    """
    if loan.is_bullet:
        return calculate_bullet_loan_interest(loan, payments, as_of).pending_interest
    return calculate_accrued_interest(loan)
