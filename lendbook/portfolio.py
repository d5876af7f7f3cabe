"""
Portfolio View

Read-only projections over the ledger and the fixed-income book: the list
of upcoming payments with their due dates and interest due, and portfolio
totals. Nothing here mutates state.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .accrual import calculate_accrued_income, interest_due
from .dates import DateLike, parse_date
from .fixed_income import FixedIncomeBook
from .ledger import LoanLedger
from .models import FixedIncomeStatus, LoanStatus
from .money import ZERO, round_money
from .schedule import days_since_last_payment, is_overdue, next_due_date, next_income_payment_date


class AssetKind(Enum):
    LOAN = "loan"
    FIXED_INCOME = "fixed_income"


class DueStatus(Enum):
    PENDING = "pending"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class UpcomingPayment:
    """Next expected payment on a loan or fixed-income asset"""
    asset_id: str
    asset_kind: AssetKind
    asset_type: str                 # loan type or income type
    counterparty_id: Optional[str]
    due_date: str
    amount_due: Decimal             # Interest due, or the fixed income amount
    days_since_last_payment: int
    current_balance: Decimal
    status: DueStatus


@dataclass
class PortfolioSummary:
    """Totals across all loans and fixed-income assets"""
    total_loans: int = 0
    loans_by_status: Dict[str, int] = field(default_factory=dict)
    total_outstanding_balance: Decimal = ZERO
    total_paid_amount: Decimal = ZERO
    total_fixed_incomes: int = 0
    active_fixed_incomes: int = 0
    total_recurring_income: Decimal = ZERO


class PortfolioView:
    """
    Aggregates loans and fixed-income assets for display
    """

    def __init__(self, ledger: LoanLedger, fixed_income_book: FixedIncomeBook):
        self.ledger = ledger
        self.fixed_income_book = fixed_income_book

    def upcoming_payments(self, as_of: Optional[DateLike] = None) -> List[UpcomingPayment]:
        """
        Next payment of every active loan and active fixed-income asset

        Args:
            as_of: Reference date for accrual and overdue status (today if omitted)

        Returns:
            Upcoming payments ordered by due date
        """
        today = parse_date(as_of) if as_of is not None else date.today()
        upcoming: List[UpcomingPayment] = []

        for loan in self.ledger.loans.list_loans(LoanStatus.ACTIVE):
            payments = self.ledger.payments.get_payments_by_loan(loan.id)
            last_date = payments[-1].payment_date if payments else None
            due = next_due_date(loan, last_date)
            upcoming.append(UpcomingPayment(
                asset_id=loan.id,
                asset_kind=AssetKind.LOAN,
                asset_type=loan.loan_type.value,
                counterparty_id=loan.borrower_id,
                due_date=due,
                amount_due=interest_due(loan, payments, today),
                days_since_last_payment=days_since_last_payment(loan.start_date, last_date, today),
                current_balance=loan.current_balance,
                status=DueStatus.OVERDUE if is_overdue(due, today) else DueStatus.PENDING,
            ))

        book = self.fixed_income_book
        for fixed_income in book.fixed_incomes.list_fixed_incomes(FixedIncomeStatus.ACTIVE):
            last_payment = book.income_payments.get_last_income_payment(fixed_income.id)
            last_date = last_payment.payment_date if last_payment else None
            due = next_income_payment_date(fixed_income, last_date)
            upcoming.append(UpcomingPayment(
                asset_id=fixed_income.id,
                asset_kind=AssetKind.FIXED_INCOME,
                asset_type=fixed_income.income_type.value,
                counterparty_id=fixed_income.payer_id,
                due_date=due,
                amount_due=calculate_accrued_income(fixed_income),
                days_since_last_payment=days_since_last_payment(
                    fixed_income.start_date, last_date, today),
                current_balance=round_money(ZERO),
                status=DueStatus.OVERDUE if is_overdue(due, today) else DueStatus.PENDING,
            ))

        upcoming.sort(key=lambda p: (p.due_date, p.asset_id))
        return upcoming

    def summary(self) -> PortfolioSummary:
        """Counts and totals across the whole portfolio"""
        result = PortfolioSummary()
        result.loans_by_status = {status.value: 0 for status in LoanStatus}

        for loan in self.ledger.loans.list_loans():
            result.total_loans += 1
            result.loans_by_status[loan.status.value] += 1
            if loan.is_active:
                result.total_outstanding_balance += loan.current_balance

        for payment in self.ledger.payments.list_payments():
            result.total_paid_amount += payment.amount

        for fixed_income in self.fixed_income_book.fixed_incomes.list_fixed_incomes():
            result.total_fixed_incomes += 1
            if fixed_income.is_active:
                result.active_fixed_incomes += 1
                result.total_recurring_income += fixed_income.amount

        result.total_outstanding_balance = round_money(result.total_outstanding_balance)
        result.total_paid_amount = round_money(result.total_paid_amount)
        result.total_recurring_income = round_money(result.total_recurring_income)
        return result
