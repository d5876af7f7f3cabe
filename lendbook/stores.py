"""
Record Stores

Loan, payment, fixed-income and income-payment stores over a storage
backend. They are the system of record the ledger reads from and writes
through; lookups of unknown ids raise ``NotFound``.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .accrual import sort_payments
from .errors import NotFound
from .models import FixedIncome, FixedIncomeStatus, IncomePayment, Loan, LoanStatus, Payment
from .money import to_decimal
from .storage import StorageInterface


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return str(uuid.uuid4())


class LoanStore:
    """Loan records keyed by id"""

    def __init__(self, storage: StorageInterface, table: str = "loans"):
        self.storage = storage
        self.table = table

    def create_loan(self, **fields) -> Loan:
        now = _now()
        loan = Loan(id=fields.pop('id', None) or new_record_id(),
                    created_at=now, updated_at=now, **fields)
        self.save_loan(loan)
        return loan

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.table, loan.id, loan.to_dict())

    def get_loan(self, loan_id: str) -> Loan:
        data = self.storage.load(self.table, loan_id)
        if not data:
            raise NotFound(f"Loan {loan_id} not found")
        return Loan.from_dict(data)

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        filters = {'status': status.value} if status else {}
        loans = [Loan.from_dict(data) for data in self.storage.find(self.table, filters)]
        loans.sort(key=lambda loan: (loan.start_date, loan.created_at))
        return loans

    def update_loan_balance(self, loan_id: str, new_balance: Decimal) -> Loan:
        loan = self.get_loan(loan_id)
        loan.current_balance = to_decimal(new_balance)
        loan.updated_at = _now()
        self.save_loan(loan)
        return loan

    def update_loan_status(self, loan_id: str, status: LoanStatus) -> Loan:
        loan = self.get_loan(loan_id)
        loan.status = status
        loan.updated_at = _now()
        self.save_loan(loan)
        return loan


class PaymentStore:
    """Payment records keyed by id, queryable by loan"""

    def __init__(self, storage: StorageInterface, table: str = "payments"):
        self.storage = storage
        self.table = table

    def create_payment(self, **fields) -> Payment:
        now = _now()
        payment = Payment(id=fields.pop('id', None) or new_record_id(),
                          created_at=now, updated_at=now, **fields)
        self.storage.save(self.table, payment.id, payment.to_dict())
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        data = self.storage.load(self.table, payment_id)
        if not data:
            raise NotFound(f"Payment {payment_id} not found")
        return Payment.from_dict(data)

    def update_payment(self, payment_id: str, fields: Dict[str, Any]) -> Payment:
        """Replace the given fields; amount and payment type are re-derived"""
        data = self.get_payment(payment_id).to_dict()
        data.update({k: v for k, v in fields.items() if v is not None})
        data['amount'] = None
        data['payment_type'] = None
        data['updated_at'] = _now().isoformat()
        payment = Payment.from_dict(data)
        self.storage.save(self.table, payment.id, payment.to_dict())
        return payment

    def delete_payment(self, payment_id: str) -> None:
        if not self.storage.delete(self.table, payment_id):
            raise NotFound(f"Payment {payment_id} not found")

    def get_payments_by_loan(self, loan_id: str) -> List[Payment]:
        """Payments for a loan, oldest first"""
        payments = [Payment.from_dict(data)
                    for data in self.storage.find(self.table, {'loan_id': loan_id})]
        return sort_payments(payments)

    def get_last_payment_by_loan(self, loan_id: str) -> Optional[Payment]:
        payments = self.get_payments_by_loan(loan_id)
        return payments[-1] if payments else None

    def list_payments(self) -> List[Payment]:
        return sort_payments(Payment.from_dict(data) for data in self.storage.load_all(self.table))


class FixedIncomeStore:
    """Fixed-income assets keyed by id"""

    def __init__(self, storage: StorageInterface, table: str = "fixed_incomes"):
        self.storage = storage
        self.table = table

    def create_fixed_income(self, **fields) -> FixedIncome:
        now = _now()
        fixed_income = FixedIncome(id=fields.pop('id', None) or new_record_id(),
                                   created_at=now, updated_at=now, **fields)
        self.storage.save(self.table, fixed_income.id, fixed_income.to_dict())
        return fixed_income

    def get_fixed_income(self, fixed_income_id: str) -> FixedIncome:
        data = self.storage.load(self.table, fixed_income_id)
        if not data:
            raise NotFound(f"Fixed income {fixed_income_id} not found")
        return FixedIncome.from_dict(data)

    def list_fixed_incomes(self, status: Optional[FixedIncomeStatus] = None) -> List[FixedIncome]:
        filters = {'status': status.value} if status else {}
        return [FixedIncome.from_dict(data) for data in self.storage.find(self.table, filters)]

    def update_fixed_income_status(self, fixed_income_id: str,
                                   status: FixedIncomeStatus) -> FixedIncome:
        fixed_income = self.get_fixed_income(fixed_income_id)
        fixed_income.status = status
        fixed_income.updated_at = _now()
        self.storage.save(self.table, fixed_income.id, fixed_income.to_dict())
        return fixed_income


class IncomePaymentStore:
    """Income payments keyed by id, queryable by fixed-income asset"""

    def __init__(self, storage: StorageInterface, table: str = "income_payments"):
        self.storage = storage
        self.table = table

    def create_income_payment(self, **fields) -> IncomePayment:
        now = _now()
        payment = IncomePayment(id=fields.pop('id', None) or new_record_id(),
                                created_at=now, updated_at=now, **fields)
        self.storage.save(self.table, payment.id, payment.to_dict())
        return payment

    def get_income_payment(self, payment_id: str) -> IncomePayment:
        data = self.storage.load(self.table, payment_id)
        if not data:
            raise NotFound(f"Income payment {payment_id} not found")
        return IncomePayment.from_dict(data)

    def update_income_payment(self, payment_id: str, fields: Dict[str, Any]) -> IncomePayment:
        data = self.get_income_payment(payment_id).to_dict()
        data.update({k: v for k, v in fields.items() if v is not None})
        data['updated_at'] = _now().isoformat()
        payment = IncomePayment.from_dict(data)
        self.storage.save(self.table, payment.id, payment.to_dict())
        return payment

    def delete_income_payment(self, payment_id: str) -> None:
        if not self.storage.delete(self.table, payment_id):
            raise NotFound(f"Income payment {payment_id} not found")

    def get_income_payments(self, fixed_income_id: str) -> List[IncomePayment]:
        payments = [IncomePayment.from_dict(data)
                    for data in self.storage.find(self.table, {'fixed_income_id': fixed_income_id})]
        payments.sort(key=lambda p: (p.payment_date, p.created_at))
        return payments

    def get_last_income_payment(self, fixed_income_id: str) -> Optional[IncomePayment]:
        payments = self.get_income_payments(fixed_income_id)
        return payments[-1] if payments else None
