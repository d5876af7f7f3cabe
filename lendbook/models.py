"""
Lending Data Model

Loans and their payments, plus the parallel fixed-income assets and their
income payments. Records serialize to flat dictionaries with Decimal amounts
as strings and dates as ``YYYY-MM-DD``.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .dates import format_date, parse_date, parse_optional_date
from .errors import ValidationError
from .intervals import Cadence, IntervalUnit, coerce_unit
from .money import ZERO, CENT, to_decimal
from .storage import StorageRecord


class LoanType(Enum):
    """Loan variants; the type selects the accrual and allocation algorithm"""
    INSTALLMENT = "installment"  # Interest recomputed from the current balance
    BULLET = "bullet"            # Interest walked over the payment history


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    DEFAULTED = "defaulted"


TERMINAL_LOAN_STATUSES = (LoanStatus.PAID_OFF, LoanStatus.DEFAULTED)


class PaymentType(Enum):
    """What a payment was applied to"""
    PRINCIPAL = "principal"
    INTEREST = "interest"
    MIXED = "mixed"


class FixedIncomeType(Enum):
    """Kinds of fixed-income assets"""
    LAND_LEASE = "land_lease"
    RENT_AGREEMENT = "rent_agreement"
    FIXED_DEPOSIT_INCOME = "fixed_deposit_income"


class FixedIncomeStatus(Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {enum_cls.__name__}: {value}") from e


def derive_payment_type(principal_amount: Decimal, interest_amount: Decimal) -> PaymentType:
    """Mixed when both parts are positive, otherwise the nonzero part"""
    if principal_amount > ZERO and interest_amount > ZERO:
        return PaymentType.MIXED
    if principal_amount > ZERO:
        return PaymentType.PRINCIPAL
    return PaymentType.INTEREST


def _serialize(record: StorageRecord) -> Dict[str, Any]:
    result = StorageRecord.to_dict(record)
    for key, value in result.items():
        if isinstance(value, Enum):
            result[key] = value.value
        elif isinstance(value, date) and not isinstance(value, datetime):
            result[key] = format_date(value)
    return result


@dataclass
class Loan(StorageRecord):
    """Loan record with its mutable outstanding principal"""
    loan_type: LoanType
    principal_amount: Decimal
    interest_rate: Decimal              # Percentage per repayment interval
    start_date: date
    current_balance: Optional[Decimal] = None
    status: LoanStatus = LoanStatus.ACTIVE
    repayment_interval_unit: Optional[IntervalUnit] = None
    repayment_interval_value: Optional[int] = None
    end_date: Optional[date] = None     # Contractual maturity, informational
    borrower_id: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        self.loan_type = _coerce_enum(LoanType, self.loan_type)
        self.status = _coerce_enum(LoanStatus, self.status)
        self.principal_amount = to_decimal(self.principal_amount)
        self.interest_rate = to_decimal(self.interest_rate)
        self.start_date = parse_date(self.start_date)
        self.end_date = parse_optional_date(self.end_date)

        if self.current_balance is None:
            self.current_balance = self.principal_amount
        self.current_balance = to_decimal(self.current_balance)

        if self.repayment_interval_unit:
            self.repayment_interval_unit = coerce_unit(self.repayment_interval_unit)

        if self.principal_amount <= ZERO:
            raise ValidationError("Principal amount must be positive")
        if self.interest_rate < ZERO:
            raise ValidationError("Interest rate cannot be negative")
        if self.repayment_interval_value is not None and self.repayment_interval_value <= 0:
            raise ValidationError("Repayment interval value must be positive")
        if self.end_date and self.end_date < self.start_date:
            raise ValidationError("End date cannot be before start date")

    @property
    def cadence(self) -> Cadence:
        """Repayment cadence, monthly when unset"""
        return Cadence.from_fields(self.repayment_interval_unit, self.repayment_interval_value)

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_LOAN_STATUSES

    @property
    def is_bullet(self) -> bool:
        return self.loan_type == LoanType.BULLET

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


@dataclass
class Payment(StorageRecord):
    """Payment applied against a loan

    ``amount`` always equals ``principal_amount + interest_amount`` and
    ``payment_type`` is derived from the split; both are filled in when
    omitted and checked when given.
    """
    loan_id: str
    principal_amount: Decimal
    interest_amount: Decimal
    payment_date: date
    amount: Optional[Decimal] = None
    payment_type: Optional[PaymentType] = None
    notes: Optional[str] = None

    def __post_init__(self):
        self.principal_amount = to_decimal(self.principal_amount)
        self.interest_amount = to_decimal(self.interest_amount)
        self.payment_date = parse_date(self.payment_date)

        if self.principal_amount < ZERO or self.interest_amount < ZERO:
            raise ValidationError("Payment components cannot be negative")

        total = self.principal_amount + self.interest_amount
        if self.amount is None:
            self.amount = total
        self.amount = to_decimal(self.amount)
        if abs(self.amount - total) > CENT:
            raise ValidationError(f"Payment amount {self.amount} does not equal "
                                  f"principal {self.principal_amount} + "
                                  f"interest {self.interest_amount}")

        expected_type = derive_payment_type(self.principal_amount, self.interest_amount)
        if self.payment_type is None:
            self.payment_type = expected_type
        self.payment_type = _coerce_enum(PaymentType, self.payment_type)
        if self.payment_type != expected_type:
            raise ValidationError(f"Payment type {self.payment_type.value} does not match "
                                  f"split ({expected_type.value})")

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


@dataclass
class FixedIncome(StorageRecord):
    """Fixed-income asset paying a fixed, non-amortizing recurring amount"""
    income_type: FixedIncomeType
    amount: Decimal                     # Recurring income per interval
    start_date: date
    payment_interval_unit: Optional[IntervalUnit] = None
    payment_interval_value: Optional[int] = None
    end_date: Optional[date] = None
    payer_id: Optional[str] = None
    label: Optional[str] = None
    status: FixedIncomeStatus = FixedIncomeStatus.ACTIVE

    def __post_init__(self):
        self.income_type = _coerce_enum(FixedIncomeType, self.income_type)
        self.status = _coerce_enum(FixedIncomeStatus, self.status)
        self.amount = to_decimal(self.amount)
        self.start_date = parse_date(self.start_date)
        self.end_date = parse_optional_date(self.end_date)
        if self.payment_interval_unit:
            self.payment_interval_unit = coerce_unit(self.payment_interval_unit)

        if self.amount < ZERO:
            raise ValidationError("Fixed income amount cannot be negative")
        if self.payment_interval_value is not None and self.payment_interval_value <= 0:
            raise ValidationError("Payment interval value must be positive")

    @property
    def cadence(self) -> Cadence:
        return Cadence.from_fields(self.payment_interval_unit, self.payment_interval_value)

    @property
    def is_active(self) -> bool:
        return self.status == FixedIncomeStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


@dataclass
class IncomePayment(StorageRecord):
    """Income received from a fixed-income asset"""
    fixed_income_id: str
    amount: Decimal
    payment_date: date
    notes: Optional[str] = None

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        self.payment_date = parse_date(self.payment_date)
        if self.amount < ZERO:
            raise ValidationError("Income payment amount cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)
