"""
Payment Allocator

Splits an incoming payment between interest and principal and computes the
loan's balance after the payment. Installment loans are allocated
interest-first against one interval of accrued interest; bullet loans take
a split the caller has already decided.
"""

from decimal import Decimal
from dataclasses import dataclass

from .accrual import calculate_accrued_interest
from .errors import InvalidOperation, ValidationError
from .models import Loan
from .money import (
    Amount, PAYOFF_EPSILON, ZERO, is_paid_off, require_non_negative, round_money,
    to_decimal,
)


@dataclass(frozen=True)
class PaymentApplication:
    """Outcome of applying a payment to a loan"""
    new_balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    is_paid_off: bool


def _settle(current_balance: Decimal, principal_paid: Decimal, interest_paid: Decimal,
            epsilon: Decimal) -> PaymentApplication:
    principal_paid = round_money(principal_paid)
    interest_paid = round_money(interest_paid)
    # The balance moves by exactly the principal that gets stored
    new_balance = current_balance - principal_paid
    paid_off = is_paid_off(new_balance, epsilon)
    return PaymentApplication(
        # A residual such as 0.0031 is reported as exactly zero
        new_balance=round_money(ZERO) if paid_off else round_money(new_balance),
        principal_paid=principal_paid,
        interest_paid=interest_paid,
        is_paid_off=paid_off,
    )


def apply_payment(loan: Loan, payment_amount: Amount,
                  epsilon: Decimal = PAYOFF_EPSILON) -> PaymentApplication:
    """
    Allocate a payment against an installment loan

    Interest accrued for the current interval is paid first; the remainder
    reduces principal.

    Args:
        loan: Installment loan in its pre-payment state
        payment_amount: Total amount received
        epsilon: Remaining balance treated as fully repaid

    Returns:
        PaymentApplication with the split and the post-payment balance

    Raises:
        InvalidOperation: if the loan is a bullet loan
        ValidationError: if the payment amount is negative
    """
    if loan.is_bullet:
        raise InvalidOperation(
            f"Loan {loan.id} is a bullet loan; bullet payments need an explicit "
            "principal/interest split (apply_bullet_loan_payment)"
        )

    amount = require_non_negative(payment_amount, "Payment amount")
    accrued_interest = calculate_accrued_interest(loan)

    interest_paid = min(amount, accrued_interest)
    principal_paid = amount - interest_paid

    return _settle(loan.current_balance, principal_paid, interest_paid, epsilon)


def apply_bullet_loan_payment(current_balance: Amount, interest_amount: Amount,
                              principal_amount: Amount,
                              epsilon: Decimal = PAYOFF_EPSILON) -> PaymentApplication:
    """Apply a payment whose principal/interest split is already decided"""
    balance = to_decimal(current_balance)
    interest = require_non_negative(interest_amount, "Interest amount")
    principal = require_non_negative(principal_amount, "Principal amount")
    return _settle(balance, principal, interest, epsilon)


def apply_split_payment(loan: Loan, principal_amount: Amount, interest_amount: Amount,
                        epsilon: Decimal = PAYOFF_EPSILON) -> PaymentApplication:
    """Apply an explicit split to a loan of either type"""
    if principal_amount is None or interest_amount is None:
        raise ValidationError("Both principal and interest amounts are required")
    return apply_bullet_loan_payment(loan.current_balance, interest_amount,
                                     principal_amount, epsilon)
