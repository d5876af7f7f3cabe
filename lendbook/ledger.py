"""
Loan Ledger Module

Creates, edits and deletes payments while keeping every loan's stored
balance equal to its principal minus the principal of its current payments.
Each mutation is a read-modify-write of the loan and payment stores run
under a per-loan lock and inside one storage transaction, so a failure
leaves no partial write behind.
"""

import threading
from contextlib import ExitStack, contextmanager
from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .accrual import BulletInterest, calculate_accrued_interest, calculate_bullet_loan_interest
from .allocation import PaymentApplication, apply_payment, apply_split_payment
from .audit import AuditEventType, AuditTrail
from .config import LendbookConfig, get_config
from .dates import DateLike, parse_date
from .errors import InvalidOperation
from .intervals import IntervalUnit
from .logging_config import get_logger, log_action
from .models import Loan, LoanStatus, LoanType, Payment
from .money import Amount, CENT, ZERO, round_money
from .schedule import days_since_last_payment, next_due_date
from .storage import StorageInterface
from .stores import LoanStore, PaymentStore


def _optional_money(value: Optional[Amount]) -> Optional[Decimal]:
    return round_money(value) if value is not None else None


@dataclass(frozen=True)
class RecordedPayment:
    """Result of recording a payment: the stored payment and updated loan"""
    payment: Payment
    loan: Loan
    application: PaymentApplication


@dataclass(frozen=True)
class BalanceCheck:
    """Stored balance compared with the balance implied by the payment history"""
    loan_id: str
    stored_balance: Decimal
    expected_balance: Decimal
    drift: Decimal

    @property
    def is_consistent(self) -> bool:
        return abs(self.drift) < CENT


class LoanLedger:
    """
    Applies payments to loans and keeps loan balances consistent
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LendbookConfig] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self.loans = LoanStore(storage)
        self.payments = PaymentStore(storage)
        if audit_trail is None and self.config.enable_audit_logging:
            audit_trail = AuditTrail(storage)
        self.audit_trail = audit_trail
        self.logger = get_logger("lendbook.ledger")

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def payoff_epsilon(self) -> Decimal:
        return self.config.payoff_epsilon

    @contextmanager
    def _locked(self, *loan_ids: str):
        """Hold the locks of the given loans, always taken in id order"""
        with ExitStack() as stack:
            for loan_id in sorted(set(loan_ids)):
                with self._locks_guard:
                    lock = self._locks.setdefault(loan_id, threading.Lock())
                stack.enter_context(lock)
            yield

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: Dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(event_type, entity_type, entity_id, metadata)

    # Loans

    def create_loan(
        self,
        loan_type: Union[LoanType, str],
        principal_amount: Amount,
        interest_rate: Amount,
        start_date: DateLike,
        repayment_interval_unit: Optional[Union[IntervalUnit, str]] = None,
        repayment_interval_value: Optional[int] = None,
        end_date: Optional[DateLike] = None,
        borrower_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Loan:
        """
        Create an active loan whose balance starts at the full principal

        Args:
            loan_type: installment or bullet
            principal_amount: Amount lent
            interest_rate: Percentage charged per repayment interval
            start_date: Date the loan starts accruing
            repayment_interval_unit: days, weeks, months or years
            repayment_interval_value: Cadence multiplier
            end_date: Contractual maturity
            borrower_id: Borrower reference
            notes: Free text

        Returns:
            Created Loan
        """
        if repayment_interval_unit is None:
            repayment_interval_unit = self.config.default_interval_unit
            repayment_interval_value = repayment_interval_value or self.config.default_interval_value

        with self.storage.atomic():
            loan = self.loans.create_loan(
                loan_type=loan_type,
                principal_amount=round_money(principal_amount),
                interest_rate=interest_rate,
                start_date=start_date,
                repayment_interval_unit=repayment_interval_unit,
                repayment_interval_value=repayment_interval_value,
                end_date=end_date,
                borrower_id=borrower_id,
                notes=notes,
                status=LoanStatus.ACTIVE,
            )
            self._audit(AuditEventType.LOAN_CREATED, "loan", loan.id, {
                "loan_type": loan.loan_type,
                "principal_amount": loan.principal_amount,
                "interest_rate": loan.interest_rate,
                "start_date": loan.start_date,
                "cadence": loan.cadence.describe(),
            })

        log_action(
            self.logger, "info", f"Loan created: {loan.loan_type.value}",
            action="create_loan", resource=f"loan:{loan.id}",
            extra={"principal_amount": str(loan.principal_amount),
                   "interest_rate": str(loan.interest_rate)}
        )
        return loan

    def get_loan(self, loan_id: str) -> Loan:
        return self.loans.get_loan(loan_id)

    def get_payments(self, loan_id: str) -> List[Payment]:
        """Payment history for a loan, oldest first"""
        return self.payments.get_payments_by_loan(loan_id)

    def get_last_payment(self, loan_id: str) -> Optional[Payment]:
        return self.payments.get_last_payment_by_loan(loan_id)

    def update_loan_status(self, loan_id: str, status: Union[LoanStatus, str]) -> Loan:
        """
        Change a loan's status on the caller's request

        Raises:
            InvalidOperation: if the loan is already paid off or defaulted
        """
        status = LoanStatus(status)
        with self._locked(loan_id), self.storage.atomic():
            loan = self.loans.get_loan(loan_id)
            if loan.status == status:
                return loan
            if loan.is_terminal:
                raise InvalidOperation(
                    f"Loan {loan_id} is {loan.status.value}; its status can no longer change"
                )
            previous = loan.status
            loan = self.loans.update_loan_status(loan_id, status)
            self._audit(AuditEventType.LOAN_STATUS_CHANGED, "loan", loan_id, {
                "old_status": previous, "new_status": status
            })

        log_action(
            self.logger, "info", f"Loan status changed to {status.value}",
            action="update_loan_status", resource=f"loan:{loan_id}",
            extra={"old_status": previous.value, "new_status": status.value}
        )
        return loan

    # Payments

    def record_payment(self, loan_id: str, amount: Amount, payment_date: DateLike,
                       notes: Optional[str] = None) -> RecordedPayment:
        """
        Record a payment on an installment loan, allocated interest first

        Args:
            loan_id: Installment loan ID
            amount: Total amount received
            payment_date: Date of payment
            notes: Free text

        Returns:
            RecordedPayment with the stored payment and updated loan

        Raises:
            NotFound: if the loan does not exist
            InvalidOperation: if the loan is a bullet loan
        """
        with self._locked(loan_id), self.storage.atomic():
            loan = self.loans.get_loan(loan_id)
            application = apply_payment(loan, amount, self.payoff_epsilon)
            return self._persist_payment(loan, application, payment_date, notes)

    def record_split_payment(self, loan_id: str, principal_amount: Amount,
                             interest_amount: Amount, payment_date: DateLike,
                             notes: Optional[str] = None) -> RecordedPayment:
        """
        Record a payment with an explicit principal/interest split

        Bullet loans are always paid this way; installment loans may be.

        Raises:
            NotFound: if the loan does not exist
        """
        with self._locked(loan_id), self.storage.atomic():
            loan = self.loans.get_loan(loan_id)
            application = apply_split_payment(loan, principal_amount, interest_amount,
                                              self.payoff_epsilon)
            return self._persist_payment(loan, application, payment_date, notes)

    def _persist_payment(self, loan: Loan, application: PaymentApplication,
                         payment_date: DateLike, notes: Optional[str]) -> RecordedPayment:
        payment = self.payments.create_payment(
            loan_id=loan.id,
            principal_amount=application.principal_paid,
            interest_amount=application.interest_paid,
            payment_date=payment_date,
            notes=notes,
        )
        previous_balance = loan.current_balance
        loan = self.loans.update_loan_balance(loan.id, application.new_balance)

        self._audit(AuditEventType.PAYMENT_CREATED, "payment", payment.id, {
            "loan_id": loan.id,
            "amount": payment.amount,
            "principal_amount": payment.principal_amount,
            "interest_amount": payment.interest_amount,
            "payment_date": payment.payment_date,
        })
        self._audit(AuditEventType.LOAN_BALANCE_UPDATED, "loan", loan.id, {
            "old_balance": previous_balance, "new_balance": loan.current_balance,
            "payment_id": payment.id,
        })

        if application.is_paid_off and loan.is_active:
            loan = self.loans.update_loan_status(loan.id, LoanStatus.PAID_OFF)
            self._audit(AuditEventType.LOAN_PAID_OFF, "loan", loan.id, {
                "payment_id": payment.id, "payment_date": payment.payment_date
            })
            log_action(
                self.logger, "info", "Loan paid off",
                action="loan_paid_off", resource=f"loan:{loan.id}",
                extra={"payment_id": payment.id}
            )

        log_action(
            self.logger, "info", f"Payment recorded: {payment.payment_type.value}",
            action="create_payment", resource=f"loan:{loan.id}",
            extra={
                "payment_id": payment.id,
                "amount": str(payment.amount),
                "principal_amount": str(payment.principal_amount),
                "interest_amount": str(payment.interest_amount),
                "remaining_balance": str(loan.current_balance),
            }
        )
        return RecordedPayment(payment=payment, loan=loan, application=application)

    def edit_payment(
        self,
        payment_id: str,
        loan_id: Optional[str] = None,
        principal_amount: Optional[Amount] = None,
        interest_amount: Optional[Amount] = None,
        payment_date: Optional[DateLike] = None,
        notes: Optional[str] = None
    ) -> Payment:
        """
        Edit a payment and correct the affected loan balances

        On the same loan the balance moves by the change in principal. When
        the payment moves to another loan, the original loan gets the old
        principal back and the new loan is debited the new principal. Every
        resulting balance is floored at zero.

        Raises:
            NotFound: if the payment or either loan does not exist
        """
        while True:
            original = self.payments.get_payment(payment_id)
            target_loan_id = loan_id or original.loan_id
            with self._locked(original.loan_id, target_loan_id), self.storage.atomic():
                current = self.payments.get_payment(payment_id)
                if current.loan_id != original.loan_id:
                    continue  # Moved by another writer before the locks were taken
                return self._edit_locked(current, target_loan_id, principal_amount,
                                         interest_amount, payment_date, notes)

    def _edit_locked(self, original: Payment, target_loan_id: str,
                     principal_amount: Optional[Amount], interest_amount: Optional[Amount],
                     payment_date: Optional[DateLike], notes: Optional[str]) -> Payment:
        old_loan = self.loans.get_loan(original.loan_id)
        new_loan = old_loan if target_loan_id == old_loan.id else self.loans.get_loan(target_loan_id)

        updated = self.payments.update_payment(original.id, {
            "loan_id": target_loan_id,
            "principal_amount": _optional_money(principal_amount),
            "interest_amount": _optional_money(interest_amount),
            "payment_date": parse_date(payment_date) if payment_date is not None else None,
            "notes": notes,
        })

        if old_loan.id == new_loan.id:
            delta = updated.principal_amount - original.principal_amount
            self._set_balance(old_loan, old_loan.current_balance - delta, updated.id)
        else:
            self._set_balance(old_loan, old_loan.current_balance + original.principal_amount,
                              updated.id)
            self._set_balance(new_loan, new_loan.current_balance - updated.principal_amount,
                              updated.id)

        self._audit(AuditEventType.PAYMENT_UPDATED, "payment", updated.id, {
            "old_loan_id": original.loan_id,
            "new_loan_id": updated.loan_id,
            "old_principal_amount": original.principal_amount,
            "new_principal_amount": updated.principal_amount,
            "old_interest_amount": original.interest_amount,
            "new_interest_amount": updated.interest_amount,
        })
        log_action(
            self.logger, "info", "Payment updated",
            action="update_payment", resource=f"payment:{updated.id}",
            extra={
                "old_loan_id": original.loan_id,
                "new_loan_id": updated.loan_id,
                "principal_delta": str(updated.principal_amount - original.principal_amount),
            }
        )
        return updated

    def _set_balance(self, loan: Loan, new_balance: Decimal, payment_id: str) -> Loan:
        if new_balance < ZERO:
            log_action(
                self.logger, "warning", "Loan balance clamped at zero",
                action="clamp_balance", resource=f"loan:{loan.id}",
                extra={"computed_balance": str(new_balance), "payment_id": payment_id}
            )
            new_balance = ZERO
        new_balance = round_money(new_balance)
        if new_balance == loan.current_balance:
            return loan
        previous = loan.current_balance
        loan = self.loans.update_loan_balance(loan.id, new_balance)
        self._audit(AuditEventType.LOAN_BALANCE_UPDATED, "loan", loan.id, {
            "old_balance": previous, "new_balance": new_balance, "payment_id": payment_id
        })
        return loan

    def delete_payment(self, payment_id: str) -> Loan:
        """
        Delete a payment and give its principal back to the loan balance

        Returns:
            The loan after the balance has been restored

        Raises:
            NotFound: if the payment or its loan does not exist
        """
        while True:
            original = self.payments.get_payment(payment_id)
            with self._locked(original.loan_id), self.storage.atomic():
                payment = self.payments.get_payment(payment_id)
                if payment.loan_id != original.loan_id:
                    continue
                loan = self.loans.get_loan(payment.loan_id)
                loan = self._set_balance(loan, loan.current_balance + payment.principal_amount,
                                         payment.id)
                self.payments.delete_payment(payment.id)
                self._audit(AuditEventType.PAYMENT_DELETED, "payment", payment.id, {
                    "loan_id": loan.id,
                    "principal_amount": payment.principal_amount,
                    "interest_amount": payment.interest_amount,
                })
                break

        log_action(
            self.logger, "info", "Payment deleted",
            action="delete_payment", resource=f"loan:{loan.id}",
            extra={"payment_id": payment_id, "restored_principal": str(payment.principal_amount)}
        )
        return loan

    # Queries

    def accrued_interest(self, loan_id: str) -> Decimal:
        """Interest for one interval of an installment loan"""
        return calculate_accrued_interest(self.loans.get_loan(loan_id))

    def bullet_interest(self, loan_id: str, as_of: Optional[DateLike] = None) -> BulletInterest:
        """Interest position of a bullet loan, as of today unless given"""
        loan = self.loans.get_loan(loan_id)
        return calculate_bullet_loan_interest(
            loan, self.payments.get_payments_by_loan(loan_id), as_of or date.today()
        )

    def next_due_date(self, loan_id: str) -> str:
        loan = self.loans.get_loan(loan_id)
        last_payment = self.payments.get_last_payment_by_loan(loan_id)
        return next_due_date(loan, last_payment.payment_date if last_payment else None)

    def days_since_last_payment(self, loan_id: str, as_of: Optional[DateLike] = None) -> int:
        loan = self.loans.get_loan(loan_id)
        last_payment = self.payments.get_last_payment_by_loan(loan_id)
        return days_since_last_payment(
            loan.start_date, last_payment.payment_date if last_payment else None,
            as_of or date.today()
        )

    def check_balance(self, loan_id: str) -> BalanceCheck:
        """Compare the stored balance with principal minus principal paid

        Zero-flooring during edits can make the two drift apart; this reports
        the drift without correcting it.
        """
        loan = self.loans.get_loan(loan_id)
        principal_paid = sum((p.principal_amount for p in self.payments.get_payments_by_loan(loan_id)),
                             ZERO)
        expected = round_money(max(loan.principal_amount - principal_paid, ZERO))
        return BalanceCheck(
            loan_id=loan_id,
            stored_balance=loan.current_balance,
            expected_balance=expected,
            drift=loan.current_balance - expected,
        )
