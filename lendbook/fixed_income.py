"""
Fixed Income Module

Leases, rent agreements and deposit income: assets that pay a fixed,
non-amortizing amount every interval. There is no balance to maintain, so
recording income is a plain write; the accrued income of an asset is its
fixed amount.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional, Union

from .accrual import calculate_accrued_income
from .audit import AuditEventType, AuditTrail
from .config import LendbookConfig, get_config
from .dates import DateLike, parse_date
from .errors import InvalidOperation
from .intervals import IntervalUnit
from .logging_config import get_logger, log_action
from .models import FixedIncome, FixedIncomeStatus, FixedIncomeType, IncomePayment
from .money import Amount
from .schedule import days_since_last_payment, next_income_payment_date
from .storage import StorageInterface
from .stores import FixedIncomeStore, IncomePaymentStore


class FixedIncomeBook:
    """
    Manages fixed-income assets and the income received from them
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LendbookConfig] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self.fixed_incomes = FixedIncomeStore(storage)
        self.income_payments = IncomePaymentStore(storage)
        if audit_trail is None and self.config.enable_audit_logging:
            audit_trail = AuditTrail(storage)
        self.audit_trail = audit_trail
        self.logger = get_logger("lendbook.fixed_income")

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(event_type, entity_type, entity_id, metadata)

    def create_fixed_income(
        self,
        income_type: Union[FixedIncomeType, str],
        amount: Amount,
        start_date: DateLike,
        payment_interval_unit: Optional[Union[IntervalUnit, str]] = None,
        payment_interval_value: Optional[int] = None,
        end_date: Optional[DateLike] = None,
        payer_id: Optional[str] = None,
        label: Optional[str] = None
    ) -> FixedIncome:
        """
        Register a fixed-income asset

        Args:
            income_type: land_lease, rent_agreement or fixed_deposit_income
            amount: Income expected every interval
            start_date: Date the agreement starts
            payment_interval_unit: days, weeks, months or years
            payment_interval_value: Cadence multiplier
            end_date: End of a fixed-term agreement
            payer_id: Tenant or payer reference
            label: Display label

        Returns:
            Created FixedIncome
        """
        if payment_interval_unit is None:
            payment_interval_unit = self.config.default_interval_unit
            payment_interval_value = payment_interval_value or self.config.default_interval_value

        with self.storage.atomic():
            fixed_income = self.fixed_incomes.create_fixed_income(
                income_type=income_type,
                amount=amount,
                start_date=start_date,
                payment_interval_unit=payment_interval_unit,
                payment_interval_value=payment_interval_value,
                end_date=end_date,
                payer_id=payer_id,
                label=label,
            )
            self._audit(AuditEventType.FIXED_INCOME_CREATED, "fixed_income", fixed_income.id, {
                "income_type": fixed_income.income_type,
                "amount": fixed_income.amount,
                "start_date": fixed_income.start_date,
            })

        log_action(
            self.logger, "info", f"Fixed income created: {fixed_income.income_type.value}",
            action="create_fixed_income", resource=f"fixed_income:{fixed_income.id}",
            extra={"amount": str(fixed_income.amount)}
        )
        return fixed_income

    def get_fixed_income(self, fixed_income_id: str) -> FixedIncome:
        return self.fixed_incomes.get_fixed_income(fixed_income_id)

    def update_status(self, fixed_income_id: str,
                      status: Union[FixedIncomeStatus, str]) -> FixedIncome:
        """Terminate, expire or reactivate an asset"""
        status = FixedIncomeStatus(status)
        with self.storage.atomic():
            previous = self.fixed_incomes.get_fixed_income(fixed_income_id).status
            fixed_income = self.fixed_incomes.update_fixed_income_status(fixed_income_id, status)
            self._audit(AuditEventType.FIXED_INCOME_STATUS_CHANGED, "fixed_income",
                        fixed_income_id, {"old_status": previous, "new_status": status})

        log_action(
            self.logger, "info", f"Fixed income status changed to {status.value}",
            action="update_fixed_income_status", resource=f"fixed_income:{fixed_income_id}",
            extra={"old_status": previous.value, "new_status": status.value}
        )
        return fixed_income

    def record_income_payment(self, fixed_income_id: str, amount: Amount,
                              payment_date: DateLike,
                              notes: Optional[str] = None) -> IncomePayment:
        """
        Record income received from an asset

        Raises:
            NotFound: if the asset does not exist
            InvalidOperation: if the asset is no longer active
        """
        with self.storage.atomic():
            fixed_income = self.fixed_incomes.get_fixed_income(fixed_income_id)
            if not fixed_income.is_active:
                raise InvalidOperation(
                    f"Fixed income {fixed_income_id} is {fixed_income.status.value}"
                )
            payment = self.income_payments.create_income_payment(
                fixed_income_id=fixed_income_id,
                amount=amount,
                payment_date=payment_date,
                notes=notes,
            )
            self._audit(AuditEventType.INCOME_PAYMENT_CREATED, "income_payment", payment.id, {
                "fixed_income_id": fixed_income_id,
                "amount": payment.amount,
                "payment_date": payment.payment_date,
            })

        log_action(
            self.logger, "info", "Income payment recorded",
            action="create_income_payment", resource=f"fixed_income:{fixed_income_id}",
            extra={"payment_id": payment.id, "amount": str(payment.amount)}
        )
        return payment

    def edit_income_payment(
        self,
        payment_id: str,
        fixed_income_id: Optional[str] = None,
        amount: Optional[Amount] = None,
        payment_date: Optional[DateLike] = None,
        notes: Optional[str] = None
    ) -> IncomePayment:
        """Edit an income payment, optionally moving it to another asset"""
        with self.storage.atomic():
            original = self.income_payments.get_income_payment(payment_id)
            if fixed_income_id and fixed_income_id != original.fixed_income_id:
                self.fixed_incomes.get_fixed_income(fixed_income_id)
            updated = self.income_payments.update_income_payment(payment_id, {
                "fixed_income_id": fixed_income_id,
                "amount": amount,
                "payment_date": parse_date(payment_date) if payment_date is not None else None,
                "notes": notes,
            })
            self._audit(AuditEventType.INCOME_PAYMENT_UPDATED, "income_payment", payment_id, {
                "old_fixed_income_id": original.fixed_income_id,
                "new_fixed_income_id": updated.fixed_income_id,
                "old_amount": original.amount,
                "new_amount": updated.amount,
            })

        log_action(
            self.logger, "info", "Income payment updated",
            action="update_income_payment", resource=f"fixed_income:{updated.fixed_income_id}",
            extra={"payment_id": payment_id,
                   "old_fixed_income_id": original.fixed_income_id,
                   "new_fixed_income_id": updated.fixed_income_id,
                   "amount": str(updated.amount)}
        )
        return updated

    def delete_income_payment(self, payment_id: str) -> None:
        with self.storage.atomic():
            payment = self.income_payments.get_income_payment(payment_id)
            self.income_payments.delete_income_payment(payment_id)
            self._audit(AuditEventType.INCOME_PAYMENT_DELETED, "income_payment", payment_id, {
                "fixed_income_id": payment.fixed_income_id, "amount": payment.amount
            })

        log_action(
            self.logger, "info", "Income payment deleted",
            action="delete_income_payment", resource=f"fixed_income:{payment.fixed_income_id}",
            extra={"payment_id": payment_id, "amount": str(payment.amount)}
        )

    def get_income_payments(self, fixed_income_id: str) -> List[IncomePayment]:
        return self.income_payments.get_income_payments(fixed_income_id)

    def accrued_income(self, fixed_income_id: str) -> Decimal:
        return calculate_accrued_income(self.fixed_incomes.get_fixed_income(fixed_income_id))

    def next_payment_date(self, fixed_income_id: str) -> str:
        fixed_income = self.fixed_incomes.get_fixed_income(fixed_income_id)
        last_payment = self.income_payments.get_last_income_payment(fixed_income_id)
        return next_income_payment_date(
            fixed_income, last_payment.payment_date if last_payment else None
        )

    def days_since_last_payment(self, fixed_income_id: str,
                                as_of: Optional[DateLike] = None) -> int:
        fixed_income = self.fixed_incomes.get_fixed_income(fixed_income_id)
        last_payment = self.income_payments.get_last_income_payment(fixed_income_id)
        return days_since_last_payment(
            fixed_income.start_date, last_payment.payment_date if last_payment else None,
            as_of or date.today()
        )
