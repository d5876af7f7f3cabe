"""
Test suite for the loan ledger

Covers payment recording, editing and deletion and the balance invariant
that ties each loan's stored balance to its payment history.
"""

import random
import logging
import threading
import pytest
from decimal import Decimal
from datetime import date, timedelta

from lendbook.errors import InvalidOperation, NotFound, ValidationError
from lendbook.ledger import LoanLedger
from lendbook.models import LoanStatus, LoanType, PaymentType
from lendbook.storage import SQLiteStorage


class TestLoanCreation:
    """Test loan creation and status management"""

    def test_create_loan(self, ledger, installment_loan):
        """Test creating an installment loan"""
        loan = ledger.get_loan(installment_loan.id)

        assert loan.loan_type == LoanType.INSTALLMENT
        assert loan.current_balance == Decimal("200000.00")
        assert loan.status == LoanStatus.ACTIVE
        assert loan.borrower_id == "borrower-001"

    def test_default_cadence_from_config(self, ledger):
        """Test default cadence from config"""
        loan = ledger.create_loan("installment", "1000", "1", "2024-01-10")
        assert loan.cadence.describe() == "every month"
        assert ledger.next_due_date(loan.id) == "2024-02-10"

    def test_missing_loan(self, ledger):
        """Test unknown loan id"""
        with pytest.raises(NotFound):
            ledger.get_loan("missing")

    def test_default_loan(self, ledger, installment_loan):
        """Test marking a loan defaulted"""
        loan = ledger.update_loan_status(installment_loan.id, "defaulted")
        assert loan.status == LoanStatus.DEFAULTED

    def test_terminal_status_cannot_change(self, ledger, installment_loan):
        """Test terminal status cannot change"""
        ledger.update_loan_status(installment_loan.id, LoanStatus.DEFAULTED)
        with pytest.raises(InvalidOperation):
            ledger.update_loan_status(installment_loan.id, LoanStatus.ACTIVE)

    def test_same_status_is_noop(self, ledger, installment_loan):
        """Test same status is noop"""
        events = ledger.audit_trail.count_events()
        ledger.update_loan_status(installment_loan.id, "active")
        assert ledger.audit_trail.count_events() == events


class TestRecordPayment:
    """Test creating payments"""

    def test_installment_payment(self, ledger, installment_loan):
        """Test interest-first payment on an installment loan"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        assert recorded.payment.interest_amount == Decimal("4500.00")
        assert recorded.payment.principal_amount == Decimal("5500.00")
        assert recorded.payment.amount == Decimal("10000.00")
        assert recorded.payment.payment_type == PaymentType.MIXED
        assert recorded.loan.current_balance == Decimal("194500.00")
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("194500.00")

    def test_interest_recomputed_from_new_balance(self, ledger, installment_loan):
        """Test interest recomputed from new balance"""
        ledger.record_payment(installment_loan.id, "10000", "2024-02-15")
        assert ledger.accrued_interest(installment_loan.id) == Decimal("4376.25")

    def test_payoff_marks_loan_paid_off(self, ledger, installment_loan):
        """Test payoff marks loan paid off"""
        recorded = ledger.record_payment(installment_loan.id, "204500", "2024-02-15")

        assert recorded.application.is_paid_off
        assert recorded.loan.current_balance == Decimal("0.00")
        assert recorded.loan.status == LoanStatus.PAID_OFF

    def test_bullet_loan_needs_split(self, ledger, bullet_loan):
        """Test bullet loan needs split"""
        with pytest.raises(InvalidOperation):
            ledger.record_payment(bullet_loan.id, "50000", "2024-03-01")
        assert ledger.get_payments(bullet_loan.id) == []

    def test_bullet_split_payment(self, ledger, bullet_loan):
        """Test interest-only payment on a bullet loan"""
        ledger.record_split_payment(bullet_loan.id, "0", "50000", "2024-03-01")

        interest = ledger.bullet_interest(bullet_loan.id, as_of="2024-03-01")
        assert interest.total_interest_accrued == Decimal("200000.00")
        assert interest.pending_interest == Decimal("150000.00")
        assert ledger.get_loan(bullet_loan.id).current_balance == Decimal("1000000.00")

    def test_bullet_principal_repayment(self, ledger, bullet_loan):
        """Test repaying a bullet loan in full"""
        recorded = ledger.record_split_payment(bullet_loan.id, "1000000", "200000",
                                               "2024-03-01")
        assert recorded.loan.status == LoanStatus.PAID_OFF
        assert recorded.payment.payment_type == PaymentType.MIXED

    def test_missing_loan(self, ledger):
        """Test payment against an unknown loan"""
        with pytest.raises(NotFound):
            ledger.record_payment("missing", "100", "2024-01-01")

    def test_sub_cent_amount_keeps_balance_consistent(self, ledger, installment_loan):
        """Test sub cent amount keeps balance consistent"""
        recorded = ledger.record_payment(installment_loan.id, "10000.005", "2024-02-15")

        assert recorded.payment.principal_amount == Decimal("5500.01")
        assert recorded.loan.current_balance == Decimal("194499.99")
        check = ledger.check_balance(installment_loan.id)
        assert check.drift == Decimal("0.00")
        assert check.is_consistent

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", float("inf")])
    def test_non_finite_amount_rejected(self, ledger, installment_loan, amount):
        """Test non finite amount rejected"""
        with pytest.raises(ValidationError):
            ledger.record_payment(installment_loan.id, amount, "2024-02-15")
        assert ledger.get_payments(installment_loan.id) == []

    def test_last_payment_and_recency(self, ledger, installment_loan):
        """Test last payment and recency"""
        ledger.record_payment(installment_loan.id, "5000", "2024-02-15")
        ledger.record_payment(installment_loan.id, "5000", "2024-03-15")

        assert ledger.get_last_payment(installment_loan.id).payment_date == date(2024, 3, 15)
        assert ledger.days_since_last_payment(installment_loan.id, "2024-03-25") == 10
        assert ledger.next_due_date(installment_loan.id) == "2024-04-15"


class TestEditPayment:
    """Test editing payments on the same and on another loan"""

    def test_increase_principal(self, ledger, installment_loan):
        """Test raising the principal of a payment"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        updated = ledger.edit_payment(recorded.payment.id, principal_amount="7500")

        assert updated.principal_amount == Decimal("7500")
        assert updated.amount == Decimal("12000.00")
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("192500.00")

    def test_sub_cent_edit_keeps_balance_consistent(self, ledger, installment_loan):
        """Test sub cent edit keeps balance consistent"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        updated = ledger.edit_payment(recorded.payment.id, principal_amount="6000.005")

        assert updated.principal_amount == Decimal("6000.01")
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("193999.99")
        assert ledger.check_balance(installment_loan.id).drift == Decimal("0.00")

    def test_noop_edit_keeps_balance(self, ledger, installment_loan):
        """Test noop edit keeps balance"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        ledger.edit_payment(recorded.payment.id, notes="cash")

        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("194500.00")
        assert ledger.payments.get_payment(recorded.payment.id).notes == "cash"

    def test_edit_interest_only_keeps_balance(self, ledger, installment_loan):
        """Test edit interest only keeps balance"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        updated = ledger.edit_payment(recorded.payment.id, interest_amount="0")

        assert updated.payment_type == PaymentType.PRINCIPAL
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("194500.00")

    def test_move_payment_between_loans(self, ledger, installment_loan):
        """Test move payment between loans"""
        other = ledger.create_loan("installment", "50000", "1", "2024-01-01")
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        ledger.edit_payment(recorded.payment.id, loan_id=other.id, principal_amount="3000")

        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("200000.00")
        assert ledger.get_loan(other.id).current_balance == Decimal("47000.00")
        assert ledger.get_payments(installment_loan.id) == []
        assert [p.id for p in ledger.get_payments(other.id)] == [recorded.payment.id]

    def test_move_to_missing_loan_changes_nothing(self, ledger, installment_loan):
        """Test move to missing loan changes nothing"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        with pytest.raises(NotFound):
            ledger.edit_payment(recorded.payment.id, loan_id="missing")

        payment = ledger.payments.get_payment(recorded.payment.id)
        assert payment.loan_id == installment_loan.id
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("194500.00")

    def test_balance_clamped_at_zero(self, ledger, caplog):
        """Test balance clamped at zero"""
        loan = ledger.create_loan("installment", "1000", "0", "2024-01-01")
        recorded = ledger.record_payment(loan.id, "900", "2024-02-01")

        with caplog.at_level(logging.WARNING, logger="lendbook.ledger"):
            ledger.edit_payment(recorded.payment.id, principal_amount="1500")

        assert ledger.get_loan(loan.id).current_balance == Decimal("0.00")
        assert any(getattr(r, "action", None) == "clamp_balance" for r in caplog.records)

        check = ledger.check_balance(loan.id)
        assert check.expected_balance == Decimal("0.00")
        assert check.is_consistent

    def test_invalid_edit_rolls_back(self, ledger, installment_loan):
        """Test invalid edit rolls back"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        with pytest.raises(ValidationError):
            ledger.edit_payment(recorded.payment.id, principal_amount="-1")

        assert ledger.payments.get_payment(recorded.payment.id).principal_amount == Decimal("5500.00")
        assert ledger.get_loan(installment_loan.id).current_balance == Decimal("194500.00")

    def test_missing_payment(self, ledger):
        """Test editing an unknown payment"""
        with pytest.raises(NotFound):
            ledger.edit_payment("missing", notes="x")


class TestDeletePayment:
    """Test deleting payments"""

    def test_delete_restores_principal(self, ledger, installment_loan):
        """Test that deleting restores the principal"""
        recorded = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")

        loan = ledger.delete_payment(recorded.payment.id)

        assert loan.current_balance == Decimal("200000.00")
        with pytest.raises(NotFound):
            ledger.payments.get_payment(recorded.payment.id)

    def test_delete_then_recreate_is_identity(self, ledger, installment_loan):
        """Test delete then recreate is identity"""
        first = ledger.record_payment(installment_loan.id, "10000", "2024-02-15")
        second = ledger.record_payment(installment_loan.id, "8000", "2024-03-15")
        balance = ledger.get_loan(installment_loan.id).current_balance

        ledger.delete_payment(second.payment.id)
        ledger.record_split_payment(installment_loan.id, second.payment.principal_amount,
                                    second.payment.interest_amount, "2024-03-15")

        assert ledger.get_loan(installment_loan.id).current_balance == balance
        assert len(ledger.get_payments(installment_loan.id)) == 2
        assert first.payment.id in [p.id for p in ledger.get_payments(installment_loan.id)]

    def test_delete_keeps_paid_off_status(self, ledger, installment_loan):
        """Test delete keeps paid off status"""
        recorded = ledger.record_payment(installment_loan.id, "204500", "2024-02-15")

        loan = ledger.delete_payment(recorded.payment.id)

        assert loan.current_balance == Decimal("200000.00")
        assert loan.status == LoanStatus.PAID_OFF

    def test_missing_payment(self, ledger):
        """Test deleting an unknown payment"""
        with pytest.raises(NotFound):
            ledger.delete_payment("missing")


class TestBalanceInvariant:
    """Stored balances always match principal minus principal paid"""

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024])
    def test_random_mutation_sequences(self, ledger, seed):
        """Test seeded create, edit and delete sequences"""
        rng = random.Random(seed)
        # Principals exceed anything 60 payments of at most 2,000 can repay
        loans = [
            ledger.create_loan("installment", str(rng.randint(200, 500) * 1000),
                               str(rng.choice(["0", "1", "2.5"])), "2024-01-01")
            for _ in range(3)
        ]
        start = date(2024, 1, 1)

        for _ in range(60):
            payments = [p for loan in loans for p in ledger.get_payments(loan.id)]
            action = rng.random()
            if action < 0.5 or not payments:
                loan = rng.choice(loans)
                ledger.record_split_payment(
                    loan.id, str(rng.randint(0, 2000)), str(rng.randint(0, 500)),
                    start + timedelta(days=rng.randint(1, 365)),
                )
            elif action < 0.8:
                payment = rng.choice(payments)
                ledger.edit_payment(
                    payment.id,
                    loan_id=rng.choice(loans).id,
                    principal_amount=str(rng.randint(0, 2000)),
                )
            else:
                ledger.delete_payment(rng.choice(payments).id)

            for loan in loans:
                check = ledger.check_balance(loan.id)
                assert check.is_consistent, check

        assert ledger.audit_trail.verify_integrity()["valid"]


class TestConcurrency:
    """Test per-loan serialization of mutations"""

    def test_parallel_payments_do_not_lose_updates(self, ledger):
        """Test parallel payments do not lose updates"""
        loan = ledger.create_loan("installment", "100000", "0", "2024-01-01")

        def pay():
            for _ in range(20):
                ledger.record_split_payment(loan.id, "10", "0", "2024-02-01")

        threads = [threading.Thread(target=pay) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert ledger.get_loan(loan.id).current_balance == Decimal("99000.00")
        assert len(ledger.get_payments(loan.id)) == 100


class TestSQLiteLedger:
    """Test the ledger against the SQLite backend"""

    def test_rollback_on_failure(self, tmp_path, config):
        """Test failed edit rolls back on SQLite"""
        storage = SQLiteStorage(tmp_path / "ledger.db")
        ledger = LoanLedger(storage, config=config)
        loan = ledger.create_loan("installment", "200000", "2.25", "2024-01-15")
        recorded = ledger.record_payment(loan.id, "10000", "2024-02-15")

        with pytest.raises(NotFound):
            ledger.edit_payment(recorded.payment.id, loan_id="missing")

        assert ledger.get_loan(loan.id).current_balance == Decimal("194500.00")
        assert ledger.check_balance(loan.id).is_consistent
        storage.close()
