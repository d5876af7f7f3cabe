"""Shared fixtures for the lendbook test suite."""

import pytest
from datetime import date

from lendbook.config import LendbookConfig
from lendbook.audit import AuditTrail
from lendbook.fixed_income import FixedIncomeBook
from lendbook.ledger import LoanLedger
from lendbook.portfolio import PortfolioView
from lendbook.storage import InMemoryStorage


@pytest.fixture
def config():
    """Configuration isolated from the environment"""
    return LendbookConfig(database_url="memory://", enable_audit_logging=True)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def ledger(storage, audit_trail, config):
    return LoanLedger(storage, audit_trail=audit_trail, config=config)


@pytest.fixture
def fixed_income_book(storage, audit_trail, config):
    return FixedIncomeBook(storage, audit_trail=audit_trail, config=config)


@pytest.fixture
def portfolio(ledger, fixed_income_book):
    return PortfolioView(ledger, fixed_income_book)


@pytest.fixture
def installment_loan(ledger):
    """200,000 installment loan at 2.25% per month"""
    return ledger.create_loan(
        loan_type="installment",
        principal_amount="200000.00",
        interest_rate="2.25",
        start_date="2024-01-15",
        repayment_interval_unit="months",
        repayment_interval_value=1,
        borrower_id="borrower-001",
    )


@pytest.fixture
def bullet_loan(ledger):
    """1,000,000 bullet loan at 10% per month"""
    return ledger.create_loan(
        loan_type="bullet",
        principal_amount="1000000",
        interest_rate="10",
        start_date=date(2024, 1, 1),
        repayment_interval_unit="months",
        repayment_interval_value=1,
        end_date="2025-01-01",
        borrower_id="borrower-002",
    )
