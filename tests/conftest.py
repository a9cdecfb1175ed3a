"""
conftest.py - Shared pytest fixtures for loanledger tests

Provides common fixtures used across unit and conformance tests:
- Loan terms (single guarantor, two guarantors, no guarantors)
- Ledgers with wallets registered, with and without an originated loan
- A RepaymentEngine over an originated loan
"""

import pytest
from datetime import datetime
from decimal import Decimal

from loanledger import (
    Ledger, LoanLedger, EngineConfig, RepaymentEngine,
    cash, create_guaranteed_loan,
)
from tests.loan_factory import LOAN, make_terms, make_ledger


# =============================================================================
# TERMS FIXTURES
# =============================================================================

@pytest.fixture
def reference_terms():
    """Principal 1000, 10% flat, one guarantor pledging 50% (pool 500)."""
    return make_terms()


@pytest.fixture
def two_guarantor_terms():
    """Principal 1000, 10% flat, guarantors pledging 25% each (pool 500)."""
    return make_terms(pledges=(("kofi", "25"), ("esi", "25")))


@pytest.fixture
def unguaranteed_terms():
    """Principal 1000, 10% flat, no guarantors."""
    return make_terms(pledges=())


@pytest.fixture
def fresh_ledger(reference_terms):
    """LoanLedger at origination for reference_terms."""
    return LoanLedger.initial(reference_terms)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def basic_ledger():
    """Ledger with USD and two wallets."""
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(cash("USD", "US Dollar", decimal_places=2))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def loan_ledger(two_guarantor_terms):
    """Ledger with LOAN_001 (two guarantors) registered and originated."""
    return make_ledger(two_guarantor_terms)


@pytest.fixture
def unoriginated_ledger(two_guarantor_terms):
    """Ledger with LOAN_001 registered but not yet originated."""
    return make_ledger(two_guarantor_terms, originate=False)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(two_guarantor_terms):
    """RepaymentEngine with LOAN_001 originated through the engine."""
    ledger = Ledger("engine", datetime(2025, 1, 1), verbose=False, test_mode=True)
    eng = RepaymentEngine(ledger, EngineConfig(currency="USD"))
    eng.originate(create_guaranteed_loan(LOAN, "Test loan", two_guarantor_terms))
    return eng
