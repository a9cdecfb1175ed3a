"""
loanledger - Repayment allocation for guarantor-backed loans

Splits each payment on a flat-interest loan into interest, guarantor
reimbursement and principal, pays guarantors their proportional share, and
books everything atomically in a double-entry ledger.

Usage:
    from decimal import Decimal
    from loanledger import (
        RepaymentEngine, EngineConfig, LoanTerms, Guarantor, create_guaranteed_loan,
    )

    terms = LoanTerms(
        principal=Decimal("1000"),
        flat_rate=Decimal("0.10"),
        guarantors=(Guarantor("kofi", Decimal("30")), Guarantor("esi", Decimal("20"))),
        currency="GHS",
        borrower_wallet="ama",
        lender_wallet="loan_account",
        interest_wallet="interest_income",
    )
    engine = RepaymentEngine(config=EngineConfig(currency="GHS"))
    engine.originate(create_guaranteed_loan("LOAN_001", "Ama personal loan", terms))

    receipt = engine.repay("LOAN_001", Decimal("110"))
    receipt.allocation.interest_applied    # Decimal("10.00")
    receipt.allocation.guarantor_applied   # Decimal("50.00")

    # Pure use, no ledger
    from loanledger import LoanLedger, allocate
    result = allocate(LoanLedger.initial(terms), terms, Decimal("110"))
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    RepaymentError,
    InvalidAmount,
    AlreadySettled,
    ConcurrentModification,
    RepaymentRejected,
    cash,
    round_money,
    floor_money,
    to_decimal,
    CENT,
    UNIT_TYPE_CASH,
    UNIT_TYPE_GUARANTEED_LOAN,
)

# Ledger
from .ledger import Ledger

# Loans
from .units import (
    Guarantor,
    LoanTerms,
    LoanLedger,
    AllocationResult,
    Disbursement,
    LoanSummary,
    LOAN_STATUS_ACTIVE,
    LOAN_STATUS_SETTLED,
    allocate,
    distribute,
    is_complete,
    remaining_balance,
    calculate_summary,
    create_guaranteed_loan,
    load_guaranteed_loan,
    to_state_dict,
    compute_origination,
    plan_repayment,
    compute_repayment,
    compute_repayment_preview,
    compute_loan_summary,
    guaranteed_loan_transact,
)

# Engine, configuration, logging
from .config import EngineConfig
from .repayment_engine import RepaymentEngine, RepaymentReceipt, RepaymentRecord
from .logging import setup_logging, get_logger, JsonFormatter

__version__ = "0.1.0"
