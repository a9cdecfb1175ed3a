"""
Units module - Loan instruments for the ledger.

Re-exports the guaranteed loan terms, the pure allocation functions and the
ledger adapters.
"""

from .guaranteed_loan import (
    Guarantor,
    LoanTerms,
    LoanLedger,
    AllocationResult,
    Disbursement,
    LoanSummary,
    LOAN_STATUS_ACTIVE,
    LOAN_STATUS_SETTLED,
    EVENT_ORIGINATION,
    EVENT_REPAYMENT,
    GUARANTOR_SHARE,
    COMPLETION_TOLERANCE,
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
    transact as guaranteed_loan_transact,
)

__all__ = [
    'Guarantor',
    'LoanTerms',
    'LoanLedger',
    'AllocationResult',
    'Disbursement',
    'LoanSummary',
    'LOAN_STATUS_ACTIVE',
    'LOAN_STATUS_SETTLED',
    'EVENT_ORIGINATION',
    'EVENT_REPAYMENT',
    'GUARANTOR_SHARE',
    'COMPLETION_TOLERANCE',
    'allocate',
    'distribute',
    'is_complete',
    'remaining_balance',
    'calculate_summary',
    'create_guaranteed_loan',
    'load_guaranteed_loan',
    'to_state_dict',
    'compute_origination',
    'plan_repayment',
    'compute_repayment',
    'compute_repayment_preview',
    'compute_loan_summary',
    'guaranteed_loan_transact',
]
