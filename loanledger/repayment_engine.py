"""
repayment_engine.py - Repayment Engine

Wraps the pure allocation functions and the ledger into one unit of work per
payment:

1. Take the loan's lock (payments on one loan are serialized)
2. Read the loan snapshot and plan the repayment
3. Execute the pending transaction atomically
4. On a stale-state rejection, re-read and retry

Loans are independent: only the shared ledger is locked, and only while a
snapshot is read or a transaction is executed.

The transaction log is the audit trail; records() derives the repayment and
guarantor reimbursement records from it.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging
import threading

from .config import EngineConfig
from .core import (
    ExecuteResult, LedgerError, PendingTransaction, Transaction, Unit,
    ConcurrentModification, RepaymentRejected,
    UNIT_TYPE_GUARANTEED_LOAN,
    cash,
)
from .ledger import Ledger
from .units.guaranteed_loan import (
    AllocationResult, LoanSummary,
    EVENT_REPAYMENT, MOVE_KIND_GUARANTOR,
    compute_loan_summary, compute_origination, compute_repayment_preview,
    load_guaranteed_loan, plan_repayment,
)

logger = logging.getLogger(__name__)

RECORD_LOAN_REPAYMENT = "LOAN_REPAYMENT"
RECORD_GUARANTOR_REIMBURSEMENT = "GUARANTOR_REIMBURSEMENT"


@dataclass(frozen=True, slots=True)
class RepaymentRecord:
    """
    One audit record: a payment, or one guarantor's share of it.

    breakdown holds the applied/interest/guarantor/principal split of the
    payment the record belongs to.
    """
    record_type: str
    loan_symbol: str
    amount: Decimal
    reference: str
    breakdown: Mapping[str, Decimal]
    exec_id: str
    timestamp: datetime
    wallet: str
    guarantor_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RepaymentReceipt:
    """Result of an accepted payment."""
    loan_symbol: str
    reference: str
    allocation: AllocationResult
    exec_id: str
    attempts: int
    records: Tuple[RepaymentRecord, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        return self.allocation.resulting_ledger.status

    @property
    def is_settled(self) -> bool:
        return self.allocation.resulting_ledger.is_completed


def records_from_transaction(tx: Transaction) -> List[RepaymentRecord]:
    """
    Derive audit records from an executed repayment transaction.

    The LOAN_REPAYMENT record is built from the loan state change, so it
    exists even when a payment produced no cash move of some kind.
    """
    sc = tx.state_changes[0]
    old, new = sc.old_state, sc.new_state
    applied = new['last_payment_amount']
    interest = new['total_interest_paid'] - old['total_interest_paid']
    guarantor = new['guarantor_reimbursed'] - old['guarantor_reimbursed']
    breakdown = {
        'applied': applied,
        'interest': interest,
        'guarantor': guarantor,
        'principal': applied - interest - guarantor,
    }

    records = [
        RepaymentRecord(
            record_type=RECORD_LOAN_REPAYMENT,
            loan_symbol=sc.unit,
            amount=applied,
            reference=new['last_payment_reference'],
            breakdown=breakdown,
            exec_id=tx.exec_id,
            timestamp=tx.timestamp,
            wallet=new['lender_wallet'],
        )
    ]
    for move in tx.moves:
        meta = move.metadata or {}
        if meta.get('kind') != MOVE_KIND_GUARANTOR:
            continue
        records.append(RepaymentRecord(
            record_type=RECORD_GUARANTOR_REIMBURSEMENT,
            loan_symbol=sc.unit,
            amount=move.quantity,
            reference=meta['reference'],
            breakdown=breakdown,
            exec_id=tx.exec_id,
            timestamp=tx.timestamp,
            wallet=move.dest,
            guarantor_id=meta['guarantor_id'],
        ))
    return records


class RepaymentEngine:
    """
    Orchestrates repayments against guaranteed loans held in a Ledger.

    Features:
    - Per-loan locks held across read, allocate and execute
    - Optimistic retry when the loan changed underneath a payment
    - Receipts and audit records derived from the transaction log

    Example:
        engine = RepaymentEngine(config=EngineConfig(currency="GHS"))
        engine.originate(create_guaranteed_loan("LOAN_001", "Ama", terms))
        receipt = engine.repay("LOAN_001", Decimal("110"))
        receipt.allocation.interest_applied   # Decimal("10.00")
    """

    def __init__(self, ledger: Optional[Ledger] = None, config: Optional[EngineConfig] = None):
        """
        Initialize the engine.

        Args:
            ledger: The ledger to operate on (created from config if not provided)
            config: Engine configuration (defaults if not provided)
        """
        self.config = config or EngineConfig()
        self.ledger = ledger if ledger is not None else Ledger(
            self.config.ledger_name, verbose=self.config.verbose
        )
        self._ledger_lock = threading.RLock()
        self._locks_guard = threading.Lock()
        self._loan_locks: Dict[str, threading.Lock] = {}

    def _loan_lock(self, symbol: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._loan_locks.get(symbol)
            if lock is None:
                lock = self._loan_locks[symbol] = threading.Lock()
            return lock

    # ========================================================================
    # ORIGINATION
    # ========================================================================

    def originate(self, unit: Unit) -> ExecuteResult:
        """
        Register a loan unit (and any missing wallets) and fund the borrower.

        Raises:
            ValueError: If the unit is not a guaranteed loan or its currency
                        differs from the configured one
            LedgerError: If the ledger rejects the origination
        """
        if unit.unit_type != UNIT_TYPE_GUARANTEED_LOAN:
            raise ValueError(f"{unit.symbol} is not a guaranteed loan ({unit.unit_type})")
        state = unit.state
        if state['currency'] != self.config.currency:
            raise ValueError(
                f"Loan {unit.symbol} is in {state['currency']}, engine settles in {self.config.currency}"
            )

        with self._loan_lock(unit.symbol), self._ledger_lock:
            if state['currency'] not in self.ledger.units:
                self.ledger.register_unit(cash(state['currency'], state['currency']))
            wallets = [state['borrower_wallet'], state['lender_wallet'], state['interest_wallet']]
            wallets += [g['wallet'] for g in state['guarantors']]
            for wallet in wallets:
                if not self.ledger.is_registered(wallet):
                    self.ledger.register_wallet(wallet)
            self.ledger.register_unit(unit)

            result = self.ledger.execute(compute_origination(self.ledger, unit.symbol))

        if result == ExecuteResult.REJECTED:
            logger.warning("origination of %s rejected", unit.symbol, extra={'loan': unit.symbol})
            raise LedgerError(f"Origination of {unit.symbol} was rejected by the ledger")
        logger.info("originated %s", unit.symbol, extra={'loan': unit.symbol})
        return result

    # ========================================================================
    # REPAYMENT
    # ========================================================================

    def repay(self, symbol: str, amount: Any, reference: Optional[str] = None) -> RepaymentReceipt:
        """
        Book a payment against a loan.

        The loan's lock is held for the whole attempt, so payments on the same
        loan never race. A stale-state rejection (the loan was changed by
        someone writing to the ledger directly) is retried up to
        config.max_retries times.

        Raises:
            InvalidAmount: If amount <= 0 (never retried)
            AlreadySettled: If the loan is settled (never retried)
            ConcurrentModification: If every attempt hit a stale snapshot
            RepaymentRejected: If the ledger refused the transaction for another reason
        """
        attempts = self.config.max_retries + 1
        with self._loan_lock(symbol):
            for attempt in range(1, attempts + 1):
                with self._ledger_lock:
                    allocation, pending = plan_repayment(
                        self.ledger, symbol, amount, reference, self.config.reference_prefix
                    )
                    payment_reference = pending.state_changes[0].new_state['last_payment_reference']
                    result = self.ledger.execute(pending)
                    if result == ExecuteResult.APPLIED:
                        tx = self.ledger.transaction_log[-1]
                        stale = False
                    else:
                        stale = self._is_stale(pending)

                if result == ExecuteResult.APPLIED:
                    logger.info(
                        "repayment %s on %s: applied %s (interest %s, guarantor %s, principal %s)",
                        payment_reference, symbol, allocation.applied_payment,
                        allocation.interest_applied, allocation.guarantor_applied,
                        allocation.principal_applied,
                        extra={'loan': symbol, 'reference': payment_reference,
                               'amount': allocation.applied_payment, 'attempt': attempt},
                    )
                    return RepaymentReceipt(
                        loan_symbol=symbol,
                        reference=payment_reference,
                        allocation=allocation,
                        exec_id=tx.exec_id,
                        attempts=attempt,
                        records=tuple(records_from_transaction(tx)),
                    )

                if not stale:
                    logger.warning(
                        "repayment %s on %s rejected by ledger", payment_reference, symbol,
                        extra={'loan': symbol, 'reference': payment_reference},
                    )
                    raise RepaymentRejected(
                        f"Repayment {payment_reference} on {symbol} was rejected by the ledger"
                    )

                logger.warning(
                    "loan %s changed during repayment, retrying (attempt %d of %d)",
                    symbol, attempt, attempts,
                    extra={'loan': symbol, 'attempt': attempt},
                )

        raise ConcurrentModification(
            f"Loan {symbol} kept changing during repayment; gave up after {attempts} attempts"
        )

    def _is_stale(self, pending: PendingTransaction) -> bool:
        sc = pending.state_changes[0]
        return self.ledger.get_unit_state(sc.unit) != sc.old_state

    # ========================================================================
    # QUERIES
    # ========================================================================

    def preview(self, symbol: str, amount: Any) -> AllocationResult:
        """Allocate a payment against the current state without booking it."""
        with self._ledger_lock:
            return compute_repayment_preview(self.ledger, symbol, amount)

    def summary(self, symbol: str) -> LoanSummary:
        with self._ledger_lock:
            return compute_loan_summary(self.ledger, symbol)

    def is_settled(self, symbol: str) -> bool:
        with self._ledger_lock:
            _, loan_ledger = load_guaranteed_loan(self.ledger, symbol)
        return loan_ledger.is_completed

    def records(self, symbol: Optional[str] = None) -> List[RepaymentRecord]:
        """
        Audit records for all booked payments, oldest first.

        Args:
            symbol: Only records of this loan (all loans if None)
        """
        with self._ledger_lock:
            log = list(self.ledger.transaction_log)
        records: List[RepaymentRecord] = []
        for tx in log:
            if tx.origin.event_type != EVENT_REPAYMENT:
                continue
            if symbol is not None and tx.origin.unit_symbol != symbol:
                continue
            records.extend(records_from_transaction(tx))
        return records
