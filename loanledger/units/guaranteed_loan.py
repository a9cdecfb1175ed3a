"""
guaranteed_loan.py - Guarantor-Backed Flat-Interest Loans

This module provides repayment allocation for loans whose principal was
partly funded by third-party guarantors, using a pure function architecture
with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - LoanTerms: Immutable term sheet (principal, flat rate, guarantors)
   - LoanLedger: Immutable snapshot of repayment progress (a new value per payment)

2. PURE CALCULATION FUNCTIONS:
   - allocate(ledger, terms, amount) -> AllocationResult
   - distribute(guarantor_applied, guarantors) -> tuple of Disbursement
   - is_complete(ledger, terms) -> bool
   - calculate_summary(ledger, terms) -> LoanSummary
   No LedgerView, no hidden state.

3. ADAPTER FUNCTIONS (load_guaranteed_loan, to_state_dict):
   - The ONLY bridge between ledger unit state and the typed dataclasses

4. CONVENIENCE FUNCTIONS (compute_*):
   - Take (view, symbol, ...), load, calculate, and build a PendingTransaction

Waterfall (every value rounded to the cent; each split rounds one side and
derives the other by subtraction, so the parts always sum exactly):
    applied    = min(amount, total_repayable - total_paid)
    interest   = min(round(applied * total_interest / total_repayable), interest headroom)
    pool       = applied - interest
    guarantor  = min(round(pool * 0.5), pledge headroom)
    principal  = pool - guarantor

The payment that clears the balance fills the interest and pledge headroom
first, so rounding residues do not keep a paid-off loan open.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple, Mapping, Sequence

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_GUARANTEED_LOAN,
    InvalidAmount, AlreadySettled,
    build_transaction, floor_money, round_money, to_decimal,
    _freeze_state,
)


# Loan status constants
LOAN_STATUS_ACTIVE = "ACTIVE"
LOAN_STATUS_SETTLED = "SETTLED"

# Event types accepted by transact()
EVENT_ORIGINATION = "ORIGINATION"
EVENT_REPAYMENT = "REPAYMENT"

# Move kinds recorded in move metadata
MOVE_KIND_PRINCIPAL = "PRINCIPAL"
MOVE_KIND_INTEREST = "INTEREST"
MOVE_KIND_GUARANTOR = "GUARANTOR_REIMBURSEMENT"

# Share of the principal pool of each payment that goes to guarantors.
GUARANTOR_SHARE = Decimal("0.5")

# Total pledge may not exceed the guarantor share of the principal, otherwise
# the pledge pool could never be reimbursed and the loan would never settle.
MAX_TOTAL_PLEDGE_PERCENTAGE = GUARANTOR_SHARE * 100

# Each progress field counts as complete within one cent of its ceiling.
COMPLETION_TOLERANCE = Decimal("0.01")

DEFAULT_REFERENCE_PREFIX = "LRP"

_ZERO = Decimal("0.00")


# ============================================================================
# FROZEN DATACLASSES - Explicit Inputs for Pure Functions
# ============================================================================

@dataclass(frozen=True, slots=True)
class Guarantor:
    """
    A third party who pledged a percentage of the principal at origination.

    A guarantor with pledge_percentage 0 is inactive and never receives a
    disbursement. wallet defaults to guarantor_id.
    """
    guarantor_id: str
    pledge_percentage: Decimal    # 0-100, percent of principal pledged
    wallet: str = ""              # Account credited with reimbursements

    def __post_init__(self):
        if not self.guarantor_id or not self.guarantor_id.strip():
            raise ValueError("guarantor_id cannot be empty")
        if not isinstance(self.pledge_percentage, Decimal):
            object.__setattr__(self, 'pledge_percentage', to_decimal(self.pledge_percentage))
        if self.pledge_percentage < 0 or self.pledge_percentage > 100:
            raise ValueError(
                f"pledge_percentage for {self.guarantor_id} must be in [0, 100], "
                f"got {self.pledge_percentage}"
            )
        if not self.wallet:
            object.__setattr__(self, 'wallet', self.guarantor_id)

    @property
    def is_active(self) -> bool:
        return self.pledge_percentage > 0


@dataclass(frozen=True, slots=True)
class LoanTerms:
    """
    Immutable term sheet for a guaranteed loan - set at origination, never changes.

    Interest is a flat fee (principal * flat_rate) charged once, not accrued
    over time. The pledge pool is the aggregate amount guarantors put up and
    is the ceiling for guarantor reimbursement.

    The wallet fields are only needed by the ledger adapters; the pure
    functions work without them.
    """
    principal: Decimal                       # Amount lent, in currency units (> 0)
    flat_rate: Decimal                       # One-time rate (e.g., 0.10 for 10%)
    guarantors: Tuple[Guarantor, ...] = ()   # Ordered; order decides who gets the residual cent
    currency: str = "USD"
    borrower_wallet: str = ""
    lender_wallet: str = ""                  # Loan account credited with principal
    interest_wallet: str = ""                # Income account credited with interest

    def __post_init__(self):
        if not isinstance(self.principal, Decimal):
            object.__setattr__(self, 'principal', to_decimal(self.principal))
        if not isinstance(self.flat_rate, Decimal):
            object.__setattr__(self, 'flat_rate', to_decimal(self.flat_rate))
        if not isinstance(self.guarantors, tuple):
            object.__setattr__(self, 'guarantors', tuple(self.guarantors))

        if self.principal <= 0:
            raise ValueError(f"principal must be positive, got {self.principal}")
        if self.principal != round_money(self.principal):
            raise ValueError(f"principal must be a whole number of cents, got {self.principal}")
        if self.flat_rate < 0:
            raise ValueError(f"flat_rate cannot be negative, got {self.flat_rate}")

        ids = [g.guarantor_id for g in self.guarantors]
        if len(ids) != len(set(ids)):
            raise ValueError(f"guarantor ids must be unique, got {ids}")

    @property
    def total_interest(self) -> Decimal:
        return round_money(self.principal * self.flat_rate)

    @property
    def total_repayable(self) -> Decimal:
        return round_money(self.principal + self.total_interest)

    @property
    def active_guarantors(self) -> Tuple[Guarantor, ...]:
        return tuple(g for g in self.guarantors if g.is_active)

    @property
    def total_pledge_percentage(self) -> Decimal:
        return sum((g.pledge_percentage for g in self.active_guarantors), Decimal("0"))

    @property
    def pledge_pool(self) -> Decimal:
        """Aggregate pledged amount: sum of pledge_percentage / 100 * principal."""
        return round_money(self.principal * self.total_pledge_percentage / 100)


@dataclass(frozen=True, slots=True)
class LoanLedger:
    """
    Immutable snapshot of a loan's repayment progress.

    Each accepted payment produces a NEW instance via allocate(). Once
    is_completed is True the loan is settled and accepts no further payments.

    reimbursed_by_guarantor holds running totals per guarantor for reporting;
    the reimbursement cap itself is applied to the aggregate.
    """
    total_paid: Decimal
    total_interest_paid: Decimal
    guarantor_reimbursed: Decimal
    principal_remaining: Decimal
    is_completed: bool = False
    last_payment_amount: Optional[Decimal] = None
    last_payment_at: Optional[datetime] = None
    payment_count: int = 0
    reimbursed_by_guarantor: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        for name in ('total_paid', 'total_interest_paid', 'guarantor_reimbursed', 'principal_remaining'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))
        if self.last_payment_amount is not None and not isinstance(self.last_payment_amount, Decimal):
            object.__setattr__(self, 'last_payment_amount', to_decimal(self.last_payment_amount))
        if any(not isinstance(v, Decimal) for v in self.reimbursed_by_guarantor.values()):
            object.__setattr__(self, 'reimbursed_by_guarantor', {
                k: v if isinstance(v, Decimal) else to_decimal(v)
                for k, v in self.reimbursed_by_guarantor.items()
            })

    @classmethod
    def initial(cls, terms: LoanTerms) -> LoanLedger:
        """Fresh ledger at origination: nothing paid, full principal outstanding."""
        return cls(
            total_paid=_ZERO,
            total_interest_paid=_ZERO,
            guarantor_reimbursed=_ZERO,
            principal_remaining=terms.principal,
        )

    @property
    def status(self) -> str:
        return LOAN_STATUS_SETTLED if self.is_completed else LOAN_STATUS_ACTIVE


@dataclass(frozen=True, slots=True)
class Disbursement:
    """One guarantor's share of a payment's guarantor reimbursement."""
    guarantor_id: str
    share_amount: Decimal
    wallet: str = ""
    pledge_percentage: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """
    Immutable result of allocating one payment.

    interest_applied + guarantor_applied + principal_applied == applied_payment
    exactly, and sum(d.share_amount for d in disbursements) == guarantor_applied.
    """
    applied_payment: Decimal
    interest_applied: Decimal
    guarantor_applied: Decimal
    principal_applied: Decimal
    resulting_ledger: LoanLedger
    remaining_balance: Decimal
    requested_amount: Decimal
    disbursements: Tuple[Disbursement, ...] = ()

    @property
    def overpayment(self) -> Decimal:
        """Part of the requested amount that was not applied."""
        return self.requested_amount - self.applied_payment


@dataclass(frozen=True, slots=True)
class LoanSummary:
    """Progress and breakdown report for one loan."""
    principal: Decimal
    total_repayable: Decimal
    pledge_pool: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    percent_complete: Decimal      # Capped at 100
    interest_paid: Decimal
    remaining_interest: Decimal
    guarantor_reimbursed: Decimal
    remaining_guarantor_debt: Decimal
    principal_paid: Decimal
    principal_remaining: Decimal
    payment_count: int
    status: str                    # ACTIVE or SETTLED


# ============================================================================
# ADAPTER FUNCTIONS - Bridge Between LedgerView and Pure Functions
# ============================================================================

def load_guaranteed_loan(view: LedgerView, symbol: str) -> Tuple[LoanTerms, LoanLedger]:
    """
    Load a guaranteed loan from ledger state as typed frozen dataclasses.

    This is the ONLY function that reads loan state from a LedgerView.

    Example:
        terms, ledger = load_guaranteed_loan(view, "LOAN_001")
        result = allocate(ledger, terms, Decimal("110"))
    """
    raw = view.get_unit_state(symbol)
    if 'principal' not in raw:
        raise ValueError(f"{symbol} is not a guaranteed loan")

    terms = LoanTerms(
        principal=to_decimal(raw['principal']),
        flat_rate=to_decimal(raw.get('flat_rate', 0)),
        guarantors=tuple(
            Guarantor(
                guarantor_id=g['guarantor_id'],
                pledge_percentage=to_decimal(g['pledge_percentage']),
                wallet=g.get('wallet', ''),
            )
            for g in raw.get('guarantors', ())
        ),
        currency=raw.get('currency', 'USD'),
        borrower_wallet=raw.get('borrower_wallet', ''),
        lender_wallet=raw.get('lender_wallet', ''),
        interest_wallet=raw.get('interest_wallet', ''),
    )

    last_amount = raw.get('last_payment_amount')
    ledger = LoanLedger(
        total_paid=to_decimal(raw.get('total_paid', 0)),
        total_interest_paid=to_decimal(raw.get('total_interest_paid', 0)),
        guarantor_reimbursed=to_decimal(raw.get('guarantor_reimbursed', 0)),
        principal_remaining=to_decimal(raw.get('principal_remaining', terms.principal)),
        is_completed=raw.get('is_completed', False),
        last_payment_amount=to_decimal(last_amount) if last_amount is not None else None,
        last_payment_at=raw.get('last_payment_at'),
        payment_count=raw.get('payment_count', 0),
        reimbursed_by_guarantor={
            k: to_decimal(v) for k, v in raw.get('reimbursed_by_guarantor', {}).items()
        },
    )

    return terms, ledger


def to_state_dict(terms: LoanTerms, ledger: LoanLedger) -> Dict[str, Any]:
    """
    Convert typed dataclasses back to a state dict for ledger storage.

    Inverse of load_guaranteed_loan(). Lifecycle flags that are not part of
    either dataclass (originated, origination_date, last_payment_reference)
    are carried over by the callers.
    """
    return {
        'principal': terms.principal,
        'flat_rate': terms.flat_rate,
        'guarantors': [
            {
                'guarantor_id': g.guarantor_id,
                'pledge_percentage': g.pledge_percentage,
                'wallet': g.wallet,
            }
            for g in terms.guarantors
        ],
        'currency': terms.currency,
        'borrower_wallet': terms.borrower_wallet,
        'lender_wallet': terms.lender_wallet,
        'interest_wallet': terms.interest_wallet,
        'total_paid': ledger.total_paid,
        'total_interest_paid': ledger.total_interest_paid,
        'guarantor_reimbursed': ledger.guarantor_reimbursed,
        'principal_remaining': ledger.principal_remaining,
        'is_completed': ledger.is_completed,
        'last_payment_amount': ledger.last_payment_amount,
        'last_payment_at': ledger.last_payment_at,
        'payment_count': ledger.payment_count,
        'reimbursed_by_guarantor': dict(ledger.reimbursed_by_guarantor),
    }


# ============================================================================
# PURE CALCULATION FUNCTIONS - No LedgerView, All Inputs Explicit
# ============================================================================

def remaining_balance(ledger: LoanLedger, terms: LoanTerms) -> Decimal:
    """Amount still payable: max(0, total_repayable - total_paid)."""
    return max(_ZERO, terms.total_repayable - ledger.total_paid)


def is_complete(ledger: LoanLedger, terms: LoanTerms) -> bool:
    """
    Return True when all three progress fields are within one cent of their ceilings.

    The tolerance absorbs sub-cent residues left by rounding across many
    small payments; it is far smaller than any payment that could be made.
    """
    return (
        terms.total_repayable - ledger.total_paid <= COMPLETION_TOLERANCE
        and terms.total_interest - ledger.total_interest_paid <= COMPLETION_TOLERANCE
        and terms.pledge_pool - ledger.guarantor_reimbursed <= COMPLETION_TOLERANCE
    )


def distribute(
    guarantor_applied: Decimal,
    guarantors: Sequence[Guarantor],
) -> Tuple[Disbursement, ...]:
    """
    Split a guarantor reimbursement among active guarantors by pledge percentage.

    Each share is round(amount * pct / total_pct), except the last active
    guarantor in list order, who receives the residual so the shares sum to
    guarantor_applied exactly. A share never exceeds what is left to
    distribute, so the residual is never negative.

    Args:
        guarantor_applied: Amount to distribute (>= 0)
        guarantors: Guarantors in origination order; inactive ones are skipped

    Returns:
        One Disbursement per active guarantor, or () when the amount is zero

    Raises:
        ValueError: If the amount is negative, or positive with no active
                    guarantor to receive it.

    Example:
        distribute(Decimal("33.33"), [Guarantor("g1", 25), Guarantor("g2", 25)])
        # -> shares 16.67 and 16.66
    """
    amount = round_money(guarantor_applied)
    if amount < 0:
        raise ValueError(f"guarantor_applied cannot be negative, got {amount}")
    if amount == 0:
        return ()

    active = [g for g in guarantors if g.is_active]
    if not active:
        raise ValueError(f"No active guarantors to receive {amount}")

    total_pct = sum((g.pledge_percentage for g in active), Decimal("0"))
    disbursements: List[Disbursement] = []
    left = amount
    for g in active[:-1]:
        share = min(round_money(amount * g.pledge_percentage / total_pct), left)
        left -= share
        disbursements.append(Disbursement(g.guarantor_id, share, g.wallet, g.pledge_percentage))
    last = active[-1]
    disbursements.append(Disbursement(last.guarantor_id, left, last.wallet, last.pledge_percentage))
    return tuple(disbursements)


def allocate(
    ledger: LoanLedger,
    terms: LoanTerms,
    amount: Decimal,
    paid_at: Optional[datetime] = None,
) -> AllocationResult:
    """
    Split one payment into interest, guarantor reimbursement and principal.

    Pure: returns a new LoanLedger in the result and never touches the input.
    The request is truncated to whole cents, and a payment larger than the
    outstanding balance is capped silently.

    Args:
        ledger: Current repayment progress
        terms: Loan terms
        amount: Requested payment (> 0)
        paid_at: Payment time stored as last_payment_at

    Returns:
        AllocationResult with the components, the disbursements and the new ledger

    Raises:
        InvalidAmount: If amount is not a number or truncates to <= 0 at the cent
        AlreadySettled: If the ledger is already completed
    """
    try:
        requested = floor_money(amount)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e
    if requested <= 0:
        raise InvalidAmount(f"Payment amount must be positive, got {amount}")
    if ledger.is_completed:
        raise AlreadySettled("Loan is already fully settled")

    # Step 1: cap at what is still owed
    owed = remaining_balance(ledger, terms)
    applied = min(requested, owed)
    # The payment that clears the balance also clears rounding residues left
    # in the interest and pledge buckets by earlier payments.
    closing = applied == owed

    # Step 2-3: interest share, capped at interest headroom; overflow joins the principal pool
    raw_interest = round_money(applied * terms.total_interest / terms.total_repayable)
    interest_headroom = max(_ZERO, terms.total_interest - ledger.total_interest_paid)
    if closing:
        raw_interest = max(raw_interest, interest_headroom)
    interest_applied = min(raw_interest, interest_headroom, applied)
    principal_pool = applied - interest_applied

    # Step 4-5: guarantor half of the pool, capped at pledge headroom; overflow reduces principal
    guarantor_portion = round_money(principal_pool * GUARANTOR_SHARE)
    guarantor_headroom = max(_ZERO, terms.pledge_pool - ledger.guarantor_reimbursed)
    if closing:
        guarantor_portion = max(guarantor_portion, guarantor_headroom)
    guarantor_applied = min(guarantor_portion, guarantor_headroom, principal_pool)
    principal_applied = principal_pool - guarantor_applied

    disbursements = distribute(guarantor_applied, terms.active_guarantors)
    per_guarantor = dict(ledger.reimbursed_by_guarantor)
    for d in disbursements:
        per_guarantor[d.guarantor_id] = per_guarantor.get(d.guarantor_id, _ZERO) + d.share_amount

    # Step 6-7
    new_ledger = replace(
        ledger,
        total_paid=ledger.total_paid + applied,
        total_interest_paid=ledger.total_interest_paid + interest_applied,
        guarantor_reimbursed=ledger.guarantor_reimbursed + guarantor_applied,
        principal_remaining=max(_ZERO, ledger.principal_remaining - principal_applied),
        last_payment_amount=applied,
        last_payment_at=paid_at if paid_at is not None else ledger.last_payment_at,
        payment_count=ledger.payment_count + 1,
        reimbursed_by_guarantor=per_guarantor,
    )
    new_ledger = replace(new_ledger, is_completed=is_complete(new_ledger, terms))

    return AllocationResult(
        applied_payment=applied,
        interest_applied=interest_applied,
        guarantor_applied=guarantor_applied,
        principal_applied=principal_applied,
        resulting_ledger=new_ledger,
        remaining_balance=remaining_balance(new_ledger, terms),
        requested_amount=requested,
        disbursements=disbursements,
    )


def calculate_summary(ledger: LoanLedger, terms: LoanTerms) -> LoanSummary:
    """Build a progress report; percent_complete is capped at 100."""
    total_repayable = terms.total_repayable
    percent = round_money(ledger.total_paid * 100 / total_repayable)
    return LoanSummary(
        principal=terms.principal,
        total_repayable=total_repayable,
        pledge_pool=terms.pledge_pool,
        total_paid=ledger.total_paid,
        remaining_balance=remaining_balance(ledger, terms),
        percent_complete=min(percent, Decimal("100.00")),
        interest_paid=ledger.total_interest_paid,
        remaining_interest=max(_ZERO, terms.total_interest - ledger.total_interest_paid),
        guarantor_reimbursed=ledger.guarantor_reimbursed,
        remaining_guarantor_debt=max(_ZERO, terms.pledge_pool - ledger.guarantor_reimbursed),
        principal_paid=terms.principal - ledger.principal_remaining,
        principal_remaining=ledger.principal_remaining,
        payment_count=ledger.payment_count,
        status=ledger.status,
    )


# ============================================================================
# UNIT FACTORY
# ============================================================================

def create_guaranteed_loan(
    symbol: str,
    name: str,
    terms: LoanTerms,
    origination_date: Optional[datetime] = None,
) -> Unit:
    """
    Create a guaranteed loan unit.

    The unit's state carries the terms and a fresh LoanLedger. Funds move
    only when the ORIGINATION event is executed (see compute_origination).

    Args:
        symbol: Unique loan identifier (e.g., "LOAN_001")
        name: Human-readable loan name
        terms: Loan terms including all wallets
        origination_date: Loan origination date (optional)

    Raises:
        ValueError: If wallets are missing or overlap, the currency is empty,
                    or the total active pledge exceeds 50% of the principal.

    Example:
        terms = LoanTerms(
            principal=Decimal("1000"),
            flat_rate=Decimal("0.10"),
            guarantors=(Guarantor("kofi", Decimal("50")),),
            currency="GHS",
            borrower_wallet="ama",
            lender_wallet="loan_account",
            interest_wallet="interest_income",
        )
        ledger.register_unit(create_guaranteed_loan("LOAN_001", "Ama personal loan", terms))
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not terms.currency or not terms.currency.strip():
        raise ValueError("currency cannot be empty")

    wallets = {
        'borrower_wallet': terms.borrower_wallet,
        'lender_wallet': terms.lender_wallet,
        'interest_wallet': terms.interest_wallet,
    }
    for label, wallet in wallets.items():
        if not wallet or not wallet.strip():
            raise ValueError(f"{label} cannot be empty")
    if terms.borrower_wallet in (terms.lender_wallet, terms.interest_wallet):
        raise ValueError("borrower_wallet must differ from lender_wallet and interest_wallet")

    for g in terms.active_guarantors:
        if g.wallet == terms.borrower_wallet:
            raise ValueError(f"guarantor {g.guarantor_id} cannot be the borrower")

    if terms.total_pledge_percentage > MAX_TOTAL_PLEDGE_PERCENTAGE:
        raise ValueError(
            f"total pledge percentage must not exceed {MAX_TOTAL_PLEDGE_PERCENTAGE}%, "
            f"got {terms.total_pledge_percentage}%"
        )

    state = to_state_dict(terms, LoanLedger.initial(terms))
    state.update({
        'originated': False,
        'origination_date': origination_date,
        'last_payment_reference': None,
    })

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_GUARANTEED_LOAN,
        min_balance=Decimal("-1"),  # Only borrower (-1) and lender (+1) positions
        max_balance=Decimal("1"),
        decimal_places=0,           # Loan is a single unit
        _frozen_state=_freeze_state(state),
    )


# ============================================================================
# ORIGINATION
# ============================================================================

def compute_origination(view: LedgerView, symbol: str) -> PendingTransaction:
    """
    Fund the borrower and book the loan.

    The lender pays principal - pledge_pool and each active guarantor pays
    its pledge, so the borrower receives exactly the principal. One loan
    unit moves from borrower to lender to record the debt.

    Raises:
        ValueError: If the loan was already originated
    """
    state = view.get_unit_state(symbol)
    if state.get('originated', False):
        raise ValueError(f"Loan {symbol} is already originated")

    terms, _ = load_guaranteed_loan(view, symbol)
    contract_id = f'origination_{symbol}'
    pledges = distribute(terms.pledge_pool, terms.active_guarantors)

    moves = [
        Move(
            quantity=Decimal("1"),
            unit_symbol=symbol,
            source=terms.borrower_wallet,
            dest=terms.lender_wallet,
            contract_id=contract_id,
        )
    ]
    lender_funding = terms.principal - terms.pledge_pool
    if lender_funding > 0:
        moves.append(Move(
            quantity=lender_funding,
            unit_symbol=terms.currency,
            source=terms.lender_wallet,
            dest=terms.borrower_wallet,
            contract_id=contract_id,
            metadata={'kind': 'DISBURSEMENT'},
        ))
    for pledge in pledges:
        if pledge.share_amount > 0:
            moves.append(Move(
                quantity=pledge.share_amount,
                unit_symbol=terms.currency,
                source=pledge.wallet,
                dest=terms.borrower_wallet,
                contract_id=contract_id,
                metadata={'kind': 'GUARANTOR_CONTRIBUTION', 'guarantor_id': pledge.guarantor_id},
            ))

    new_state = {
        **state,
        'originated': True,
        'origination_date': state.get('origination_date') or view.current_time,
    }
    origin = TransactionOrigin(OriginType.CONTRACT, symbol, symbol, EVENT_ORIGINATION)
    return build_transaction(
        view, moves, [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)], origin
    )


# ============================================================================
# REPAYMENT
# ============================================================================

def compute_repayment_preview(view: LedgerView, symbol: str, amount: Decimal) -> AllocationResult:
    """Allocate a payment against the loan's current state without building a transaction."""
    terms, ledger = load_guaranteed_loan(view, symbol)
    return allocate(ledger, terms, amount, paid_at=view.current_time)


def make_reference(symbol: str, payment_number: int, prefix: str = DEFAULT_REFERENCE_PREFIX) -> str:
    """Default payment reference, e.g. LRP-LOAN_001-0003."""
    return f"{prefix}-{symbol}-{payment_number:04d}"


def guarantor_reference(reference: str, guarantor_id: str) -> str:
    """Reference of one guarantor's reimbursement credit."""
    return f"GRB-{reference}-{guarantor_id}"


def plan_repayment(
    view: LedgerView,
    symbol: str,
    amount: Decimal,
    reference: Optional[str] = None,
    reference_prefix: str = DEFAULT_REFERENCE_PREFIX,
) -> Tuple[AllocationResult, PendingTransaction]:
    """
    Allocate a payment and build the transaction that books it.

    Returns the allocation together with the transaction so callers that
    need both work from the same snapshot.

    Moves (zero amounts are omitted):
    - borrower -> lender: principal_applied
    - borrower -> interest wallet: interest_applied
    - borrower -> guarantor wallet: one per disbursement share

    Every move carries the payment reference and the breakdown in its
    metadata. The loan state change records the full old and new snapshot,
    so the ledger rejects the transaction if another payment landed first.

    Raises:
        InvalidAmount: If amount <= 0
        AlreadySettled: If the loan is settled
        ValueError: If the loan was never originated

    Example:
        allocation, pending = plan_repayment(ledger, "LOAN_001", Decimal("110"))
        ledger.execute(pending)
    """
    state = view.get_unit_state(symbol)
    if not state.get('originated', False):
        raise ValueError(f"Loan {symbol} has not been originated")

    terms, ledger = load_guaranteed_loan(view, symbol)
    result = allocate(ledger, terms, amount, paid_at=view.current_time)

    if reference is None:
        reference = make_reference(symbol, result.resulting_ledger.payment_count, reference_prefix)

    breakdown = {
        'applied': result.applied_payment,
        'interest': result.interest_applied,
        'guarantor': result.guarantor_applied,
        'principal': result.principal_applied,
    }
    contract_id = f'repayment_{symbol}'

    moves = []
    if result.principal_applied > 0:
        moves.append(Move(
            quantity=result.principal_applied,
            unit_symbol=terms.currency,
            source=terms.borrower_wallet,
            dest=terms.lender_wallet,
            contract_id=contract_id,
            metadata={'kind': MOVE_KIND_PRINCIPAL, 'reference': reference, 'breakdown': breakdown},
        ))
    if result.interest_applied > 0:
        moves.append(Move(
            quantity=result.interest_applied,
            unit_symbol=terms.currency,
            source=terms.borrower_wallet,
            dest=terms.interest_wallet,
            contract_id=contract_id,
            metadata={'kind': MOVE_KIND_INTEREST, 'reference': reference, 'breakdown': breakdown},
        ))
    for d in result.disbursements:
        if d.share_amount > 0:
            moves.append(Move(
                quantity=d.share_amount,
                unit_symbol=terms.currency,
                source=terms.borrower_wallet,
                dest=d.wallet,
                contract_id=contract_id,
                metadata={
                    'kind': MOVE_KIND_GUARANTOR,
                    'reference': guarantor_reference(reference, d.guarantor_id),
                    'payment_reference': reference,
                    'guarantor_id': d.guarantor_id,
                    'breakdown': breakdown,
                },
            ))

    new_state = {
        **state,
        **to_state_dict(terms, result.resulting_ledger),
        'last_payment_reference': reference,
    }
    origin = TransactionOrigin(OriginType.CONTRACT, symbol, symbol, EVENT_REPAYMENT)
    pending = build_transaction(
        view, moves, [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)], origin
    )
    return result, pending


def compute_repayment(
    view: LedgerView,
    symbol: str,
    amount: Decimal,
    reference: Optional[str] = None,
    reference_prefix: str = DEFAULT_REFERENCE_PREFIX,
) -> PendingTransaction:
    """
    Build the transaction that books a payment (see plan_repayment).

    Example:
        pending = compute_repayment(ledger, "LOAN_001", Decimal("110"))
        ledger.execute(pending)
    """
    _, pending = plan_repayment(view, symbol, amount, reference, reference_prefix)
    return pending


def compute_loan_summary(view: LedgerView, symbol: str) -> LoanSummary:
    """Load the loan and report its progress."""
    terms, ledger = load_guaranteed_loan(view, symbol)
    return calculate_summary(ledger, terms)


# ============================================================================
# TRANSACT INTERFACE
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    **kwargs
) -> PendingTransaction:
    """
    Generate moves and state updates for a guaranteed loan lifecycle event.

    Args:
        view: Read-only ledger access
        symbol: Loan symbol
        event_type: Type of event:
            - ORIGINATION: Fund the borrower
            - REPAYMENT: Book a payment (requires 'amount', optional 'reference')
        **kwargs: Event-specific parameters

    Raises:
        ValueError: For unknown events or missing parameters

    Example:
        ledger.execute(transact(ledger, "LOAN_001", "ORIGINATION"))
        ledger.execute(transact(ledger, "LOAN_001", "REPAYMENT", amount=Decimal("110")))
    """
    if event_type == EVENT_ORIGINATION:
        return compute_origination(view, symbol)

    elif event_type == EVENT_REPAYMENT:
        amount = kwargs.get('amount')
        if amount is None:
            raise ValueError(f"Missing 'amount' parameter for REPAYMENT event on {symbol}")
        return compute_repayment(
            view, symbol, amount,
            reference=kwargs.get('reference'),
            reference_prefix=kwargs.get('reference_prefix', DEFAULT_REFERENCE_PREFIX),
        )

    else:
        raise ValueError(f"Unknown event type '{event_type}' for guaranteed loan {symbol}")
