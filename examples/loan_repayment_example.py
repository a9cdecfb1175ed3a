"""
Example: Repaying a guarantor-backed loan.

Ama borrows 1000 GHS at a 10% flat rate. Kofi and Esi guarantee 30% and 20%
of the principal, so the lender funds 500 and the guarantors fund the rest.
Every payment is split into interest, guarantor reimbursement and principal
until the 1100 GHS balance is cleared.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from loanledger import (
    Guarantor, Ledger, LoanTerms, EngineConfig, RepaymentEngine, AlreadySettled,
    create_guaranteed_loan,
)


def main():
    config = EngineConfig.from_env()
    config.configure_logging()

    print("=" * 80)
    print("GUARANTEED LOAN - Repayment Example")
    print("=" * 80)
    print()

    terms = LoanTerms(
        principal=Decimal("1000"),
        flat_rate=Decimal("0.10"),
        guarantors=(Guarantor("kofi", Decimal("30")), Guarantor("esi", Decimal("20"))),
        currency="GHS",
        borrower_wallet="ama",
        lender_wallet="loan_account",
        interest_wallet="interest_income",
    )
    ledger = Ledger("branch", initial_time=datetime(2025, 1, 1), verbose=config.verbose)
    engine = RepaymentEngine(ledger, EngineConfig(currency="GHS", reference_prefix=config.reference_prefix))

    print("Step 1: Origination")
    print("-" * 80)
    engine.originate(create_guaranteed_loan("LOAN_001", "Ama personal loan", terms))
    for wallet in ("ama", "loan_account", "kofi", "esi"):
        print(f"  {wallet:<16} GHS {ledger.get_balance(wallet, 'GHS'):>10,.2f}")
    print()

    print("Step 2: Monthly instalments")
    print("-" * 80)
    print(f"  {'reference':<20} {'applied':>9} {'interest':>9} {'guarantor':>10} {'principal':>10} {'left':>9}")
    for month in range(1, 11):
        ledger.advance_time(datetime(2025, 1, 1) + timedelta(days=30 * month))
        receipt = engine.repay("LOAN_001", Decimal("110"))
        a = receipt.allocation
        print(f"  {receipt.reference:<20} {a.applied_payment:>9} {a.interest_applied:>9} "
              f"{a.guarantor_applied:>10} {a.principal_applied:>10} {a.remaining_balance:>9}")
    print()

    print("Step 3: Payment after settlement")
    print("-" * 80)
    try:
        engine.repay("LOAN_001", Decimal("10"))
    except AlreadySettled as e:
        print(f"  Rejected: {e}")
    print()

    summary = engine.summary("LOAN_001")
    print("=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"  Status:               {summary.status}")
    print(f"  Total paid:           GHS {summary.total_paid:,.2f} ({summary.percent_complete}%)")
    print(f"  Interest paid:        GHS {summary.interest_paid:,.2f}")
    print(f"  Guarantors repaid:    GHS {summary.guarantor_reimbursed:,.2f}")
    print(f"  Audit records:        {len(engine.records('LOAN_001'))}")
    print(f"  Double entry valid:   {ledger.verify_double_entry({'GHS': Decimal('0')})['valid']}")
    print()


if __name__ == "__main__":
    main()
