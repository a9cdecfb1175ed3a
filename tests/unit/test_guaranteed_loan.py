"""
test_guaranteed_loan.py - Unit tests for guaranteed loan units

Tests:
- LoanTerms and Guarantor validation and derived amounts
- Factory function (create_guaranteed_loan) validation
- load_guaranteed_loan / to_state_dict
- compute_origination moves and state
- compute_repayment moves, metadata and state change
- compute_repayment_preview and compute_loan_summary
- transact() interface
"""

import pytest
from datetime import datetime
from decimal import Decimal

from tests.fake_view import FakeView
from tests.loan_factory import make_terms, BORROWER, LENDER, INTEREST, LOAN
from loanledger import (
    Guarantor, LoanTerms, LoanLedger,
    InvalidAmount, AlreadySettled,
    UNIT_TYPE_GUARANTEED_LOAN,
    create_guaranteed_loan, load_guaranteed_loan, to_state_dict,
    compute_origination, compute_repayment, compute_repayment_preview,
    compute_loan_summary, plan_repayment,
    guaranteed_loan_transact,
)


def originated_view(terms, time=datetime(2025, 2, 1)):
    """FakeView holding LOAN_001 in its post-origination state."""
    unit = create_guaranteed_loan(LOAN, "Test loan", terms)
    state = unit.state
    state['originated'] = True
    return FakeView(states={LOAN: state}, time=time, units={LOAN: unit})


# ============================================================================
# TERMS
# ============================================================================

class TestLoanTerms:
    """Tests for LoanTerms and Guarantor."""

    def test_derived_amounts(self, reference_terms):
        assert reference_terms.total_interest == Decimal("100.00")
        assert reference_terms.total_repayable == Decimal("1100.00")
        assert reference_terms.pledge_pool == Decimal("500.00")

    def test_pledge_pool_sums_active_guarantors(self):
        terms = make_terms(principal="2500", pledges=(("a", "12.5"), ("b", "0"), ("c", "20")))

        assert terms.pledge_pool == Decimal("812.50")
        assert [g.guarantor_id for g in terms.active_guarantors] == ["a", "c"]

    def test_interest_rounded_to_cent(self):
        terms = make_terms(principal="333.33", flat_rate="0.075")

        assert terms.total_interest == Decimal("25.00")
        assert terms.total_repayable == Decimal("358.33")

    def test_float_inputs_converted(self):
        terms = LoanTerms(principal=1000.0, flat_rate=0.1, guarantors=[Guarantor("kofi", 50.0)])

        assert terms.principal == Decimal("1000.0")
        assert terms.flat_rate == Decimal("0.1")
        assert isinstance(terms.guarantors, tuple)
        assert terms.guarantors[0].pledge_percentage == Decimal("50.0")

    def test_guarantor_wallet_defaults_to_id(self):
        assert Guarantor("kofi", Decimal("10")).wallet == "kofi"
        assert Guarantor("kofi", Decimal("10"), wallet="acct_9").wallet == "acct_9"

    @pytest.mark.parametrize("principal", ["0", "-100"])
    def test_non_positive_principal_raises(self, principal):
        with pytest.raises(ValueError, match="principal must be positive"):
            LoanTerms(principal=Decimal(principal), flat_rate=Decimal("0.1"))

    def test_fractional_cent_principal_raises(self):
        with pytest.raises(ValueError, match="whole number of cents"):
            LoanTerms(principal=Decimal("1000.005"), flat_rate=Decimal("0.1"))

    def test_negative_rate_raises(self):
        with pytest.raises(ValueError, match="flat_rate cannot be negative"):
            LoanTerms(principal=Decimal("1000"), flat_rate=Decimal("-0.01"))

    def test_duplicate_guarantor_ids_raise(self):
        with pytest.raises(ValueError, match="unique"):
            make_terms(pledges=(("kofi", "20"), ("kofi", "10")))

    @pytest.mark.parametrize("pct", ["-1", "100.01"])
    def test_pledge_percentage_out_of_range(self, pct):
        with pytest.raises(ValueError, match=r"must be in \[0, 100\]"):
            Guarantor("kofi", Decimal(pct))

    def test_empty_guarantor_id_raises(self):
        with pytest.raises(ValueError, match="guarantor_id cannot be empty"):
            Guarantor(" ", Decimal("10"))


# ============================================================================
# CREATE GUARANTEED LOAN
# ============================================================================

class TestCreateGuaranteedLoan:
    """Tests for create_guaranteed_loan factory function."""

    def test_create_basic_loan(self, reference_terms):
        unit = create_guaranteed_loan(LOAN, "Ama personal loan", reference_terms)

        assert unit.symbol == LOAN
        assert unit.unit_type == UNIT_TYPE_GUARANTEED_LOAN
        assert unit.min_balance == Decimal("-1")
        assert unit.max_balance == Decimal("1")
        state = unit.state
        assert state['originated'] is False
        assert state['principal'] == Decimal("1000")
        assert state['principal_remaining'] == Decimal("1000")
        assert state['total_paid'] == Decimal("0")
        assert state['guarantors'] == [
            {'guarantor_id': 'kofi', 'pledge_percentage': Decimal("50"), 'wallet': 'kofi'}
        ]

    def test_origination_date_stored(self, reference_terms):
        unit = create_guaranteed_loan(LOAN, "Loan", reference_terms, origination_date=datetime(2025, 1, 15))

        assert unit.state['origination_date'] == datetime(2025, 1, 15)

    def test_pledge_above_half_rejected(self):
        terms = make_terms(pledges=(("kofi", "30"), ("esi", "25")))

        with pytest.raises(ValueError, match="total pledge percentage must not exceed 50"):
            create_guaranteed_loan(LOAN, "Loan", terms)

    def test_pledge_of_exactly_half_allowed(self):
        terms = make_terms(pledges=(("kofi", "30"), ("esi", "20")))

        assert create_guaranteed_loan(LOAN, "Loan", terms).state['guarantors'][1]['guarantor_id'] == "esi"

    @pytest.mark.parametrize("field_name", ["borrower_wallet", "lender_wallet", "interest_wallet"])
    def test_missing_wallet_rejected(self, field_name):
        kwargs = dict(
            principal=Decimal("1000"), flat_rate=Decimal("0.1"),
            borrower_wallet=BORROWER, lender_wallet=LENDER, interest_wallet=INTEREST,
        )
        kwargs[field_name] = ""

        with pytest.raises(ValueError, match=f"{field_name} cannot be empty"):
            create_guaranteed_loan(LOAN, "Loan", LoanTerms(**kwargs))

    def test_borrower_equal_to_lender_rejected(self):
        terms = LoanTerms(
            principal=Decimal("1000"), flat_rate=Decimal("0.1"),
            borrower_wallet="ama", lender_wallet="ama", interest_wallet=INTEREST,
        )

        with pytest.raises(ValueError, match="borrower_wallet must differ"):
            create_guaranteed_loan(LOAN, "Loan", terms)

    def test_borrower_as_guarantor_rejected(self):
        terms = make_terms(pledges=((BORROWER, "20"),))

        with pytest.raises(ValueError, match="cannot be the borrower"):
            create_guaranteed_loan(LOAN, "Loan", terms)

    def test_empty_currency_rejected(self):
        with pytest.raises(ValueError, match="currency cannot be empty"):
            create_guaranteed_loan(LOAN, "Loan", make_terms(currency=""))


# ============================================================================
# ADAPTERS
# ============================================================================

class TestAdapters:
    """Tests for load_guaranteed_loan and to_state_dict."""

    def test_load_returns_original_terms(self, two_guarantor_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", two_guarantor_terms))

        terms, ledger = load_guaranteed_loan(view, LOAN)

        assert terms == two_guarantor_terms
        assert ledger == LoanLedger.initial(two_guarantor_terms)

    def test_state_dict_round_trip_after_payments(self, two_guarantor_terms):
        from tests.loan_factory import pay_sequence

        ledger = pay_sequence(two_guarantor_terms, ["110", "45.67"])[-1].resulting_ledger
        view = FakeView(states={LOAN: to_state_dict(two_guarantor_terms, ledger)})

        assert load_guaranteed_loan(view, LOAN) == (two_guarantor_terms, ledger)

    def test_load_non_loan_raises(self):
        view = FakeView(states={"USD": {}})

        with pytest.raises(ValueError, match="not a guaranteed loan"):
            load_guaranteed_loan(view, "USD")


# ============================================================================
# ORIGINATION
# ============================================================================

class TestComputeOrigination:
    """Tests for compute_origination."""

    def test_origination_moves(self, two_guarantor_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", two_guarantor_terms))

        pending = compute_origination(view, LOAN)
        moves = {(m.unit_symbol, m.source, m.dest): m.quantity for m in pending.moves}

        assert moves == {
            (LOAN, BORROWER, LENDER): Decimal("1"),
            ("USD", LENDER, BORROWER): Decimal("500.00"),
            ("USD", "kofi", BORROWER): Decimal("250.00"),
            ("USD", "esi", BORROWER): Decimal("250.00"),
        }

    def test_borrower_receives_full_principal(self):
        terms = make_terms(principal="1234.57", pledges=(("a", "10"), ("b", "10"), ("c", "10")))
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", terms))

        pending = compute_origination(view, LOAN)
        received = sum(m.quantity for m in pending.moves if m.unit_symbol == "USD")

        assert received == Decimal("1234.57")

    def test_unguaranteed_loan_funded_by_lender(self, unguaranteed_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", unguaranteed_terms))

        cash_moves = [m for m in compute_origination(view, LOAN).moves if m.unit_symbol == "USD"]

        assert len(cash_moves) == 1
        assert cash_moves[0].source == LENDER
        assert cash_moves[0].quantity == Decimal("1000")

    def test_origination_marks_loan(self, reference_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", reference_terms), time=datetime(2025, 1, 10))

        sc = compute_origination(view, LOAN).state_changes[0]

        assert sc.old_state['originated'] is False
        assert sc.new_state['originated'] is True
        assert sc.new_state['origination_date'] == datetime(2025, 1, 10)

    def test_second_origination_rejected(self, reference_terms):
        with pytest.raises(ValueError, match="already originated"):
            compute_origination(originated_view(reference_terms), LOAN)

    def test_origin_metadata(self, reference_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", reference_terms))

        origin = compute_origination(view, LOAN).origin

        assert origin.event_type == "ORIGINATION"
        assert origin.unit_symbol == LOAN


# ============================================================================
# REPAYMENT
# ============================================================================

class TestComputeRepayment:
    """Tests for compute_repayment and plan_repayment."""

    def test_repayment_moves(self, two_guarantor_terms):
        pending = compute_repayment(originated_view(two_guarantor_terms), LOAN, Decimal("110"))
        moves = {(m.source, m.dest): m.quantity for m in pending.moves}

        assert moves == {
            (BORROWER, LENDER): Decimal("50.00"),
            (BORROWER, INTEREST): Decimal("10.00"),
            (BORROWER, "kofi"): Decimal("25.00"),
            (BORROWER, "esi"): Decimal("25.00"),
        }
        assert all(m.unit_symbol == "USD" for m in pending.moves)

    def test_moves_sum_to_applied_payment(self, two_guarantor_terms):
        allocation, pending = plan_repayment(originated_view(two_guarantor_terms), LOAN, Decimal("77.77"))

        assert sum(m.quantity for m in pending.moves) == allocation.applied_payment

    def test_half_cent_request_debits_whole_cents_only(self, two_guarantor_terms):
        allocation, pending = plan_repayment(originated_view(two_guarantor_terms), LOAN, Decimal("110.005"))

        assert allocation.applied_payment == Decimal("110.00")
        assert sum(m.quantity for m in pending.moves if m.source == BORROWER) == Decimal("110.00")

    def test_default_references(self, two_guarantor_terms):
        pending = compute_repayment(originated_view(two_guarantor_terms), LOAN, Decimal("110"))
        refs = {m.dest: m.metadata['reference'] for m in pending.moves}

        assert refs[LENDER] == "LRP-LOAN_001-0001"
        assert refs[INTEREST] == "LRP-LOAN_001-0001"
        assert refs["kofi"] == "GRB-LRP-LOAN_001-0001-kofi"
        assert refs["esi"] == "GRB-LRP-LOAN_001-0001-esi"

    def test_custom_reference_and_prefix(self, two_guarantor_terms):
        view = originated_view(two_guarantor_terms)

        custom = compute_repayment(view, LOAN, Decimal("110"), reference="TELLER-42")
        prefixed = compute_repayment(view, LOAN, Decimal("110"), reference_prefix="PAY")

        assert custom.state_changes[0].new_state['last_payment_reference'] == "TELLER-42"
        assert prefixed.state_changes[0].new_state['last_payment_reference'] == "PAY-LOAN_001-0001"

    def test_breakdown_in_metadata(self, two_guarantor_terms):
        pending = compute_repayment(originated_view(two_guarantor_terms), LOAN, Decimal("110"))

        assert pending.moves[0].metadata['breakdown'] == {
            'applied': Decimal("110.00"),
            'interest': Decimal("10.00"),
            'guarantor': Decimal("50.00"),
            'principal': Decimal("50.00"),
        }

    def test_state_change(self, two_guarantor_terms):
        view = originated_view(two_guarantor_terms)
        sc = compute_repayment(view, LOAN, Decimal("110")).state_changes[0]

        assert sc.unit == LOAN
        assert sc.old_state == view.get_unit_state(LOAN)
        assert sc.new_state['total_paid'] == Decimal("110.00")
        assert sc.new_state['principal_remaining'] == Decimal("950.00")
        assert sc.new_state['last_payment_at'] == datetime(2025, 2, 1)
        assert sc.new_state['payment_count'] == 1
        assert sc.new_state['reimbursed_by_guarantor'] == {'kofi': Decimal("25.00"), 'esi': Decimal("25.00")}
        assert sc.new_state['originated'] is True

    def test_zero_amount_moves_omitted(self):
        terms = make_terms(flat_rate="0", pledges=())
        pending = compute_repayment(originated_view(terms), LOAN, Decimal("100"))

        assert len(pending.moves) == 1
        assert pending.moves[0].dest == LENDER

    def test_not_originated_rejected(self, reference_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", reference_terms))

        with pytest.raises(ValueError, match="has not been originated"):
            compute_repayment(view, LOAN, Decimal("110"))

    def test_invalid_amount_propagates(self, reference_terms):
        with pytest.raises(InvalidAmount):
            compute_repayment(originated_view(reference_terms), LOAN, Decimal("-10"))

    def test_settled_loan_rejected(self, reference_terms):
        from tests.loan_factory import pay_sequence

        settled = pay_sequence(reference_terms, ["1100"])[-1].resulting_ledger
        state = {**to_state_dict(reference_terms, settled), 'originated': True}

        with pytest.raises(AlreadySettled):
            compute_repayment(FakeView(states={LOAN: state}), LOAN, Decimal("1"))


class TestPreviewAndSummary:

    def test_preview_matches_repayment(self, two_guarantor_terms):
        view = originated_view(two_guarantor_terms)

        preview = compute_repayment_preview(view, LOAN, Decimal("110"))
        allocation, _ = plan_repayment(view, LOAN, Decimal("110"))

        assert preview == allocation

    def test_summary_from_view(self, two_guarantor_terms):
        summary = compute_loan_summary(originated_view(two_guarantor_terms), LOAN)

        assert summary.remaining_balance == Decimal("1100.00")
        assert summary.status == "ACTIVE"


# ============================================================================
# TRANSACT INTERFACE
# ============================================================================

class TestTransact:
    """Tests for transact() unified interface."""

    def test_transact_origination(self, reference_terms):
        view = FakeView.of_unit(create_guaranteed_loan(LOAN, "Loan", reference_terms))

        pending = guaranteed_loan_transact(view, LOAN, "ORIGINATION")

        assert pending.state_changes[0].new_state['originated'] is True

    def test_transact_repayment(self, reference_terms):
        pending = guaranteed_loan_transact(
            originated_view(reference_terms), LOAN, "REPAYMENT", amount=Decimal("110"), reference="R1"
        )

        assert pending.state_changes[0].new_state['last_payment_reference'] == "R1"
        assert pending.state_changes[0].new_state['total_paid'] == Decimal("110.00")

    def test_transact_repayment_missing_amount(self, reference_terms):
        with pytest.raises(ValueError, match="Missing 'amount'"):
            guaranteed_loan_transact(originated_view(reference_terms), LOAN, "REPAYMENT")

    def test_transact_unknown_event(self, reference_terms):
        with pytest.raises(ValueError, match="Unknown event type"):
            guaranteed_loan_transact(originated_view(reference_terms), LOAN, "WRITE_OFF")
