"""
fake_view.py - Test Helper for LedgerView

Provides a minimal, read-only LedgerView for testing the loan adapters
without a full Ledger instance.
"""

from __future__ import annotations
import copy
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any

from loanledger import LedgerView
from loanledger.core import Unit


Positions = Dict[str, Decimal]
UnitState = Dict[str, Any]


class FakeView:
    """
    Minimal LedgerView implementation for testing compute_* functions.

    Example:
        view = FakeView(
            balances={'ama': {'GHS': Decimal("1000")}},
            states={'LOAN_001': to_state_dict(terms, LoanLedger.initial(terms))},
            time=datetime(2025, 1, 1)
        )
        pending = compute_repayment(view, 'LOAN_001', Decimal("110"))
    """

    def __init__(
        self,
        balances: Optional[Dict[str, Dict[str, Decimal]]] = None,
        states: Optional[Dict[str, UnitState]] = None,
        time: Optional[datetime] = None,
        units: Optional[Dict[str, Unit]] = None
    ):
        self._balances = balances or {}
        self._states = states or {}
        self._time = time or datetime(2025, 1, 1)
        self._units = units or {}

    @classmethod
    def of_unit(cls, unit: Unit, time: Optional[datetime] = None) -> FakeView:
        """View holding a single unit, its state taken from the unit."""
        return cls(states={unit.symbol: unit.state}, time=time, units={unit.symbol: unit})

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_unit_state(self, unit: str) -> UnitState:
        return copy.deepcopy(self._states.get(unit, {}))

    def get_positions(self, unit: str) -> Positions:
        return {
            w: b[unit]
            for w, b in self._balances.items()
            if unit in b and b[unit] != 0
        }

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys())

    def get_unit(self, symbol: str) -> Unit:
        return self._units[symbol]


# Verify FakeView implements LedgerView protocol
assert isinstance(FakeView(), LedgerView)
