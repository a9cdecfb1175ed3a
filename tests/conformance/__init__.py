"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of repayment allocation and its
booking in the ledger. Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Payments split exactly; ledger cash is conserved
2. caps.py - Interest and pledge ceilings, terminal state
3. atomicity.py - All-or-nothing repayment transactions
4. idempotency.py - Duplicate execution handling

These tests use hypothesis for property-based testing.
"""
