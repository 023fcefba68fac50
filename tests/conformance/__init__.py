"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_atomicity.py - All-or-nothing operation semantics
2. test_reentrancy.py - Custodian callbacks cannot re-enter the ledger
3. test_invariants.py - Balances, limits and conservation under random workloads

These tests use hypothesis for property-based testing.
"""
