"""
Reentrancy Conformance Tests

INVARIANT: A custodian callback cannot execute another ledger operation.

    ∀ operation O with custodian call C:
        during C, Ledger.execute raises ReentrantCall
        during C, reads observe the state O committed before C

Withdraw and repay commit before the custodian call; deposit credits only
after the custodian confirms.
"""

import pytest

from collateral_ledger import ReentrantCall, compute_borrow
from tests.conftest import make_ledger


def _ledger():
    ledger = make_ledger(balances={"alice": 10_000, "bob": 10_000})
    ledger.deposit_collateral("alice", 1_000)
    ledger.borrow("alice", 500)
    return ledger


class TestReentrantCustodian:
    """A malicious token contract calling back into the ledger."""

    def test_reentrant_withdraw_fails_whole_operation(self):
        ledger = _ledger()

        def attack(sender, recipient, amount):
            ledger.withdraw_tokens("alice", amount)

        ledger.custodian.on_transfer = attack
        with pytest.raises(ReentrantCall):
            ledger.withdraw_tokens("alice", 400)

        assert ledger.get_account("alice").collateral == 1_000
        assert ledger.pool_balance() == 1_000
        assert ledger.external_balance("alice") == 9_000

    def test_caught_reentry_cannot_double_withdraw(self):
        """Even if the callback swallows the error, only one withdrawal happens."""
        ledger = _ledger()
        attempts = []

        def attack(sender, recipient, amount):
            try:
                ledger.withdraw_tokens("alice", amount)
            except ReentrantCall as exc:
                attempts.append(exc)

        ledger.custodian.on_transfer = attack
        ledger.withdraw_tokens("alice", 400)

        assert len(attempts) == 1
        assert ledger.get_account("alice").collateral == 600
        assert ledger.pool_balance() == 600
        assert ledger.external_balance("alice") == 9_400

    def test_reentrant_borrow_during_deposit(self):
        ledger = _ledger()
        attempts = []

        def attack(sender, recipient, amount):
            try:
                ledger.borrow("alice", 1)
            except ReentrantCall as exc:
                attempts.append(exc)

        ledger.custodian.on_transfer = attack
        ledger.deposit_collateral("alice", 100)

        assert len(attempts) == 1
        assert ledger.get_account("alice").borrowed_amount == 500
        assert ledger.get_account("alice").collateral == 1_100

    def test_precomputed_operation_also_blocked(self):
        """The guard sits on execute, not only on the convenience methods."""
        ledger = _ledger()
        pending = compute_borrow(ledger, "alice", 1)
        attempts = []

        def attack(sender, recipient, amount):
            try:
                ledger.execute(pending)
            except ReentrantCall as exc:
                attempts.append(exc)

        ledger.custodian.on_transfer = attack
        ledger.repay_loan("alice", 100)

        assert len(attempts) == 1
        assert ledger.get_account("alice").borrowed_amount == 400

    def test_guard_released_after_failure(self):
        ledger = _ledger()

        def attack(sender, recipient, amount):
            ledger.withdraw_tokens("alice", amount)

        ledger.custodian.on_transfer = attack
        with pytest.raises(ReentrantCall):
            ledger.withdraw_tokens("alice", 400)

        ledger.custodian.on_transfer = None
        ledger.withdraw_tokens("alice", 400)
        assert ledger.get_account("alice").collateral == 600


class TestCommitOrdering:
    """What a callback observes during the custodian call."""

    def _observe(self, ledger):
        seen = []
        ledger.custodian.on_transfer = lambda s, r, a: seen.append(ledger.get_account("alice"))
        return seen

    def test_withdraw_debits_before_transfer(self):
        ledger = _ledger()
        seen = self._observe(ledger)
        ledger.withdraw_tokens("alice", 400)
        assert seen[0].collateral == 600

    def test_repay_reduces_debt_before_transfer(self):
        ledger = _ledger()
        seen = self._observe(ledger)
        ledger.repay_loan("alice", 200)
        assert seen[0].borrowed_amount == 300

    def test_deposit_credits_after_transfer(self):
        ledger = _ledger()
        seen = self._observe(ledger)
        ledger.deposit_collateral("alice", 100)
        assert seen[0].collateral == 1_000
        assert ledger.get_account("alice").collateral == 1_100
