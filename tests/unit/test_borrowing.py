"""
test_borrowing.py - Unit tests for borrowing and repayment

Tests:
- Borrowing limit boundary (inclusive)
- Borrowing records debt only, no asset movement
- Repayment: exact, over-repayment, insufficient external balance
- Custodian rejection rolls the repayment back
- Borrow limit and capacity helpers
"""

import pytest
from datetime import datetime

from collateral_ledger import (
    Account, FundsBorrowed, LoanRepaid,
    InsufficientBalance, InsufficientCollateral, OverRepayment,
    TransferFailed, ZeroAmount,
    Settlement, TransferDirection, OP_BORROW, OP_REPAY,
    compute_borrow, compute_repayment, compute_borrow_limit, compute_borrow_capacity,
)
from tests.conftest import make_ledger
from tests.fake_view import FakeView


T0 = datetime(2025, 1, 1)


class TestBorrowLimit:
    """Tests for compute_borrow_limit and compute_borrow_capacity."""

    def test_limit_is_collateral_times_ratio(self, config):
        assert compute_borrow_limit(Account(10, 0), config) == 1500

    def test_capacity(self, config):
        assert compute_borrow_capacity(Account(10, 600), config) == 900

    def test_capacity_never_negative(self, config):
        assert compute_borrow_capacity(Account(1, 500), config) == 0


class TestComputeBorrow:
    """Tests for compute_borrow."""

    def test_borrow_records_debt(self, config):
        view = FakeView(config, accounts={"alice": Account(1000, 0, T0)}, time=T0)
        pending = compute_borrow(view, "alice", 500)

        assert pending.operation_type == OP_BORROW
        assert pending.account_changes[0].new == Account(1000, 500, T0)
        assert pending.transfer is None
        assert pending.notifications == (FundsBorrowed("alice", 500),)

    def test_borrow_at_limit_succeeds(self, config):
        view = FakeView(config, accounts={"alice": Account(10, 0, T0)}, time=T0)
        pending = compute_borrow(view, "alice", 1500)
        assert pending.account_changes[0].new.borrowed_amount == 1500

    def test_borrow_past_limit_fails(self, config):
        view = FakeView(config, accounts={"alice": Account(10, 0, T0)}, time=T0)
        with pytest.raises(InsufficientCollateral):
            compute_borrow(view, "alice", 1501)

    def test_borrow_counts_existing_debt(self, config):
        view = FakeView(config, accounts={"alice": Account(10, 1500, T0)}, time=T0)
        with pytest.raises(InsufficientCollateral):
            compute_borrow(view, "alice", 1)

    def test_borrow_without_collateral(self, config):
        with pytest.raises(InsufficientCollateral):
            compute_borrow(FakeView(config), "alice", 1)

    def test_zero_borrow(self, config):
        with pytest.raises(ZeroAmount):
            compute_borrow(FakeView(config), "alice", 0)

    def test_borrow_from_zero_restarts_clock(self, config):
        later = datetime(2025, 6, 1)
        view = FakeView(config, accounts={"alice": Account(1000, 0, T0)}, time=later)
        pending = compute_borrow(view, "alice", 100)
        assert pending.account_changes[0].new.last_accrual_time == later

    def test_top_up_keeps_clock(self, config):
        """Existing debt keeps its accrual time; the top-up accrues from it too."""
        later = datetime(2025, 6, 1)
        view = FakeView(config, accounts={"alice": Account(1000, 100, T0)}, time=later)
        pending = compute_borrow(view, "alice", 100)
        assert pending.account_changes[0].new.last_accrual_time == T0
        assert pending.account_changes[0].new.borrowed_amount == 200


class TestComputeRepayment:
    """Tests for compute_repayment."""

    def _view(self, config, debt=500, external=1000):
        return FakeView(
            config,
            accounts={"alice": Account(1000, debt, T0)},
            balances={"alice": external, "pool": 1000},
            time=T0,
        )

    def test_repay_reduces_debt(self, config):
        pending = compute_repayment(self._view(config), "alice", 200)

        assert pending.operation_type == OP_REPAY
        assert pending.account_changes[0].new.borrowed_amount == 300
        assert pending.transfer.direction is TransferDirection.PULL
        assert pending.settlement is Settlement.COMMIT_THEN_TRANSFER
        assert pending.notifications == (LoanRepaid("alice", 200),)

    def test_full_repayment(self, config):
        pending = compute_repayment(self._view(config), "alice", 500)
        assert pending.account_changes[0].new.borrowed_amount == 0

    def test_over_repayment_rejected(self, config):
        with pytest.raises(OverRepayment):
            compute_repayment(self._view(config), "alice", 501)

    def test_repay_without_debt(self, config):
        with pytest.raises(OverRepayment):
            compute_repayment(self._view(config, debt=0), "alice", 1)

    def test_insufficient_external_balance(self, config):
        with pytest.raises(InsufficientBalance):
            compute_repayment(self._view(config, external=100), "alice", 200)

    def test_zero_repayment(self, config):
        with pytest.raises(ZeroAmount):
            compute_repayment(self._view(config), "alice", 0)


class TestLedgerBorrowing:
    """Borrowing and repayment through the Ledger."""

    def test_borrow_moves_no_funds(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)
        funded_ledger.borrow("alice", 500)

        assert funded_ledger.get_account("alice").borrowed_amount == 500
        assert funded_ledger.external_balance("alice") == 9000
        assert funded_ledger.pool_balance() == 1000

    def test_failed_borrow_changes_nothing(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 10)
        before = funded_ledger.get_account("alice")

        with pytest.raises(InsufficientCollateral):
            funded_ledger.borrow("alice", 1501)

        assert funded_ledger.get_account("alice") == before
        assert len(funded_ledger.operation_log) == 1

    def test_repay_pulls_into_pool(self, borrowed_ledger):
        borrowed_ledger.repay_loan("alice", 200)

        assert borrowed_ledger.get_account("alice").borrowed_amount == 300
        assert borrowed_ledger.external_balance("alice") == 8800
        assert borrowed_ledger.pool_balance() == 1200

    def test_over_repayment_changes_nothing(self, borrowed_ledger):
        with pytest.raises(OverRepayment):
            borrowed_ledger.repay_loan("alice", 501)

        assert borrowed_ledger.get_account("alice").borrowed_amount == 500
        assert borrowed_ledger.external_balance("alice") == 9000

    def test_repay_with_no_spare_balance(self):
        ledger = make_ledger(balances={"alice": 1000})
        ledger.deposit_collateral("alice", 1000)
        ledger.borrow("alice", 500)

        with pytest.raises(InsufficientBalance):
            ledger.repay_loan("alice", 100)

    def test_rejected_pull_restores_debt(self, borrowed_ledger):
        borrowed_ledger.custodian.reject_transfers = True

        with pytest.raises(TransferFailed):
            borrowed_ledger.repay_loan("alice", 200)

        assert borrowed_ledger.get_account("alice").borrowed_amount == 500
        assert borrowed_ledger.pool_balance() == 1000

    def test_repay_after_revoked_allowance(self, borrowed_ledger):
        """The custodian refuses the pull when the pool's allowance is gone."""
        custodian = borrowed_ledger.custodian
        custodian.approve("alice", custodian.pool, 0)

        with pytest.raises(TransferFailed):
            borrowed_ledger.repay_loan("alice", 200)

        assert borrowed_ledger.get_account("alice").borrowed_amount == 500
