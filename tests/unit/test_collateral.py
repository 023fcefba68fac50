"""
test_collateral.py - Unit tests for deposits and withdrawals

Tests:
- compute_deposit / compute_withdrawal (pure, via FakeView)
- Custodian interaction through the Ledger
- Withdrawal gating by pool balance and by the caller's own collateral
"""

import pytest
from datetime import datetime

from collateral_ledger import (
    Account, CollateralDeposited, TokensWithdrawn,
    InsufficientBalance, TransferFailed, ZeroAmount,
    Settlement, TransferDirection, OP_DEPOSIT, OP_WITHDRAW,
    compute_deposit, compute_withdrawal,
)
from tests.conftest import make_ledger
from tests.fake_view import FakeView


T0 = datetime(2025, 1, 1)


class TestComputeDeposit:
    """Tests for compute_deposit."""

    def test_deposit_credits_collateral(self, config):
        view = FakeView(config, time=T0)
        pending = compute_deposit(view, "alice", 1000)

        assert pending.operation_type == OP_DEPOSIT
        change = pending.account_changes[0]
        assert change.old == Account(0, 0, T0)
        assert change.new == Account(1000, 0, T0)

    def test_deposit_pulls_before_crediting(self, config):
        pending = compute_deposit(FakeView(config, time=T0), "alice", 1000)
        assert pending.transfer.direction is TransferDirection.PULL
        assert pending.transfer.account == "alice"
        assert pending.transfer.amount == 1000
        assert pending.settlement is Settlement.TRANSFER_THEN_COMMIT

    def test_deposit_notification(self, config):
        pending = compute_deposit(FakeView(config, time=T0), "alice", 1000)
        assert pending.notifications == (CollateralDeposited("alice", 1000),)

    def test_deposit_adds_to_existing(self, config):
        view = FakeView(config, accounts={"alice": Account(500, 200, T0)}, time=T0)
        pending = compute_deposit(view, "alice", 250)
        assert pending.account_changes[0].new == Account(750, 200, T0)

    def test_zero_deposit(self, config):
        with pytest.raises(ZeroAmount):
            compute_deposit(FakeView(config), "alice", 0)

    def test_negative_deposit(self, config):
        with pytest.raises(ValueError):
            compute_deposit(FakeView(config), "alice", -5)


class TestComputeWithdrawal:
    """Tests for compute_withdrawal."""

    def test_withdraw_debits_then_pushes(self, config):
        view = FakeView(
            config,
            accounts={"alice": Account(1000, 0, T0)},
            balances={"pool": 1000},
            time=T0,
        )
        pending = compute_withdrawal(view, "alice", 400)

        assert pending.operation_type == OP_WITHDRAW
        assert pending.account_changes[0].new.collateral == 600
        assert pending.transfer.direction is TransferDirection.PUSH
        assert pending.settlement is Settlement.COMMIT_THEN_TRANSFER
        assert pending.notifications == (TokensWithdrawn("alice", 400),)

    def test_pool_short(self, config):
        view = FakeView(
            config,
            accounts={"alice": Account(1000, 0, T0)},
            balances={"pool": 500},
        )
        with pytest.raises(InsufficientBalance, match="pool"):
            compute_withdrawal(view, "alice", 1000)

    def test_own_collateral_short(self, config):
        """A full pool does not let a caller withdraw more than they deposited."""
        view = FakeView(
            config,
            accounts={"alice": Account(100, 0, T0)},
            balances={"pool": 1000},
        )
        with pytest.raises(InsufficientBalance, match="alice"):
            compute_withdrawal(view, "alice", 200)

    def test_zero_withdrawal(self, config):
        with pytest.raises(ZeroAmount):
            compute_withdrawal(FakeView(config), "alice", 0)


class TestLedgerCollateral:
    """Deposits and withdrawals through the Ledger and custodian."""

    def test_deposit_moves_funds_to_pool(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)

        assert funded_ledger.get_account("alice").collateral == 1000
        assert funded_ledger.external_balance("alice") == 9000
        assert funded_ledger.pool_balance() == 1000

    def test_deposit_then_withdraw_restores_baseline(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)
        funded_ledger.withdraw_tokens("alice", 1000)

        assert funded_ledger.get_account("alice").collateral == 0
        assert funded_ledger.external_balance("alice") == 10_000
        assert funded_ledger.pool_balance() == 0

    def test_partial_withdrawal(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)
        funded_ledger.withdraw_tokens("alice", 400)

        assert funded_ledger.get_account("alice").collateral == 600
        assert funded_ledger.external_balance("alice") == 9400
        assert funded_ledger.pool_balance() == 600

    def test_deposit_without_approval_fails(self):
        ledger = make_ledger()
        ledger.custodian.mint("alice", 1000)

        with pytest.raises(TransferFailed):
            ledger.deposit_collateral("alice", 1000)

        assert ledger.list_accounts() == set()
        assert ledger.external_balance("alice") == 1000

    def test_deposit_above_balance_fails(self, funded_ledger):
        with pytest.raises(TransferFailed):
            funded_ledger.deposit_collateral("alice", 10_001)
        assert funded_ledger.get_account("alice").collateral == 0

    def test_cannot_withdraw_other_accounts_collateral(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)

        with pytest.raises(InsufficientBalance):
            funded_ledger.withdraw_tokens("bob", 100)

        assert funded_ledger.pool_balance() == 1000

    def test_withdrawal_skips_ratio_check(self, borrowed_ledger):
        """Collateral backing open debt can still be withdrawn."""
        borrowed_ledger.withdraw_tokens("alice", 997)

        account = borrowed_ledger.get_account("alice")
        assert account.collateral == 3
        assert account.borrowed_amount == 500
        assert borrowed_ledger.account_health("alice").liquidatable

    def test_rejected_push_restores_collateral(self, funded_ledger):
        funded_ledger.deposit_collateral("alice", 1000)
        funded_ledger.custodian.reject_transfers = True

        with pytest.raises(TransferFailed):
            funded_ledger.withdraw_tokens("alice", 400)

        assert funded_ledger.get_account("alice").collateral == 1000
        assert funded_ledger.pool_balance() == 1000
