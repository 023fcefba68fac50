"""
borrowing.py - Borrow/Repay Engine

=== BORROWING LIMIT ===

The admission condition for new debt:

    collateral * collateral_ratio >= borrowed_amount + amount

The bound is inclusive: borrowing exactly up to the limit succeeds. It is
checked only here, at borrow time. Withdrawals and applied interest can later
push an account past it, which is what liquidation is for.

Borrowing records the liability only; no asset is disbursed.

=== ACCRUAL CLOCK ===

A borrow on an account with no debt restarts last_accrual_time at the
borrow time. A top-up on existing debt leaves the clock alone, so the next
accrual charges the whole new principal from the previous accrual time.
Accrue before topping up to charge the earlier interval on the old
principal only.

=== REPAYMENT ===

Repayment pulls the asset from the caller into the pool. The debt is reduced
BEFORE the custodian is called, so a callback observes the reduced debt.
Repaying more than the outstanding debt is rejected with OverRepayment;
amounts are never clamped.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    Account, AccountChange, CustodianTransfer, LedgerView, PendingOperation,
    RateModelConfig,
    FundsBorrowed, LoanRepaid,
    InsufficientBalance, InsufficientCollateral, OverRepayment,
    OP_BORROW, OP_REPAY,
    Settlement, TransferDirection,
    build_operation, validate_amount, validate_identity,
)


def compute_borrow_limit(account: Account, config: RateModelConfig) -> int:
    """Maximum total debt the account's collateral admits."""
    return account.collateral * config.collateral_ratio


def compute_borrow_capacity(account: Account, config: RateModelConfig) -> int:
    """Additional debt the account can take on right now (never negative)."""
    return max(0, compute_borrow_limit(account, config) - account.borrowed_amount)


def compute_borrow(view: LedgerView, caller: str, amount: int) -> PendingOperation:
    """
    Record new debt against the caller's collateral.

    Args:
        view: Read-only ledger access
        caller: Borrowing account
        amount: Units to borrow

    Returns:
        PendingOperation increasing borrowed_amount. When the account had
        no debt, its accrual clock restarts at the current time; otherwise
        the clock is kept.

    Raises:
        ZeroAmount: If amount is zero
        InsufficientCollateral: If the new debt would exceed collateral * ratio
    """
    validate_identity(caller, "caller")
    validate_amount(amount)

    account = view.get_account(caller)
    limit = compute_borrow_limit(account, view.config)
    new_debt = account.borrowed_amount + amount
    if new_debt > limit:
        raise InsufficientCollateral(
            f"{caller}: debt {new_debt} would exceed limit {limit} "
            f"({account.collateral} collateral x {view.config.collateral_ratio})"
        )

    accrual_time = account.last_accrual_time
    if account.borrowed_amount == 0:
        accrual_time = view.current_time
    new_account = replace(account, borrowed_amount=new_debt, last_accrual_time=accrual_time)

    return build_operation(
        view,
        OP_BORROW,
        caller,
        [AccountChange(caller, account, new_account)],
        notifications=[FundsBorrowed(caller, amount)],
    )


def compute_repayment(view: LedgerView, caller: str, amount: int) -> PendingOperation:
    """
    Repay part or all of the caller's debt.

    Args:
        view: Read-only ledger access
        caller: Repaying account
        amount: Units to repay

    Returns:
        PendingOperation reducing borrowed_amount, then pulling `amount`
        from the caller into the pool.

    Raises:
        ZeroAmount: If amount is zero
        InsufficientBalance: If the caller's external balance is below amount
        OverRepayment: If amount exceeds the outstanding debt
    """
    validate_identity(caller, "caller")
    validate_amount(amount)

    balance = view.external_balance(caller)
    if balance < amount:
        raise InsufficientBalance(f"{caller} holds {balance}, cannot repay {amount}")

    account = view.get_account(caller)
    if amount > account.borrowed_amount:
        raise OverRepayment(
            f"{caller}: repayment {amount} exceeds debt {account.borrowed_amount}"
        )

    new_account = replace(account, borrowed_amount=account.borrowed_amount - amount)

    return build_operation(
        view,
        OP_REPAY,
        caller,
        [AccountChange(caller, account, new_account)],
        transfer=CustodianTransfer(TransferDirection.PULL, caller, amount),
        settlement=Settlement.COMMIT_THEN_TRANSFER,
        notifications=[LoanRepaid(caller, amount)],
    )
