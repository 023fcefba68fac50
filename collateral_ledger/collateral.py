"""
collateral.py - Collateral Manager

Deposit and withdrawal of the underlying asset. Value movement is delegated
to the custodian; these functions only describe it.

Ordering:
    deposit:  transfer_from(caller -> pool), THEN credit collateral
    withdraw: debit collateral, THEN transfer(pool -> caller)

A withdrawal is gated by both the pool's custodied balance and the caller's
own recorded collateral. The collateral ratio is NOT re-checked on
withdrawal; liquidation re-asserts it lazily.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    AccountChange, CustodianTransfer, LedgerView, PendingOperation,
    CollateralDeposited, TokensWithdrawn,
    InsufficientBalance,
    OP_DEPOSIT, OP_WITHDRAW,
    Settlement, TransferDirection,
    build_operation, validate_amount, validate_identity,
)


def compute_deposit(view: LedgerView, caller: str, amount: int) -> PendingOperation:
    """
    Deposit collateral into the pool on the caller's behalf.

    Args:
        view: Read-only ledger access
        caller: Depositing account
        amount: Asset units to deposit

    Returns:
        PendingOperation pulling `amount` from the caller and crediting
        collateral once the custodian confirms.

    Raises:
        ZeroAmount: If amount is zero
        ValueError: If amount is negative or not an int
    """
    validate_identity(caller, "caller")
    validate_amount(amount)

    account = view.get_account(caller)
    new_account = replace(account, collateral=account.collateral + amount)

    return build_operation(
        view,
        OP_DEPOSIT,
        caller,
        [AccountChange(caller, account, new_account)],
        transfer=CustodianTransfer(TransferDirection.PULL, caller, amount),
        settlement=Settlement.TRANSFER_THEN_COMMIT,
        notifications=[CollateralDeposited(caller, amount)],
    )


def compute_withdrawal(view: LedgerView, caller: str, amount: int) -> PendingOperation:
    """
    Withdraw collateral from the pool back to the caller.

    Args:
        view: Read-only ledger access
        caller: Withdrawing account
        amount: Asset units to withdraw

    Returns:
        PendingOperation debiting collateral, then pushing `amount` to the caller.

    Raises:
        ZeroAmount: If amount is zero
        InsufficientBalance: If the pool holds less than amount, or the caller's
                             recorded collateral is less than amount
    """
    validate_identity(caller, "caller")
    validate_amount(amount)

    pool = view.pool_balance()
    if pool < amount:
        raise InsufficientBalance(f"pool holds {pool}, cannot withdraw {amount}")

    account = view.get_account(caller)
    if account.collateral < amount:
        raise InsufficientBalance(
            f"{caller} has {account.collateral} collateral, cannot withdraw {amount}"
        )

    new_account = replace(account, collateral=account.collateral - amount)

    return build_operation(
        view,
        OP_WITHDRAW,
        caller,
        [AccountChange(caller, account, new_account)],
        transfer=CustodianTransfer(TransferDirection.PUSH, caller, amount),
        settlement=Settlement.COMMIT_THEN_TRANSFER,
        notifications=[TokensWithdrawn(caller, amount)],
    )
