"""
liquidation.py - Liquidation Engine and Account Health

Liquidation writes off the debt of an account whose debt exceeds its
borrowing limit:

    borrowed_amount > collateral * collateral_ratio      (strict)

Any caller may liquidate any account. No collateral is seized and no reward
is paid to the liquidator; the debt is zeroed and the written-off amount is
reported.

Account health is derived at read time from (collateral, borrowed_amount):

    EMPTY               - no collateral, no debt
    COLLATERALIZED      - collateral, no debt
    BORROWED            - debt within the limit
    AT_LIMIT            - debt exactly at the limit
    UNDERCOLLATERALIZED - debt above the limit (liquidatable)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .core import (
    Account, AccountChange, LedgerView, PendingOperation, RateModelConfig,
    Liquidation, PositionNotUndercollateralized,
    OP_LIQUIDATE,
    build_operation, fixed_to_decimal, validate_identity,
)
from .borrowing import compute_borrow_capacity, compute_borrow_limit
from .rate_model import compute_borrow_rate, compute_utilization


STATUS_EMPTY = "EMPTY"
STATUS_COLLATERALIZED = "COLLATERALIZED"
STATUS_BORROWED = "BORROWED"
STATUS_AT_LIMIT = "AT_LIMIT"
STATUS_UNDERCOLLATERALIZED = "UNDERCOLLATERALIZED"


@dataclass(frozen=True, slots=True)
class AccountHealth:
    """
    Immutable result of an account health assessment.

    utilization and rate are None when debt is backed by zero collateral.
    """
    collateral: int
    borrowed_amount: int
    borrow_limit: int
    borrow_capacity: int
    utilization: Optional[int]
    rate: Optional[int]
    status: str

    @property
    def liquidatable(self) -> bool:
        return self.status == STATUS_UNDERCOLLATERALIZED

    @property
    def annual_rate(self) -> Optional[Decimal]:
        """Borrow rate as a Decimal fraction (0.07 for 7%)."""
        if self.rate is None:
            return None
        return fixed_to_decimal(self.rate)


def is_undercollateralized(account: Account, config: RateModelConfig) -> bool:
    """True if the account's debt exceeds its borrowing limit."""
    return account.borrowed_amount > compute_borrow_limit(account, config)


def compute_account_health(account: Account, config: RateModelConfig) -> AccountHealth:
    """
    Assess an account from explicit inputs.

    PURE FUNCTION - All inputs explicit, no LedgerView.
    """
    limit = compute_borrow_limit(account, config)

    if account.borrowed_amount == 0:
        status = STATUS_COLLATERALIZED if account.collateral > 0 else STATUS_EMPTY
    elif account.borrowed_amount > limit:
        status = STATUS_UNDERCOLLATERALIZED
    elif account.borrowed_amount == limit:
        status = STATUS_AT_LIMIT
    else:
        status = STATUS_BORROWED

    if account.borrowed_amount > 0 and account.collateral == 0:
        utilization = None
        rate = None
    else:
        utilization = compute_utilization(account.collateral, account.borrowed_amount)
        rate = compute_borrow_rate(utilization, config)

    return AccountHealth(
        collateral=account.collateral,
        borrowed_amount=account.borrowed_amount,
        borrow_limit=limit,
        borrow_capacity=compute_borrow_capacity(account, config),
        utilization=utilization,
        rate=rate,
        status=status,
    )


def compute_liquidation(view: LedgerView, target: str, caller: str) -> PendingOperation:
    """
    Write off the debt of an undercollateralized account.

    Args:
        view: Read-only ledger access
        target: Account to liquidate
        caller: Identity triggering the liquidation (any account)

    Returns:
        PendingOperation zeroing the target's debt, with the amount written
        off as its result.

    Raises:
        PositionNotUndercollateralized: If debt <= collateral * ratio
    """
    validate_identity(target, "target")
    validate_identity(caller, "caller")

    account = view.get_account(target)
    if not is_undercollateralized(account, view.config):
        raise PositionNotUndercollateralized(
            f"{target}: debt {account.borrowed_amount} within limit "
            f"{compute_borrow_limit(account, view.config)}"
        )

    written_off = account.borrowed_amount
    new_account = replace(account, borrowed_amount=0)

    return build_operation(
        view,
        OP_LIQUIDATE,
        caller,
        [AccountChange(target, account, new_account)],
        notifications=[Liquidation(target, written_off)],
        result=written_off,
    )
