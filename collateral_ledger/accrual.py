"""
accrual.py - Interest Accrual Engine

Advances an account's accrual clock and computes the interest owed over the
elapsed interval, using the rate model at the account's current utilization.

Interest is ADVISORY by default: compute_interest_accrual() reports the
amount and moves last_accrual_time forward, but leaves borrowed_amount
untouched. Pass apply=True to compound the interest into the debt. No
collateral-ratio re-check follows an applied accrual; an account pushed past
its borrowing limit by interest becomes liquidatable.

Key Formula:
    interest = borrowed_amount * rate * elapsed_seconds / (SCALE * SECONDS_PER_YEAR)
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime

from .core import (
    Account, AccountChange, LedgerView, PendingOperation, RateModelConfig,
    InterestAccrued, NonMonotonicTime,
    OP_ACCRUE, SCALE, SECONDS_PER_YEAR,
    build_operation, validate_identity,
)
from .rate_model import compute_account_rate


def calculate_interest(borrowed_amount: int, rate: int, elapsed_seconds: int) -> int:
    """
    Simple interest over an interval, rounded down.

    PURE FUNCTION - All inputs explicit.
    """
    if elapsed_seconds < 0:
        raise ValueError(f"elapsed_seconds cannot be negative, got {elapsed_seconds}")
    return borrowed_amount * rate * elapsed_seconds // (SCALE * SECONDS_PER_YEAR)


def elapsed_seconds(last_accrual_time: datetime, now: datetime) -> int:
    """
    Whole seconds between the last accrual and now.

    Raises:
        NonMonotonicTime: If now is before last_accrual_time
    """
    if now < last_accrual_time:
        raise NonMonotonicTime(
            f"Cannot accrue backwards: {now} < last accrual {last_accrual_time}"
        )
    return int((now - last_accrual_time).total_seconds())


def calculate_pending_interest(
    account: Account,
    config: RateModelConfig,
    now: datetime,
) -> int:
    """
    Interest accrued since the account's last accrual, without recording it.

    PURE FUNCTION - All inputs explicit. Accounts without debt or without an
    accrual clock owe nothing.

    Raises:
        NonMonotonicTime: If now is before last_accrual_time
        UndefinedUtilization: If the account has debt but no collateral
    """
    if account.borrowed_amount == 0 or account.last_accrual_time is None:
        return 0
    elapsed = elapsed_seconds(account.last_accrual_time, now)
    if elapsed == 0:
        return 0
    rate = compute_account_rate(account, config)
    return calculate_interest(account.borrowed_amount, rate, elapsed)


def compute_interest_accrual(
    view: LedgerView,
    account_id: str,
    apply: bool = False,
) -> PendingOperation:
    """
    Accrue interest for an account up to the view's current time.

    Args:
        view: Read-only ledger access
        account_id: Account to accrue
        apply: Add the interest to borrowed_amount (default: report only)

    Returns:
        PendingOperation advancing last_accrual_time, with the interest
        accrued as its result.

    Raises:
        NonMonotonicTime: If the ledger time is before the last accrual
        UndefinedUtilization: If the account has debt but no collateral

    Example:
        pending = compute_interest_accrual(ledger, "alice")
        print(f"alice owes {pending.result} in interest")
        ledger.execute(pending)
    """
    validate_identity(account_id)
    now = view.current_time
    account = view.get_account(account_id)

    if account.last_accrual_time is not None and now < account.last_accrual_time:
        raise NonMonotonicTime(
            f"Cannot accrue {account_id} backwards: {now} < last accrual {account.last_accrual_time}"
        )
    interest = calculate_pending_interest(account, view.config, now)

    new_debt = account.borrowed_amount + interest if apply else account.borrowed_amount
    new_account = replace(account, borrowed_amount=new_debt, last_accrual_time=now)

    return build_operation(
        view,
        OP_ACCRUE,
        account_id,
        [AccountChange(account_id, account, new_account)],
        notifications=[InterestAccrued(account_id, interest, apply)],
        result=interest,
    )
