"""
Core types and pure helpers for the collateralized lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, AssetCustodian for value movement
2. Immutable data structures: Account, RateModelConfig, AccountChange,
   CustodianTransfer, PendingOperation, Operation
3. Notifications emitted to observers
4. Exceptions: LendingError and domain-specific error types
5. Builders: build_operation(), empty_pending_operation()

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import (
    Dict, List, Set, Optional, Any, Protocol, Tuple, Mapping,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Implicit scale shared by every fixed-point rate parameter.
SCALE = 10 ** 18

# 365-day year, matching the accrual formula.
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Identity under which the custodian holds pooled collateral.
POOL_WALLET = "pool"

# Operation type constants (strings, not enum, same as unit types in the ledger).
OP_DEPOSIT = "DEPOSIT_COLLATERAL"
OP_WITHDRAW = "WITHDRAW_TOKENS"
OP_BORROW = "BORROW"
OP_REPAY = "REPAY_LOAN"
OP_LIQUIDATE = "LIQUIDATE_POSITION"
OP_ACCRUE = "ACCRUE_INTEREST"

# Legacy parameter names accepted by the configuration loader.
PARAMETER_ALIASES = {
    'collateralRatio': 'collateral_ratio',
    'baseVariableBorrowRate': 'base_variable_borrow_rate',
    'optimalUtilizationRate': 'optimal_utilization_rate',
    'excessUtilizationRate': 'above_optimal_rate',
    'excess_utilization_rate': 'above_optimal_rate',
    'baseStableBorrowRate': 'base_stable_borrow_rate',
}


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending ledger errors."""
    pass


class ZeroAmount(LendingError):
    """Raised when a caller-supplied amount is zero."""
    pass


class TransferFailed(LendingError):
    """Raised when the custodian rejects a value movement."""
    pass


class InsufficientCollateral(LendingError):
    """Raised when a borrow would breach the collateralization bound."""
    pass


class InsufficientBalance(LendingError):
    """Raised when a withdrawal exceeds available funds or a repayment exceeds the caller's balance."""
    pass


class PositionNotUndercollateralized(LendingError):
    """Raised when liquidation is attempted on a healthy position."""
    pass


class Unauthorized(LendingError):
    """Raised when an administrative call comes from a non-owner."""
    pass


class OverRepayment(LendingError):
    """Raised when a repayment exceeds the outstanding debt."""
    pass


class UndefinedUtilization(LendingError):
    """Raised when utilization is requested for debt backed by zero collateral."""
    pass


class NonMonotonicTime(LendingError):
    """Raised when accrual is requested for a time before the last accrual."""
    pass


class StaleAccountState(LendingError):
    """Raised when a pending operation was built against an account that has since changed."""
    pass


class ReentrantCall(LendingError):
    """Raised when an operation is executed while a custodian call is in flight."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class TransferDirection(Enum):
    """
    Direction of a custodian value movement.

    PULL: account -> pool, via transfer_from()
    PUSH: pool -> account, via transfer()
    """
    PULL = "pull"
    PUSH = "push"


class Settlement(Enum):
    """
    Ordering of the custodian call relative to the ledger commit.

    TRANSFER_THEN_COMMIT: value arrives before the account is credited (deposit).
    COMMIT_THEN_TRANSFER: the account is debited before value leaves or the
                          liability is reduced (withdraw, repay).
    """
    TRANSFER_THEN_COMMIT = "transfer_then_commit"
    COMMIT_THEN_TRANSFER = "commit_then_transfer"


# ============================================================================
# ACCOUNT AND CONFIGURATION
# ============================================================================

def validate_amount(amount: int, name: str = "amount") -> int:
    """
    Validate a caller-supplied asset amount.

    Raises:
        ValueError: If amount is not an int or is negative
        ZeroAmount: If amount is zero
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{name} cannot be negative, got {amount}")
    if amount == 0:
        raise ZeroAmount(f"{name} must be greater than zero")
    return amount


def validate_identity(account_id: str, name: str = "account") -> str:
    """Reject empty or whitespace-only identities."""
    if not isinstance(account_id, str) or not account_id.strip():
        raise ValueError(f"{name} cannot be empty")
    return account_id


@dataclass(frozen=True, slots=True)
class Account:
    """
    Immutable snapshot of one account's position.

    Each mutation creates a NEW instance (value semantics). The account's
    lifecycle state (collateralized, borrowed, undercollateralized) is
    derived from these fields at read time and never stored.

    Attributes:
        collateral: Asset units held on the account's behalf
        borrowed_amount: Outstanding principal debt
        last_accrual_time: Last moment interest was computed for this account
    """
    collateral: int = 0
    borrowed_amount: int = 0
    last_accrual_time: Optional[datetime] = None

    def __post_init__(self):
        for name in ('collateral', 'borrowed_amount'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Account {name} must be an int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"Account {name} cannot be negative, got {value}")

    def __repr__(self) -> str:
        return f"Account(collateral={self.collateral}, debt={self.borrowed_amount})"


def default_account(now: datetime) -> Account:
    """Zero-valued account record whose accrual clock starts at `now`."""
    return Account(collateral=0, borrowed_amount=0, last_accrual_time=now)


@dataclass(frozen=True, slots=True)
class RateModelConfig:
    """
    Immutable rate model and risk parameters.

    All rate fields are fixed-point integers scaled by SCALE (10**18);
    collateral_ratio is a plain multiplier applied to collateral.

    Attributes:
        collateral_ratio: Maximum debt per unit of collateral
        base_variable_borrow_rate: Annual rate at zero utilization
        optimal_utilization_rate: Utilization where the curve flattens
        above_optimal_rate: Annual rate at and above optimal utilization
                            (formerly excessUtilizationRate)
        base_stable_borrow_rate: Reference stable rate, reported only
    """
    collateral_ratio: int
    base_variable_borrow_rate: int
    optimal_utilization_rate: int
    above_optimal_rate: int
    base_stable_borrow_rate: int = 0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{f.name} must be an int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"{f.name} cannot be negative, got {value}")
        if self.collateral_ratio == 0:
            raise ValueError("collateral_ratio must be positive")
        if self.optimal_utilization_rate == 0:
            raise ValueError("optimal_utilization_rate must be positive")
        if self.above_optimal_rate < self.base_variable_borrow_rate:
            raise ValueError(
                f"above_optimal_rate ({self.above_optimal_rate}) cannot be below "
                f"base_variable_borrow_rate ({self.base_variable_borrow_rate})"
            )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> RateModelConfig:
        """
        Build a config from a plain mapping.

        Accepts snake_case field names and the legacy camelCase names,
        including excessUtilizationRate for above_optimal_rate.

        Raises:
            ValueError: On unknown keys, duplicates, or invalid values
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in raw.items():
            name = PARAMETER_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown rate model parameter '{key}'")
            if name in values:
                raise ValueError(f"Parameter '{name}' given more than once")
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def fixed_to_decimal(value: int, scale: int = SCALE) -> Decimal:
    """Convert a fixed-point integer to a Decimal (e.g. 5 * 10**16 -> 0.05)."""
    return Decimal(value) / Decimal(scale)


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Notification:
    """Base class for observer notifications."""

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, slots=True)
class CollateralDeposited(Notification):
    account: str
    amount: int


@dataclass(frozen=True, slots=True)
class TokensWithdrawn(Notification):
    account: str
    amount: int


@dataclass(frozen=True, slots=True)
class FundsBorrowed(Notification):
    account: str
    amount: int


@dataclass(frozen=True, slots=True)
class LoanRepaid(Notification):
    account: str
    amount: int


@dataclass(frozen=True, slots=True)
class Liquidation(Notification):
    account: str
    amount_written_off: int


@dataclass(frozen=True, slots=True)
class InterestAccrued(Notification):
    account: str
    amount: int
    applied: bool


@dataclass(frozen=True, slots=True)
class ParameterUpdated(Notification):
    parameter: str
    old_value: Any
    new_value: Any


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class AssetCustodian(Protocol):
    """
    External capability that moves units of the underlying asset.

    Every call is a trust boundary: implementations may call back into
    arbitrary code. A False result means the movement was rejected.
    """

    def transfer(self, to: str, amount: int) -> bool:
        """Move `amount` from the pool to `to`."""
        ...

    def transfer_from(self, from_account: str, to: str, amount: int) -> bool:
        """Move `amount` from `from_account` to `to` on the pool's authority."""
        ...

    def balance_of(self, account: str) -> int:
        """Return the asset balance held by `account`."""
        ...


@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Functions accepting a LedgerView parameter declare their read-only intent.
    The Ledger class implements this protocol; FakeView provides an
    immutable implementation for tests.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    @property
    def config(self) -> RateModelConfig:
        """Return the active rate model configuration."""
        ...

    def get_account(self, account_id: str) -> Account:
        """
        Return the account record for an identity.

        Unknown identities yield a zero-valued account whose accrual clock
        starts at current_time (lookup-or-default).
        """
        ...

    def pool_balance(self) -> int:
        """Return the custodian balance held by the pool."""
        ...

    def external_balance(self, account_id: str) -> int:
        """Return the custodian balance held by an account outside the ledger."""
        ...

    def list_accounts(self) -> Set[str]:
        """Return the identities with a stored account record."""
        ...


# ============================================================================
# ACCOUNT CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountChange:
    """
    Record of an account mutation for the operation log and rollback.

    Stores complete before/after snapshots:
    - Forward replay: apply new
    - Backward replay: restore old
    - Audit queries: changed_fields()
    """
    account_id: str
    old: Account
    new: Account

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        changes = {}
        for f in fields(Account):
            old_val = getattr(self.old, f.name)
            new_val = getattr(self.new, f.name)
            if old_val != new_val:
                changes[f.name] = (old_val, new_val)
        return changes


@dataclass(frozen=True, slots=True)
class CustodianTransfer:
    """A single value movement to request from the custodian."""
    direction: TransferDirection
    account: str
    amount: int

    def __post_init__(self):
        validate_identity(self.account)
        validate_amount(self.amount)

    def __repr__(self) -> str:
        arrow = "→ pool" if self.direction is TransferDirection.PULL else "← pool"
        return f"CustodianTransfer({self.amount}: {self.account} {arrow})"


# ============================================================================
# OPERATIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PendingOperation:
    """
    An operation specification before execution - represents INTENT.

    Created by the compute_* functions and submitted to Ledger.execute().

    Attributes:
        operation_type: One of the OP_* constants
        caller: Identity that requested the operation
        account_changes: Account mutations to commit
        transfer: Custodian movement, if the operation moves value
        settlement: Ordering of the custodian call relative to the commit
        notifications: Notifications to emit once applied
        timestamp: Ledger time the operation was computed at
        result: Operation-specific output (interest accrued, amount written off)
    """
    operation_type: str
    caller: str
    account_changes: Tuple[AccountChange, ...]
    timestamp: datetime
    transfer: Optional[CustodianTransfer] = None
    settlement: Settlement = Settlement.COMMIT_THEN_TRANSFER
    notifications: Tuple[Notification, ...] = ()
    result: int = 0

    def is_empty(self) -> bool:
        """Return True if there is nothing to commit, transfer, or announce."""
        return not self.account_changes and self.transfer is None and not self.notifications

    def touched_accounts(self) -> List[str]:
        return [change.account_id for change in self.account_changes]

    def __repr__(self) -> str:
        return (f"PendingOperation({self.operation_type} by {self.caller}, "
                f"{len(self.account_changes)} changes, transfer={self.transfer!r})")


def build_operation(
    view: LedgerView,
    operation_type: str,
    caller: str,
    account_changes: Optional[List[AccountChange]] = None,
    transfer: Optional[CustodianTransfer] = None,
    settlement: Settlement = Settlement.COMMIT_THEN_TRANSFER,
    notifications: Optional[List[Notification]] = None,
    result: int = 0,
) -> PendingOperation:
    """
    Build a PendingOperation stamped with the view's current time.

    This is the standard way for compute_* functions to return their intent.

    Example:
        def compute_borrow(view, caller, amount):
            old = view.get_account(caller)
            new = replace(old, borrowed_amount=old.borrowed_amount + amount)
            return build_operation(
                view, OP_BORROW, caller,
                [AccountChange(caller, old, new)],
                notifications=[FundsBorrowed(caller, amount)],
            )
    """
    return PendingOperation(
        operation_type=operation_type,
        caller=caller,
        account_changes=tuple(account_changes or ()),
        timestamp=view.current_time,
        transfer=transfer,
        settlement=settlement,
        notifications=tuple(notifications or ()),
        result=result,
    )


def empty_pending_operation(view: LedgerView, operation_type: str, caller: str) -> PendingOperation:
    """Create a PendingOperation that does nothing."""
    return PendingOperation(
        operation_type=operation_type,
        caller=caller,
        account_changes=(),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Operation:
    """
    An executed, immutable record of a ledger mutation - represents FACT.

    Attributes:
        pending: The PendingOperation that was applied
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: Ledger time when executed
        sequence_number: Monotonic sequence within the ledger
    """
    pending: PendingOperation
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int

    @property
    def operation_type(self) -> str:
        return self.pending.operation_type

    @property
    def account_changes(self) -> Tuple[AccountChange, ...]:
        return self.pending.account_changes

    @property
    def notifications(self) -> Tuple[Notification, ...]:
        return self.pending.notifications

    @property
    def result(self) -> int:
        return self.pending.result

    def __repr__(self) -> str:
        lines = [f"Operation {self.exec_id}: {self.operation_type} by {self.pending.caller}"]
        for change in self.account_changes:
            for field_name, (old_val, new_val) in change.changed_fields().items():
                lines.append(f"    [{change.account_id}] {field_name}: {old_val!r} → {new_val!r}")
        if self.pending.transfer is not None:
            lines.append(f"    {self.pending.transfer!r}")
        return "\n".join(lines)
