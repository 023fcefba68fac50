"""
collateral_ledger - Collateralized Lending Ledger

Single-asset lending pool: deposit collateral, borrow against it at a
utilization-dependent rate, repay, withdraw, and liquidate positions whose
debt exceeds the borrowing limit.

Usage:
    from collateral_ledger import Ledger, InMemoryCustodian, RateModelConfig, compute_borrow

    config = RateModelConfig(
        collateral_ratio=150,
        base_variable_borrow_rate=100,
        optimal_utilization_rate=80,
        above_optimal_rate=150,
        base_stable_borrow_rate=50,
    )
    custodian = InMemoryCustodian()
    custodian.mint("alice", 1000)
    custodian.approve("alice", custodian.pool, 1000)

    ledger = Ledger("main", custodian, config, owner="admin")
    ledger.deposit_collateral("alice", 1000)
    ledger.borrow("alice", 500)
    ledger.repay_loan("alice", 200)

    # Pure functions work on any LedgerView
    pending = compute_borrow(ledger, "alice", 100)
    ledger.execute(pending)
"""

# Core types
from .core import (
    LedgerView,
    AssetCustodian,
    Account,
    RateModelConfig,
    AccountChange,
    CustodianTransfer,
    PendingOperation,
    Operation,
    TransferDirection,
    Settlement,
    build_operation,
    empty_pending_operation,
    default_account,
    fixed_to_decimal,
    validate_amount,
    validate_identity,
    SCALE,
    SECONDS_PER_YEAR,
    POOL_WALLET,
    PARAMETER_ALIASES,
    OP_DEPOSIT,
    OP_WITHDRAW,
    OP_BORROW,
    OP_REPAY,
    OP_LIQUIDATE,
    OP_ACCRUE,
    # Notifications
    Notification,
    CollateralDeposited,
    TokensWithdrawn,
    FundsBorrowed,
    LoanRepaid,
    Liquidation,
    InterestAccrued,
    ParameterUpdated,
    # Exceptions
    LendingError,
    ZeroAmount,
    TransferFailed,
    InsufficientCollateral,
    InsufficientBalance,
    PositionNotUndercollateralized,
    Unauthorized,
    OverRepayment,
    UndefinedUtilization,
    NonMonotonicTime,
    StaleAccountState,
    ReentrantCall,
)

# Ledger
from .ledger import Ledger

# Custodian
from .custodian import InMemoryCustodian

# Rate model
from .rate_model import (
    compute_utilization,
    compute_borrow_rate,
    compute_account_rate,
    rate_curve,
)

# Accrual
from .accrual import (
    calculate_interest,
    calculate_pending_interest,
    compute_interest_accrual,
    elapsed_seconds,
)

# Collateral
from .collateral import (
    compute_deposit,
    compute_withdrawal,
)

# Borrowing
from .borrowing import (
    compute_borrow,
    compute_repayment,
    compute_borrow_limit,
    compute_borrow_capacity,
)

# Liquidation
from .liquidation import (
    AccountHealth,
    compute_account_health,
    compute_liquidation,
    is_undercollateralized,
    STATUS_EMPTY,
    STATUS_COLLATERALIZED,
    STATUS_BORROWED,
    STATUS_AT_LIMIT,
    STATUS_UNDERCOLLATERALIZED,
)

# Administration
from .admin import (
    compute_parameter_update,
    compute_ownership_transfer,
    parameter_notifications,
    normalize_parameter_name,
    require_owner,
)

__all__ = [
    # Core
    'LedgerView', 'AssetCustodian', 'Account', 'RateModelConfig', 'AccountChange',
    'CustodianTransfer', 'PendingOperation', 'Operation', 'TransferDirection', 'Settlement',
    'build_operation', 'empty_pending_operation', 'default_account', 'fixed_to_decimal',
    'validate_amount', 'validate_identity',
    'SCALE', 'SECONDS_PER_YEAR', 'POOL_WALLET', 'PARAMETER_ALIASES',
    'OP_DEPOSIT', 'OP_WITHDRAW', 'OP_BORROW', 'OP_REPAY', 'OP_LIQUIDATE', 'OP_ACCRUE',
    # Notifications
    'Notification', 'CollateralDeposited', 'TokensWithdrawn', 'FundsBorrowed',
    'LoanRepaid', 'Liquidation', 'InterestAccrued', 'ParameterUpdated',
    # Exceptions
    'LendingError', 'ZeroAmount', 'TransferFailed', 'InsufficientCollateral',
    'InsufficientBalance', 'PositionNotUndercollateralized', 'Unauthorized',
    'OverRepayment', 'UndefinedUtilization', 'NonMonotonicTime',
    'StaleAccountState', 'ReentrantCall',
    # Ledger
    'Ledger', 'InMemoryCustodian',
    # Rate model
    'compute_utilization', 'compute_borrow_rate', 'compute_account_rate', 'rate_curve',
    # Accrual
    'calculate_interest', 'calculate_pending_interest', 'compute_interest_accrual',
    'elapsed_seconds',
    # Collateral
    'compute_deposit', 'compute_withdrawal',
    # Borrowing
    'compute_borrow', 'compute_repayment', 'compute_borrow_limit', 'compute_borrow_capacity',
    # Liquidation
    'AccountHealth', 'compute_account_health', 'compute_liquidation', 'is_undercollateralized',
    'STATUS_EMPTY', 'STATUS_COLLATERALIZED', 'STATUS_BORROWED', 'STATUS_AT_LIMIT',
    'STATUS_UNDERCOLLATERALIZED',
    # Administration
    'compute_parameter_update', 'compute_ownership_transfer', 'parameter_notifications',
    'normalize_parameter_name', 'require_owner',
]

__version__ = '1.0.0'
