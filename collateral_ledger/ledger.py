"""
ledger.py - Stateful Collateralized Lending Ledger

The Ledger class is the central state manager for the lending system.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes operations atomically (account commit and custodian call succeed
      together or are both undone)
    - Holds the active RateModelConfig and its owner
    - Guards against reentrant execution while a custodian call is in flight
    - Tracks time and provides temporal operations (clone, clone_at)
    - Always validates and always logs
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .core import (
    # Types
    Account, AssetCustodian, CustodianTransfer,
    Operation, PendingOperation, RateModelConfig, Notification,
    ParameterUpdated,
    Settlement, TransferDirection,
    # Constants
    POOL_WALLET,
    OP_DEPOSIT, OP_WITHDRAW, OP_BORROW, OP_REPAY, OP_LIQUIDATE, OP_ACCRUE,
    # Exceptions
    LendingError, ReentrantCall, StaleAccountState, TransferFailed,
    # Helper functions
    default_account, validate_identity,
)
from .accrual import calculate_pending_interest, compute_interest_accrual
from .admin import (
    compute_ownership_transfer, compute_parameter_update,
    parameter_notifications, require_owner,
)
from .borrowing import compute_borrow, compute_repayment
from .collateral import compute_deposit, compute_withdrawal
from .liquidation import AccountHealth, compute_account_health, compute_liquidation


Observer = Callable[[Notification], None]


@dataclass(frozen=True, slots=True)
class _Settings:
    """Administrative settings in force from effective_time onwards."""
    effective_time: datetime
    config: RateModelConfig
    owner: str
    custodian: AssetCustodian


class Ledger:
    """
    Collateralized lending ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: every operation is checked against the account it
          was computed from (optimistic concurrency) and its timestamp.
        - Always logs: every applied operation is recorded in the audit trail,
          enabling clone_at() for historical state reconstruction.
        - Never half-applies: a failed custodian call or any other exception
          restores the touched accounts before propagating.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Ledger instance.

    Example:
        custodian = InMemoryCustodian()
        custodian.mint("alice", 1_000)
        custodian.approve("alice", custodian.pool, 1_000)

        ledger = Ledger("main", custodian, config, owner="admin")
        ledger.deposit_collateral("alice", 1_000)
        ledger.borrow("alice", 500)
    """

    def __init__(
        self,
        name: str,
        custodian: AssetCustodian,
        config: RateModelConfig,
        owner: str,
        initial_time: Optional[datetime] = None,
        pool_address: str = POOL_WALLET,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            custodian: Capability that moves the underlying asset
            config: Initial rate model parameters
            owner: Identity allowed to change parameters
            initial_time: Starting time for the ledger (default: 1970-01-01)
            pool_address: Custodian identity that holds pooled collateral
            verbose: Print one line per applied or rejected operation (default: True)
        """
        self.name = name
        self.custodian = custodian
        self._config = config
        self.owner = validate_identity(owner, "owner")
        self.pool_address = validate_identity(pool_address, "pool_address")
        self._accounts: Dict[str, Account] = {}
        self.operation_log: List[Operation] = []
        self.notification_log: List[Notification] = []
        # Emission time of each notification_log entry
        self._notification_times: List[datetime] = []
        # (notification, exception) for every observer that raised
        self.observer_errors: List[Tuple[Notification, Exception]] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        # True while a custodian call is in flight
        self._executing: bool = False
        self._observers: List[Observer] = []
        self._settings_log: List[_Settings] = [
            _Settings(self._current_time, config, self.owner, custodian)
        ]

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def config(self) -> RateModelConfig:
        """Active rate model configuration."""
        return self._config

    def get_config(self) -> RateModelConfig:
        return self._config

    def get_account(self, account_id: str) -> Account:
        """
        Get an account record.

        Unknown identities yield a zero-valued account whose accrual clock
        starts now. Lookups never create a record.
        """
        account = self._accounts.get(account_id)
        if account is None:
            return default_account(self._current_time)
        return account

    def list_accounts(self) -> Set[str]:
        """Identities with a stored account record."""
        return set(self._accounts.keys())

    def pool_balance(self) -> int:
        return self.custodian.balance_of(self.pool_address)

    def external_balance(self, account_id: str) -> int:
        return self.custodian.balance_of(account_id)

    # ========================================================================
    # AGGREGATE QUERIES
    # ========================================================================

    def total_collateral(self) -> int:
        return sum(account.collateral for account in self._accounts.values())

    def total_debt(self) -> int:
        return sum(account.borrowed_amount for account in self._accounts.values())

    def pending_interest(self, account_id: str) -> int:
        """Interest an account has accrued since its last accrual, without recording it."""
        return calculate_pending_interest(
            self.get_account(account_id), self._config, self._current_time
        )

    def account_health(self, account_id: str) -> AccountHealth:
        return compute_account_health(self.get_account(account_id), self._config)

    def verify_pool_backing(self) -> Dict[str, Any]:
        """
        Verify that the custodian holds at least the recorded collateral.

        Deposits and withdrawals move collateral and pool balance together,
        repayments only add to the pool, so the pool can never hold less than
        the sum of recorded collateral.

        Returns:
            Dict with keys:
            - 'valid': bool - True if pool_balance >= total_collateral
            - 'pool_balance': int
            - 'total_collateral': int
            - 'surplus': int - pool_balance - total_collateral (negative if short)

        Example:
            result = ledger.verify_pool_backing()
            assert result['valid'], f"Pool short by {-result['surplus']}"
        """
        pool = self.pool_balance()
        collateral = self.total_collateral()
        return {
            'valid': pool >= collateral,
            'pool_balance': pool,
            'total_collateral': collateral,
            'surplus': pool - collateral,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # OBSERVERS
    # ========================================================================

    def subscribe(self, callback: Observer) -> None:
        """
        Register a callback invoked with each notification after it is committed.

        Observers cannot fail an operation: by the time they run, the operation
        and all of its notifications are already logged. An exception raised by
        an observer is recorded in observer_errors and the remaining observers
        still run.
        """
        self._observers.append(callback)

    def unsubscribe(self, callback: Observer) -> None:
        self._observers.remove(callback)

    def notifications(self, kind: Optional[type] = None) -> List[Notification]:
        """All emitted notifications, optionally filtered by type."""
        if kind is None:
            return list(self.notification_log)
        return [n for n in self.notification_log if isinstance(n, kind)]

    def _emit(self, notifications) -> None:
        notifications = list(notifications)
        for notification in notifications:
            self.notification_log.append(notification)
            self._notification_times.append(self._current_time)

        for notification in notifications:
            for observer in list(self._observers):
                try:
                    observer(notification)
                except Exception as exc:
                    self.observer_errors.append((notification, exc))
                    if self.verbose:
                        print(f"✗ OBSERVER FAILED on {type(notification).__name__}: {exc}")

    # ========================================================================
    # OPERATION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def _record_at(self, account_id: str, at: datetime) -> Account:
        """Stored record, or the default an operation computed at `at` would have seen."""
        account = self._accounts.get(account_id)
        if account is None:
            return default_account(at)
        return account

    def execute(self, pending: PendingOperation) -> Optional[Operation]:
        """
        Execute a PendingOperation atomically.

        The account commit and the custodian call run in the order given by
        pending.settlement. If either fails, every touched account is restored
        and the exception propagates.

        Args:
            pending: PendingOperation to execute

        Returns:
            The executed Operation, or None if pending was empty

        Raises:
            ReentrantCall: If called while a custodian call is in flight
            StaleAccountState: If an account changed since pending was computed
            TransferFailed: If the custodian rejected the movement
            ValueError: If pending is timestamped in the future
        """
        if self._executing:
            raise ReentrantCall(
                f"{pending.operation_type} attempted while a custodian call is in flight"
            )
        if pending.timestamp > self._current_time:
            raise ValueError(
                f"Operation timestamp {pending.timestamp} is after ledger time {self._current_time}"
            )
        if pending.is_empty():
            return None

        for change in pending.account_changes:
            current = self._record_at(change.account_id, pending.timestamp)
            if current != change.old:
                error = StaleAccountState(
                    f"{change.account_id}: expected {change.old!r}, found {current!r}"
                )
                self._print_rejection(pending.operation_type, error)
                raise error

        snapshot = {aid: self._accounts.get(aid) for aid in pending.touched_accounts()}
        self._executing = True
        try:
            if pending.settlement is Settlement.TRANSFER_THEN_COMMIT:
                self._settle(pending.transfer)
                self._commit(pending.account_changes)
            else:
                self._commit(pending.account_changes)
                self._settle(pending.transfer)
        except Exception as exc:
            self._restore(snapshot)
            self._print_rejection(pending.operation_type, exc)
            raise
        finally:
            self._executing = False

        sequence = self._next_sequence
        self._next_sequence += 1
        operation = Operation(
            pending=pending,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )

        # Log operation (always - audit trail is mandatory)
        self.operation_log.append(operation)

        if self.verbose:
            print(f"✓ APPLIED {operation.exec_id}: {pending.operation_type} by {pending.caller}")
        self._emit(pending.notifications)
        return operation

    def _commit(self, changes) -> None:
        for change in changes:
            self._accounts[change.account_id] = change.new

    def _restore(self, snapshot: Dict[str, Optional[Account]]) -> None:
        for account_id, account in snapshot.items():
            if account is None:
                self._accounts.pop(account_id, None)
            else:
                self._accounts[account_id] = account

    def _settle(self, transfer: Optional[CustodianTransfer]) -> None:
        """
        Ask the custodian to perform a value movement.

        Raises:
            TransferFailed: If the custodian returns False
        """
        if transfer is None:
            return
        if transfer.direction is TransferDirection.PULL:
            ok = self.custodian.transfer_from(transfer.account, self.pool_address, transfer.amount)
        else:
            ok = self.custodian.transfer(transfer.account, transfer.amount)
        if not ok:
            raise TransferFailed(f"custodian rejected {transfer!r}")

    def _print_rejection(self, operation_type: str, error: Exception) -> None:
        if self.verbose:
            print(f"✗ REJECTED: {operation_type}: {type(error).__name__}: {error}")

    def _submit(self, operation_type: str, compute, *args) -> Operation:
        """Compute a pending operation against this ledger and execute it."""
        try:
            pending = compute(self, *args)
        except (LendingError, ValueError) as exc:
            self._print_rejection(operation_type, exc)
            raise
        return self.execute(pending)

    # ========================================================================
    # LENDING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, caller: str, amount: int) -> Operation:
        """Pull `amount` from caller into the pool and credit it as collateral."""
        return self._submit(OP_DEPOSIT, compute_deposit, caller, amount)

    def withdraw_tokens(self, caller: str, amount: int) -> Operation:
        """Debit caller's collateral and push `amount` back from the pool."""
        return self._submit(OP_WITHDRAW, compute_withdrawal, caller, amount)

    def borrow(self, caller: str, amount: int) -> Operation:
        """Record `amount` of new debt against caller's collateral."""
        return self._submit(OP_BORROW, compute_borrow, caller, amount)

    def repay_loan(self, caller: str, amount: int) -> Operation:
        """Reduce caller's debt by `amount` and pull the repayment into the pool."""
        return self._submit(OP_REPAY, compute_repayment, caller, amount)

    def liquidate_position(self, caller: str, target: str) -> Operation:
        """
        Write off the debt of an undercollateralized account.

        The amount written off is available as the returned Operation's result.
        """
        return self._submit(OP_LIQUIDATE, compute_liquidation, target, caller)

    def accrue_interest(
        self,
        account_id: str,
        now: Optional[datetime] = None,
        apply: bool = False,
    ) -> int:
        """
        Accrue interest for an account, advancing the ledger clock to `now` first.

        If the accrual is rejected the clock is set back to where it was.

        Args:
            account_id: Account to accrue
            now: Time to accrue up to (default: current ledger time)
            apply: Add the interest to the account's debt

        Returns:
            Interest accrued over the elapsed interval
        """
        previous_time = self._current_time
        if now is not None:
            self.advance_time(now)
        try:
            operation = self._submit(OP_ACCRUE, compute_interest_accrual, account_id, apply)
        except Exception:
            self._current_time = previous_time
            raise
        return operation.result

    # ========================================================================
    # ADMINISTRATION (Mutating, owner only)
    # ========================================================================

    def update_parameters(self, caller: str, **changes: Any) -> RateModelConfig:
        """
        Apply one or more parameter changes atomically.

        Raises:
            Unauthorized: If caller is not the owner
            ValueError: On unknown names or invalid values

        Example:
            ledger.update_parameters("admin", collateral_ratio=2, above_optimal_rate=12 * 10**16)
        """
        try:
            new_config = compute_parameter_update(self._config, self.owner, caller, changes)
        except (LendingError, ValueError) as exc:
            self._print_rejection("UPDATE_PARAMETERS", exc)
            raise
        updates = parameter_notifications(self._config, new_config)
        self._config = new_config
        self._record_settings()
        self._announce(updates)
        return new_config

    def set_collateral_ratio(self, caller: str, value: int) -> RateModelConfig:
        return self.update_parameters(caller, collateral_ratio=value)

    def set_base_variable_borrow_rate(self, caller: str, value: int) -> RateModelConfig:
        """
        Set the rate charged at zero utilization.

        The base rate may not exceed above_optimal_rate. To raise it past the
        current above-optimal rate, change both in one update_parameters call.
        """
        return self.update_parameters(caller, base_variable_borrow_rate=value)

    def set_optimal_utilization_rate(self, caller: str, value: int) -> RateModelConfig:
        return self.update_parameters(caller, optimal_utilization_rate=value)

    def set_above_optimal_rate(self, caller: str, value: int) -> RateModelConfig:
        """
        Set the rate reached at optimal utilization and charged above it.

        Must stay at or above base_variable_borrow_rate; lower both together
        with update_parameters.
        """
        return self.update_parameters(caller, above_optimal_rate=value)

    # Legacy name
    set_excess_utilization_rate = set_above_optimal_rate

    def set_base_stable_borrow_rate(self, caller: str, value: int) -> RateModelConfig:
        return self.update_parameters(caller, base_stable_borrow_rate=value)

    def set_collateral_token(self, caller: str, custodian: AssetCustodian) -> None:
        """
        Replace the custodian of the underlying asset.

        Existing account records are kept as they are; balances held by the
        previous custodian are not migrated.
        """
        try:
            require_owner(self.owner, caller)
        except LendingError as exc:
            self._print_rejection("SET_COLLATERAL_TOKEN", exc)
            raise
        if not isinstance(custodian, AssetCustodian):
            raise ValueError(f"{custodian!r} does not implement AssetCustodian")
        old = self.custodian
        self.custodian = custodian
        self._record_settings()
        self._announce([ParameterUpdated("collateral_token", old, custodian)])

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        try:
            update = compute_ownership_transfer(self.owner, caller, new_owner)
        except (LendingError, ValueError) as exc:
            self._print_rejection("TRANSFER_OWNERSHIP", exc)
            raise
        self.owner = new_owner
        self._record_settings()
        self._announce([update])

    def _record_settings(self) -> None:
        self._settings_log.append(
            _Settings(self._current_time, self._config, self.owner, self.custodian)
        )

    def _announce(self, updates: List[ParameterUpdated]) -> None:
        if self.verbose:
            for update in updates:
                print(f"✓ PARAMETER {update.parameter}: {update.old_value!r} → {update.new_value!r}")
        self._emit(updates)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a copy of this ledger.

        Account records, logs, settings and time are independent of the
        original. The custodian is shared: it stands for an external system
        that a copy of the ledger cannot duplicate. Observers are not copied.

        Returns:
            A new Ledger instance with identical state
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.custodian = self.custodian
        cloned._config = self._config
        cloned.owner = self.owner
        cloned.pool_address = self.pool_address
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._executing = False
        cloned._observers = []

        # Account records are immutable, a shallow dict copy is enough
        cloned._accounts = dict(self._accounts)
        cloned.operation_log = list(self.operation_log)
        cloned.notification_log = list(self.notification_log)
        cloned._notification_times = list(self._notification_times)
        cloned.observer_errors = []
        cloned._settings_log = list(self._settings_log)
        cloned._next_sequence = self._next_sequence
        return cloned

    def clone_at(self, target_time: datetime) -> Ledger:
        """
        Create a copy of this ledger as it existed at a specific past time.

        Unwind algorithm:
        1. Clone the current ledger state
        2. Walk backward through operations executed after target_time,
           restoring each AccountChange.old
        3. Filter the operation log to operations up to target_time
        4. Restore the settings (config, owner, custodian) in force at target_time

        Custodian balances are not rewound; pool_balance() on the result
        reports the custodian's present state.

        Raises:
            ValueError: If target_time is in the future
        """
        if target_time > self._current_time:
            raise ValueError(f"Target time {target_time} is in the future")

        cloned = self.clone()
        cloned._current_time = target_time
        cloned.operation_log = [
            op for op in self.operation_log
            if op.execution_time <= target_time
        ]
        cloned._next_sequence = len(cloned.operation_log)
        # Operation and parameter notifications alike, in emission order
        kept = [
            (n, t) for n, t in zip(self.notification_log, self._notification_times)
            if t <= target_time
        ]
        cloned.notification_log = [n for n, _ in kept]
        cloned._notification_times = [t for _, t in kept]

        for op in reversed(self.operation_log):
            if op.execution_time <= target_time:
                break
            for change in reversed(op.account_changes):
                cloned._accounts[change.account_id] = change.old

        # Accounts first touched after target_time did not exist yet
        existing = {
            change.account_id
            for op in cloned.operation_log
            for change in op.account_changes
        }
        for account_id in list(cloned._accounts):
            if account_id not in existing:
                del cloned._accounts[account_id]

        settings = [s for s in self._settings_log if s.effective_time <= target_time]
        cloned._settings_log = settings or self._settings_log[:1]
        active = cloned._settings_log[-1]
        cloned._config = active.config
        cloned.owner = active.owner
        cloned.custodian = active.custodian
        return cloned

    def __repr__(self) -> str:
        return (f"Ledger({self.name!r}, accounts={len(self._accounts)}, "
                f"operations={len(self.operation_log)}, time={self._current_time})")
