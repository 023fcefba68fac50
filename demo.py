#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Ledger Step by Step

This is a pedagogical demonstration of how the collateralized lending ledger
works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - The custodian, the rate model, the empty ledger
  4-7:   Core Mechanics  - Deposit, borrow, repay, rejections
  8-9:   Interest        - The rate curve, accrual over time
  10-11: Risk            - Undercollateralization and liquidation
  12-13: Safety          - Reentrant custodians, time travel

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from collateral_ledger import (
    # Core classes
    Ledger, InMemoryCustodian, RateModelConfig,
    # Pure functions
    compute_borrow, rate_curve, fixed_to_decimal,
    # Constants
    SCALE,
    # Exceptions
    LendingError, ReentrantCall,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Timing
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Initial funding (asset units)
    alice_initial: int = 10_000_000
    bob_initial: int = 10_000_000

    # Rate model (fixed-point, SCALE = 100%)
    collateral_ratio: int = 1
    base_rate: int = 2 * SCALE // 100
    optimal_utilization: int = 80 * SCALE // 100
    above_optimal_rate: int = 10 * SCALE // 100
    stable_rate: int = 4 * SCALE // 100

    # Position
    deposit: int = 2_000_000
    borrow: int = 1_000_000
    repay: int = 250_000


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_account(ledger: Ledger, account_id: str):
    account = ledger.get_account(account_id)
    health = ledger.account_health(account_id)
    print(f"  {account_id:<6} collateral={account.collateral:>12,}  "
          f"debt={account.borrowed_amount:>12,}  status={health.status}")


def percent(value: int) -> str:
    return f"{fixed_to_decimal(value) * 100:.2f}%"


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_custodian() -> InMemoryCustodian:
    """Create the custodian that holds the underlying asset."""
    step_header(1, "The Custodian",
        "The ledger never holds value itself. A custodian moves the asset.")

    print("""
    The custodian is an ERC-20-like token: balances, allowances, transfers.
    The pool is just another identity on it. Users approve the pool before
    the ledger can pull their funds.
    """)

    custodian = InMemoryCustodian()
    for name, amount in (("alice", CONFIG.alice_initial), ("bob", CONFIG.bob_initial)):
        custodian.mint(name, amount)
        custodian.approve(name, custodian.pool, amount)
        print(f">>> custodian.mint({name!r}, {amount:,}); custodian.approve({name!r}, 'pool', {amount:,})")

    section_header("Balances")
    for name in ("alice", "bob", custodian.pool):
        print(f"  {name:<6} {custodian.balance_of(name):>12,}")
    return custodian


def step_02_rate_model() -> RateModelConfig:
    """Define the rate model parameters."""
    step_header(2, "The Rate Model",
        "Borrow rates rise with utilization up to an optimal point, then stay flat.")

    config = RateModelConfig(
        collateral_ratio=CONFIG.collateral_ratio,
        base_variable_borrow_rate=CONFIG.base_rate,
        optimal_utilization_rate=CONFIG.optimal_utilization,
        above_optimal_rate=CONFIG.above_optimal_rate,
        base_stable_borrow_rate=CONFIG.stable_rate,
    )
    print(f"  collateral ratio:      {config.collateral_ratio}x")
    print(f"  base variable rate:    {percent(config.base_variable_borrow_rate)}")
    print(f"  optimal utilization:   {percent(config.optimal_utilization_rate)}")
    print(f"  above-optimal rate:    {percent(config.above_optimal_rate)}")
    print(f"  base stable rate:      {percent(config.base_stable_borrow_rate)} (reported only)")

    section_header("Key Insight")
    print("""
    Every rate is an exact integer scaled by 10**18. No floats anywhere:
    the same inputs always produce the same interest, to the last unit.
    """)
    return config


def step_03_empty_ledger(custodian: InMemoryCustodian, config: RateModelConfig) -> Ledger:
    """Create the ledger."""
    step_header(3, "The Empty Ledger",
        "The ledger records collateral and debt per account, nothing else.")

    print(">>> ledger = Ledger('tutorial', custodian, config, owner='admin', initial_time=...)")
    ledger = Ledger("tutorial", custodian, config, owner="admin",
                    initial_time=CONFIG.start_time, verbose=True)

    print(f"\n  accounts:      {sorted(ledger.list_accounts())}")
    print(f"  current time:  {ledger.current_time}")
    print(f"  pool balance:  {ledger.pool_balance():,}")

    section_header("Lookup-or-Default")
    print(">>> ledger.get_account('carol')")
    print(f"  {ledger.get_account('carol')!r}")
    print("  Unknown accounts read as zero. Reading never creates a record.")
    return ledger


# ============================================================================
# PHASE 2: CORE MECHANICS (Steps 4-7)
# ============================================================================

def step_04_deposit(ledger: Ledger) -> Ledger:
    step_header(4, "Deposit Collateral",
        "The custodian pulls funds into the pool, THEN the account is credited.")

    print(f">>> ledger.deposit_collateral('alice', {CONFIG.deposit:,})")
    ledger.deposit_collateral("alice", CONFIG.deposit)

    section_header("After")
    show_account(ledger, "alice")
    print(f"  alice external balance: {ledger.external_balance('alice'):,}")
    print(f"  pool balance:           {ledger.pool_balance():,}")
    return ledger


def step_05_borrow(ledger: Ledger) -> Ledger:
    step_header(5, "Borrow",
        "Borrowing records a liability bounded by collateral * ratio.")

    print(f">>> ledger.borrow('alice', {CONFIG.borrow:,})")
    ledger.borrow("alice", CONFIG.borrow)

    health = ledger.account_health("alice")
    section_header("Account Health")
    show_account(ledger, "alice")
    print(f"  borrow limit:    {health.borrow_limit:,}")
    print(f"  capacity left:   {health.borrow_capacity:,}")
    print(f"  utilization:     {percent(health.utilization)}")
    print(f"  current rate:    {percent(health.rate)}")

    section_header("Key Insight")
    print("""
    No asset moved. The ledger only records that alice owes the pool.
    """)
    return ledger


def step_06_repay(ledger: Ledger) -> Ledger:
    step_header(6, "Repay",
        "The debt is reduced BEFORE the custodian pulls the repayment.")

    print(f">>> ledger.repay_loan('alice', {CONFIG.repay:,})")
    ledger.repay_loan("alice", CONFIG.repay)
    show_account(ledger, "alice")
    print(f"  pool balance: {ledger.pool_balance():,}")
    return ledger


def step_07_rejections(ledger: Ledger) -> Ledger:
    step_header(7, "Rejected Operations",
        "Invalid operations raise and leave the ledger exactly as it was.")

    attempts = [
        ("ledger.borrow('alice', 10**12)", lambda: ledger.borrow("alice", 10**12)),
        ("ledger.repay_loan('alice', 10**9)", lambda: ledger.repay_loan("alice", 10**9)),
        ("ledger.withdraw_tokens('bob', 1)", lambda: ledger.withdraw_tokens("bob", 1)),
        ("ledger.deposit_collateral('alice', 0)", lambda: ledger.deposit_collateral("alice", 0)),
    ]
    before = ledger.get_account("alice")
    for text, attempt in attempts:
        print(f">>> {text}")
        try:
            attempt()
        except LendingError as exc:
            print(f"    raised {type(exc).__name__}")

    print(f"\n  alice unchanged: {ledger.get_account('alice') == before}")
    return ledger


# ============================================================================
# PHASE 3: INTEREST (Steps 8-9)
# ============================================================================

def step_08_rate_curve(ledger: Ledger) -> Ledger:
    step_header(8, "The Rate Curve",
        "Sample the curve to see the kink at optimal utilization.")

    for utilization, rate in rate_curve(ledger.config, points=11):
        bar = "#" * int(fixed_to_decimal(rate) * 400)
        print(f"  {percent(utilization):>8}  {percent(rate):>7}  {bar}")
    return ledger


def step_09_accrual(ledger: Ledger) -> Ledger:
    step_header(9, "Interest Accrual",
        "Advance time one year and accrue interest on alice's debt.")

    one_year_later = CONFIG.start_time + timedelta(days=365)
    ledger.advance_time(one_year_later)
    print(f">>> ledger.advance_time({one_year_later})")
    print(f"    pending interest: {ledger.pending_interest('alice'):,}")

    print(">>> ledger.accrue_interest('alice')")
    interest = ledger.accrue_interest("alice")
    print(f"    accrued {interest:,}; debt is still {ledger.get_account('alice').borrowed_amount:,}")

    section_header("Key Insight")
    print("""
    Accrual is advisory by default: it reports the interest and restarts the
    clock. Pass apply=True to compound it into the debt.
    """)
    return ledger


# ============================================================================
# PHASE 4: RISK (Steps 10-11)
# ============================================================================

def step_10_undercollateralize(ledger: Ledger) -> Ledger:
    step_header(10, "Becoming Undercollateralized",
        "Withdrawals are not ratio-checked. Debt can end up above the limit.")

    account = ledger.get_account("alice")
    keep = account.borrowed_amount // (2 * ledger.config.collateral_ratio)
    amount = account.collateral - keep
    print(f">>> ledger.withdraw_tokens('alice', {amount:,})")
    ledger.withdraw_tokens("alice", amount)
    show_account(ledger, "alice")
    return ledger


def step_11_liquidation(ledger: Ledger) -> Ledger:
    step_header(11, "Liquidation",
        "Anyone may write off the debt of an undercollateralized account.")

    print(">>> op = ledger.liquidate_position('bob', 'alice')")
    op = ledger.liquidate_position("bob", "alice")
    print(f"    written off: {op.result:,}")
    show_account(ledger, "alice")

    print("\n>>> ledger.liquidate_position('bob', 'alice')   # again")
    try:
        ledger.liquidate_position("bob", "alice")
    except LendingError as exc:
        print(f"    raised {type(exc).__name__}")
    return ledger


# ============================================================================
# PHASE 5: SAFETY (Steps 12-13)
# ============================================================================

def step_12_reentrancy(ledger: Ledger) -> Ledger:
    step_header(12, "Reentrant Custodian",
        "A token that calls back into the ledger mid-transfer gets ReentrantCall.")

    ledger.deposit_collateral("bob", 1_000)
    blocked = []

    def attack(sender, recipient, amount):
        try:
            ledger.withdraw_tokens("bob", amount)
        except ReentrantCall:
            blocked.append(amount)

    ledger.custodian.on_transfer = attack
    print(">>> ledger.withdraw_tokens('bob', 1_000)   # custodian tries to withdraw again")
    ledger.withdraw_tokens("bob", 1_000)
    ledger.custodian.on_transfer = None

    print(f"    reentrant attempts blocked: {len(blocked)}")
    show_account(ledger, "bob")

    section_header("Stale Operations")
    ledger.deposit_collateral("bob", 1_000)
    first = compute_borrow(ledger, "bob", 100)
    second = compute_borrow(ledger, "bob", 100)
    ledger.execute(first)
    try:
        ledger.execute(second)
    except LendingError as exc:
        print(f"    second operation from the same snapshot raised {type(exc).__name__}")
    return ledger


def step_13_time_travel(ledger: Ledger) -> Ledger:
    step_header(13, "Time Travel",
        "clone_at() rebuilds the ledger as it stood at any past moment.")

    past = ledger.clone_at(CONFIG.start_time)
    print(f">>> past = ledger.clone_at({CONFIG.start_time})")
    section_header("Then")
    show_account(past, "alice")
    section_header("Now")
    show_account(ledger, "alice")
    print(f"\n  operations then: {len(past.operation_log)}, now: {len(ledger.operation_log)}")
    return ledger


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       COLLATERALIZED LENDING LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    custodian = step_01_custodian()
    wait_for_enter()
    config = step_02_rate_model()
    wait_for_enter()
    ledger = step_03_empty_ledger(custodian, config)
    wait_for_enter()

    for step in (
        step_04_deposit, step_05_borrow, step_06_repay, step_07_rejections,
        step_08_rate_curve, step_09_accrual,
        step_10_undercollateralize, step_11_liquidation,
        step_12_reentrancy, step_13_time_travel,
    ):
        ledger = step(ledger)
        wait_for_enter()

    section_header("Pool Backing")
    result = ledger.verify_pool_backing()
    print(f"  valid={result['valid']}  pool={result['pool_balance']:,}  "
          f"collateral={result['total_collateral']:,}  surplus={result['surplus']:,}")

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See collateral_ledger/*.py for the pure compute_* functions
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
