"""
conftest.py - Shared pytest fixtures for lending ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Rate model configurations (reference parameters, realistic fixed-point rates)
- Custodians with funded, pre-approved accounts
- Ledgers (empty, funded, with an open position)
"""

import pytest
from datetime import datetime

from collateral_ledger import (
    Ledger, InMemoryCustodian, RateModelConfig, SCALE,
)


START = datetime(2025, 1, 1)
OWNER = "admin"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def reference_config() -> RateModelConfig:
    """Unscaled reference parameters: ratio 150, base 100, optimal 80, excess 150, stable 50."""
    return RateModelConfig(
        collateral_ratio=150,
        base_variable_borrow_rate=100,
        optimal_utilization_rate=80,
        above_optimal_rate=150,
        base_stable_borrow_rate=50,
    )


def realistic_config() -> RateModelConfig:
    """Fixed-point rates: 2% base, 80% optimal, 10% above optimal, 1:1 limit."""
    return RateModelConfig(
        collateral_ratio=1,
        base_variable_borrow_rate=2 * SCALE // 100,
        optimal_utilization_rate=80 * SCALE // 100,
        above_optimal_rate=10 * SCALE // 100,
        base_stable_borrow_rate=4 * SCALE // 100,
    )


def funded_custodian(balances=None) -> InMemoryCustodian:
    """Custodian with minted balances, each fully approved for the pool."""
    custodian = InMemoryCustodian()
    for account, amount in (balances or {}).items():
        custodian.mint(account, amount)
        custodian.approve(account, custodian.pool, amount)
    return custodian


def make_ledger(config=None, balances=None, time=START) -> Ledger:
    """Quiet ledger over a funded custodian."""
    return Ledger(
        "test",
        funded_custodian(balances),
        config or reference_config(),
        owner=OWNER,
        initial_time=time,
        verbose=False,
    )


def ledger_state(ledger: Ledger) -> dict:
    """Snapshot of every stored account, for before/after comparisons."""
    return {aid: ledger.get_account(aid) for aid in ledger.list_accounts()}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def config():
    return reference_config()


@pytest.fixture
def rate_config():
    return realistic_config()


@pytest.fixture
def empty_ledger():
    """Ledger with no funded accounts."""
    return make_ledger()


@pytest.fixture
def funded_ledger():
    """Ledger where alice and bob each hold 10,000 units, approved for the pool."""
    return make_ledger(balances={"alice": 10_000, "bob": 10_000})


@pytest.fixture
def borrowed_ledger(funded_ledger):
    """alice has deposited 1000 and borrowed 500."""
    funded_ledger.deposit_collateral("alice", 1000)
    funded_ledger.borrow("alice", 500)
    return funded_ledger


@pytest.fixture
def rate_ledger():
    """Ledger with realistic fixed-point rates; alice holds 10**24 units."""
    return make_ledger(config=realistic_config(), balances={"alice": 10**24, "bob": 10**24})
