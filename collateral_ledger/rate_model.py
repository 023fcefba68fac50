"""
rate_model.py - Utilization-Dependent Interest Rate Curve

Pure functions mapping an account's utilization to an annualized borrow rate.
No LedgerView, no hidden state: every input is a parameter.

Key Formulas (all values fixed-point, scaled by SCALE = 10**18):
    utilization = borrowed_amount * SCALE / collateral

    utilization <= optimal:
        rate = base + utilization * (above_optimal - base) / optimal
    utilization >  optimal:
        rate = above_optimal

The curve rises linearly from the base rate to the above-optimal rate and
stays flat past the optimal utilization. It is non-decreasing in utilization
and continuous at the kink, because RateModelConfig requires
above_optimal_rate >= base_variable_borrow_rate.
"""

from __future__ import annotations
from typing import List, Tuple

from .core import (
    Account, RateModelConfig, SCALE,
    UndefinedUtilization,
)


def compute_utilization(collateral: int, borrowed_amount: int) -> int:
    """
    Calculate an account's utilization ratio.

    PURE FUNCTION - All inputs explicit.

    Args:
        collateral: Collateral units held for the account
        borrowed_amount: Outstanding debt

    Returns:
        borrowed_amount * SCALE // collateral. Zero debt always yields 0.

    Raises:
        UndefinedUtilization: If there is debt and collateral is zero.
    """
    if borrowed_amount == 0:
        return 0
    if collateral == 0:
        raise UndefinedUtilization(
            f"utilization undefined: debt {borrowed_amount} with zero collateral"
        )
    return borrowed_amount * SCALE // collateral


def compute_borrow_rate(utilization: int, config: RateModelConfig) -> int:
    """
    Map a utilization ratio to an annualized borrow rate.

    PURE FUNCTION - All inputs explicit.

    Args:
        utilization: Fixed-point utilization (SCALE = 100%)
        config: Rate model parameters

    Returns:
        Annual rate, fixed-point.

    Example:
        config = RateModelConfig(
            collateral_ratio=1,
            base_variable_borrow_rate=2 * 10**16,   # 2%
            optimal_utilization_rate=8 * 10**17,    # 80%
            above_optimal_rate=10 * 10**16,         # 10%
        )
        compute_borrow_rate(5 * 10**17, config)    # 7 * 10**16 (7%)
    """
    if utilization < 0:
        raise ValueError(f"utilization cannot be negative, got {utilization}")

    base = config.base_variable_borrow_rate
    optimal = config.optimal_utilization_rate
    if utilization <= optimal:
        return base + utilization * (config.above_optimal_rate - base) // optimal
    return config.above_optimal_rate


def compute_account_rate(account: Account, config: RateModelConfig) -> int:
    """Borrow rate for an account at its current collateral and debt."""
    utilization = compute_utilization(account.collateral, account.borrowed_amount)
    return compute_borrow_rate(utilization, config)


def rate_curve(
    config: RateModelConfig,
    points: int = 11,
    max_utilization: int = SCALE,
) -> List[Tuple[int, int]]:
    """
    Sample the rate curve at evenly spaced utilizations.

    Args:
        config: Rate model parameters
        points: Number of samples, including both ends (>= 2)
        max_utilization: Last utilization sampled (default 100%)

    Returns:
        List of (utilization, rate) pairs, utilization ascending.
    """
    if points < 2:
        raise ValueError(f"points must be at least 2, got {points}")
    if max_utilization <= 0:
        raise ValueError(f"max_utilization must be positive, got {max_utilization}")

    curve = []
    for i in range(points):
        utilization = max_utilization * i // (points - 1)
        curve.append((utilization, compute_borrow_rate(utilization, config)))
    return curve
