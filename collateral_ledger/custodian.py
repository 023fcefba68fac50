"""
custodian.py - In-Memory Asset Custodian

Reference AssetCustodian holding balances of the underlying asset, with
ERC-20-like allowances. The pool identity sends in transfer() and spends
allowances in transfer_from().

Rejections are reported by returning False, never by raising; the ledger
turns them into TransferFailed.

An optional on_transfer hook runs after every successful movement with
(sender, recipient, amount). It can call back into arbitrary code, which
makes it the place to simulate reentrant token contracts in tests.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Callable, Dict, Optional

from .core import POOL_WALLET, validate_identity


TransferHook = Callable[[str, str, int], None]


class InMemoryCustodian:
    """
    Dictionary-backed custodian for the lending ledger.

    Example:
        custodian = InMemoryCustodian()
        custodian.mint("alice", 1_000)
        custodian.approve("alice", custodian.pool, 1_000)
        ledger = Ledger("main", custodian, config, owner="admin")
        ledger.deposit_collateral("alice", 500)
    """

    def __init__(self, pool: str = POOL_WALLET, on_transfer: Optional[TransferHook] = None):
        self.pool = validate_identity(pool, "pool")
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.on_transfer = on_transfer
        self.reject_transfers = False
        self.transfer_count = 0

    # ========================================================================
    # SETUP
    # ========================================================================

    def mint(self, account: str, amount: int) -> None:
        """Create `amount` units in `account` out of thin air (test setup)."""
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount, got {amount}")
        self.balances[account] += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Allow `spender` to move up to `amount` of `owner`'s balance."""
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[owner][spender] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances[owner][spender]

    # ========================================================================
    # AssetCustodian PROTOCOL
    # ========================================================================

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def transfer(self, to: str, amount: int) -> bool:
        """Move `amount` from the pool to `to`."""
        if self.reject_transfers or amount <= 0:
            return False
        if self.balance_of(self.pool) < amount:
            return False
        self._move(self.pool, to, amount)
        return True

    def transfer_from(self, from_account: str, to: str, amount: int) -> bool:
        """Move `amount` from `from_account` to `to`, spending the pool's allowance."""
        if self.reject_transfers or amount <= 0:
            return False
        if self.balance_of(from_account) < amount:
            return False
        if self.allowance(from_account, self.pool) < amount:
            return False
        self._move(from_account, to, amount, spender=self.pool)
        return True

    def _move(self, sender: str, recipient: str, amount: int, spender: Optional[str] = None) -> None:
        """Apply a movement; a raising on_transfer hook reverts it."""
        if spender is not None:
            self.allowances[sender][spender] -= amount
        self.balances[sender] -= amount
        self.balances[recipient] += amount
        self.transfer_count += 1
        if self.on_transfer is None:
            return
        try:
            self.on_transfer(sender, recipient, amount)
        except Exception:
            self.balances[recipient] -= amount
            self.balances[sender] += amount
            self.transfer_count -= 1
            if spender is not None:
                self.allowances[sender][spender] += amount
            raise

    def total_supply(self) -> int:
        return sum(self.balances.values())
