"""Value transfer primitive the engine calls to move funds.

The hosting ledger owns balances; the engine only asks it to move an amount
between two identities. `BalanceLedger` is the in-memory reference used by the
specs and tools.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Protocol

from .config import U128_MAX
from .errors import ErrorCode, EscrowError


class Ledger(Protocol):
    def balance_of(self, who: bytes) -> int:
        ...

    def transfer(self, amount: int, sender: bytes, recipient: bytes) -> bool:
        """Move `amount` atomically. Returns False and changes nothing on failure."""
        ...


def apply_balance_change(balance: int, delta: int) -> int:
    """Apply +/- balance with u128 bounds."""
    new_balance = balance + delta
    if new_balance < 0:
        raise EscrowError(ErrorCode.INSUFFICIENT_BALANCE, "negative balance")
    if new_balance > U128_MAX:
        raise EscrowError(ErrorCode.OVERFLOW, "balance overflow")
    return new_balance


@dataclass
class BalanceLedger:
    balances: Dict[bytes, int] = field(default_factory=dict)

    def balance_of(self, who: bytes) -> int:
        return self.balances.get(who, 0)

    def credit(self, who: bytes, amount: int) -> None:
        self.balances[who] = apply_balance_change(self.balance_of(who), amount)

    def transfer(self, amount: int, sender: bytes, recipient: bytes) -> bool:
        if amount <= 0 or sender == recipient:
            return False
        try:
            debited = apply_balance_change(self.balance_of(sender), -amount)
            credited = apply_balance_change(self.balance_of(recipient), amount)
        except EscrowError:
            return False
        self.balances[sender] = debited
        self.balances[recipient] = credited
        return True
