"""
Ledger Primitive — balance bookkeeping the policy engine delegates to.

The engine never stores balances itself. It calls into a ``LedgerPrimitive``
for every credit, debit and movement, and installs a transfer hook that the
primitive invokes before each balance change. The hook lets the engine
enforce pause, deny-list and ceiling rules even against direct calls into the
primitive.

``InMemoryLedgerPrimitive`` is the reference implementation used by the
service and the tests. ``InMemoryForeignAsset`` models other assets the
engine may end up holding, with an optional callback fired on each transfer.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Protocol

from mintgate.policy.errors import InsufficientBalanceError

logger = logging.getLogger(__name__)

# hook(sender, recipient, amount); sender is None for credits, recipient None for debits
TransferHook = Callable[[str | None, str | None, int], None]


class LedgerPrimitive(Protocol):
    """Operations the policy engine consumes from the balance ledger."""

    asset_id: str

    def credit_balance(self, principal: str, amount: int) -> None: ...

    def debit_balance(self, principal: str, amount: int) -> None: ...

    def move_balance(self, sender: str, recipient: str, amount: int) -> None: ...

    def balance_of(self, principal: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def approve(self, owner: str, spender: str, amount: int) -> None: ...

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None: ...

    def set_transfer_hook(self, hook: TransferHook | None) -> None: ...


def _require_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")


class InMemoryLedgerPrimitive:
    """Dictionary-backed balances and allowances for the native asset."""

    def __init__(self, asset_id: str) -> None:
        self.asset_id = asset_id
        self._balances: dict[str, int] = defaultdict(int)
        self._allowances: dict[tuple[str, str], int] = defaultdict(int)
        self._hook: TransferHook | None = None
        self.total_supply = 0

    def set_transfer_hook(self, hook: TransferHook | None) -> None:
        self._hook = hook

    def _notify(self, sender: str | None, recipient: str | None, amount: int) -> None:
        if self._hook is not None:
            self._hook(sender, recipient, amount)

    def balance_of(self, principal: str) -> int:
        return self._balances.get(principal, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        _require_amount(amount)
        self._allowances[(owner, spender)] = amount

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        current = self.allowance(owner, spender)
        if current < amount:
            raise InsufficientBalanceError(
                f"Allowance of {spender} over {owner} is {current}, requested {amount}",
                held=current,
                requested=amount,
            )
        self._allowances[(owner, spender)] = current - amount

    def credit_balance(self, principal: str, amount: int) -> None:
        _require_amount(amount)
        self._notify(None, principal, amount)
        self._balances[principal] += amount
        self.total_supply += amount

    def debit_balance(self, principal: str, amount: int) -> None:
        _require_amount(amount)
        self._notify(principal, None, amount)
        self._check_funds(principal, amount)
        self._balances[principal] -= amount
        self.total_supply -= amount

    def move_balance(self, sender: str, recipient: str, amount: int) -> None:
        _require_amount(amount)
        self._notify(sender, recipient, amount)
        self._check_funds(sender, amount)
        self._balances[sender] -= amount
        self._balances[recipient] += amount

    def _check_funds(self, principal: str, amount: int) -> None:
        held = self.balance_of(principal)
        if held < amount:
            raise InsufficientBalanceError(
                f"{principal} holds {held} {self.asset_id}, requested {amount}",
                held=held,
                requested=amount,
            )


class InMemoryForeignAsset:
    """
    A foreign asset that can be held in (and recovered from) engine custody.

    ``on_transfer`` runs after each transfer and may call back into the
    engine, which is how reentrant recovery attempts are exercised.
    """

    def __init__(
        self,
        asset_id: str,
        on_transfer: Callable[[str, str, int], None] | None = None,
    ) -> None:
        self.asset_id = asset_id
        self.on_transfer = on_transfer
        self._balances: dict[str, int] = defaultdict(int)

    def mint(self, holder: str, amount: int) -> None:
        _require_amount(amount)
        self._balances[holder] += amount

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        _require_amount(amount)
        held = self.balance_of(sender)
        if held < amount:
            raise InsufficientBalanceError(
                f"{sender} holds {held} {self.asset_id}, requested {amount}",
                held=held,
                requested=amount,
            )
        self._balances[sender] -= amount
        self._balances[to] += amount
        if self.on_transfer is not None:
            self.on_transfer(sender, to, amount)
