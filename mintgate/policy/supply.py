"""
Supply Ledger and Mint Window — the issuance caps.

Both checks are pure predicates. The engine calls ``record_issuance`` only
after every other check for the mint has passed, so a rejected mint never
leaves a partial increment behind.
"""

from __future__ import annotations

import logging

from mintgate.policy.errors import (
    MintingEndedError,
    MintingNotStartedError,
    SupplyCapExceededError,
)
from mintgate.policy.schema import MintWindowBounds

logger = logging.getLogger(__name__)


class MintWindow:
    """Immutable minting period; both bounds are inclusive."""

    def __init__(self, bounds: MintWindowBounds) -> None:
        self._bounds = bounds

    @property
    def start_time(self) -> int:
        return self._bounds.start_time

    @property
    def end_time(self) -> int:
        return self._bounds.end_time

    def is_open(self, now: int) -> bool:
        return self.start_time <= now <= self.end_time

    def check_window(self, now: int) -> None:
        if now < self.start_time:
            raise MintingNotStartedError(
                f"Minting opens at {self.start_time}; now is {now}",
                start_time=self.start_time,
            )
        if now > self.end_time:
            raise MintingEndedError(
                f"Minting closed at {self.end_time}; now is {now}",
                end_time=self.end_time,
            )


class SupplyLedger:
    """Cumulative issuance counter bounded by ``max_supply``."""

    def __init__(self, max_supply: int) -> None:
        if max_supply <= 0:
            raise ValueError("max_supply must be positive")
        self.max_supply = max_supply
        self._total_issued = 0

    @property
    def total_issued(self) -> int:
        return self._total_issued

    @property
    def remaining(self) -> int:
        return self.max_supply - self._total_issued

    def check_supply(self, amount: int) -> None:
        if self._total_issued + amount > self.max_supply:
            raise SupplyCapExceededError(
                f"Minting {amount} would exceed max supply {self.max_supply} "
                f"(issued {self._total_issued})",
                remaining=self.remaining,
            )

    def record_issuance(self, amount: int) -> None:
        """Apply a checked issuance. Re-validates so the cap can never be crossed."""
        self.check_supply(amount)
        self._total_issued += amount
        logger.debug("Supply increased by %d to %d", amount, self._total_issued)

    def rollback_issuance(self, amount: int) -> None:
        """Undo ``record_issuance`` when the ledger credit that followed it failed."""
        self._total_issued -= amount
