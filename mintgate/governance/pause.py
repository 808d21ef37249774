"""
Pause Switch — the global halt for every value-moving operation.

While engaged, mint, transfer and transfer_from are rejected with
``HaltedError``. Pausing and unpausing are idempotent: a redundant call is
a no-op, not an error. Capability checks (``Role.PAUSER``) are made by the
engine before it reaches the switch.
"""

from __future__ import annotations

import logging

from mintgate.policy.errors import HaltedError
from mintgate.policy.schema import PauseEvent

logger = logging.getLogger(__name__)


class PauseSwitch:
    """Global halt flag with a history of state changes."""

    def __init__(self) -> None:
        self._paused = False
        self.history: list[PauseEvent] = []

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self, triggered_by: str, reason: str = "", now: int = 0) -> bool:
        """
        Engage the halt switch.

        Returns:
            True if the switch changed state, False if it was already engaged.
        """
        if self._paused:
            return False
        self._paused = True
        self.history.append(
            PauseEvent(paused=True, triggered_by=triggered_by, reason=reason, timestamp=now)
        )
        logger.critical("HALT ENGAGED: by=%s reason=%s", triggered_by, reason or "-")
        return True

    def unpause(self, triggered_by: str, now: int = 0) -> bool:
        """Release the halt switch. Returns True if the switch changed state."""
        if not self._paused:
            return False
        self._paused = False
        self.history.append(PauseEvent(paused=False, triggered_by=triggered_by, timestamp=now))
        logger.info("Halt released: by=%s", triggered_by)
        return True

    def revert_last(self) -> None:
        """Undo the most recent state change."""
        if not self.history:
            return
        self.history.pop()
        self._paused = self.history[-1].paused if self.history else False
        logger.warning("Halt switch reverted: paused=%s", self._paused)

    def require_not_paused(self) -> None:
        if self._paused:
            raise HaltedError("Operation rejected: the system is paused")

    def last_event(self) -> PauseEvent | None:
        return self.history[-1] if self.history else None
