"""
Rate Limiter — per-principal issuance quotas.

Two limits apply to every mint:

- a per-transaction ceiling (``mint_limit_per_tx``)
- a per-day cap, by default ``daily_mint_multiplier × mint_limit_per_tx``,
  which Governance may override per principal

Days are ``now // day_length``. Rollover is lazy: a principal's consumed
amount resets the first time a mint is evaluated on a later day. There is no
background timer.

Evaluation is split into ``check`` (no mutation) and ``commit`` so the
engine can run every mint check before any counter moves.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from mintgate.policy.errors import DailyMintLimitExceededError, TxMintLimitExceededError
from mintgate.policy.schema import DailyQuota, PolicyLimits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaReservation:
    """An approved, not yet applied, quota consumption."""

    principal: str
    amount: int
    window_day: int
    consumed_after: int


class RateLimiter:
    """Per-transaction and per-day mint quotas keyed by principal."""

    def __init__(
        self,
        limits: PolicyLimits,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limits = limits
        self.clock = clock
        self._quotas: dict[str, DailyQuota] = {}
        self._daily_overrides: dict[str, int] = {}

    def _now(self, now: int | None) -> int:
        return int(self.clock()) if now is None else now

    def day_of(self, now: int) -> int:
        return now // self.limits.day_length

    def daily_cap(self, principal: str) -> int:
        return self._daily_overrides.get(principal, self.limits.default_daily_cap)

    def consumed(self, principal: str, now: int | None = None) -> int:
        """Amount consumed by ``principal`` on the day containing ``now``."""
        record = self._quotas.get(principal)
        if record is None or self.day_of(self._now(now)) > record.window_day:
            return 0
        return record.consumed

    def remaining(self, principal: str, now: int | None = None) -> int:
        return max(self.daily_cap(principal) - self.consumed(principal, now), 0)

    def quota_record(self, principal: str) -> DailyQuota | None:
        record = self._quotas.get(principal)
        return record.model_copy() if record is not None else None

    def set_daily_limit(self, principal: str, limit: int) -> None:
        """Store a per-principal daily cap. Authorization is the engine's concern."""
        if limit < 0:
            raise ValueError("daily limit must be non-negative")
        self._daily_overrides[principal] = limit
        logger.info("Daily mint limit set: principal=%s limit=%d", principal, limit)

    def daily_override(self, principal: str) -> int | None:
        return self._daily_overrides.get(principal)

    def restore_daily_limit(self, principal: str, previous: int | None) -> None:
        """Put back the override returned by ``daily_override``."""
        if previous is None:
            self._daily_overrides.pop(principal, None)
        else:
            self._daily_overrides[principal] = previous

    def check(self, principal: str, amount: int, now: int | None = None) -> QuotaReservation:
        """
        Evaluate a mint of ``amount`` for ``principal`` without mutating anything.

        Raises:
            TxMintLimitExceededError: ``amount`` is above the per-transaction ceiling.
            DailyMintLimitExceededError: today's consumption plus ``amount`` is above the cap.
        """
        now = self._now(now)
        today = self.day_of(now)
        record = self._quotas.get(principal)
        consumed = 0
        if record is not None and today <= record.window_day:
            consumed = record.consumed

        if amount > self.limits.mint_limit_per_tx:
            raise TxMintLimitExceededError(
                f"Mint of {amount} exceeds per-transaction limit {self.limits.mint_limit_per_tx}",
                limit=self.limits.mint_limit_per_tx,
            )

        cap = self.daily_cap(principal)
        if consumed + amount > cap:
            raise DailyMintLimitExceededError(
                f"Mint of {amount} exceeds daily cap {cap} for {principal} "
                f"(already consumed {consumed})",
                cap=cap,
                consumed=consumed,
            )

        return QuotaReservation(
            principal=principal,
            amount=amount,
            window_day=max(today, record.window_day) if record is not None else today,
            consumed_after=consumed + amount,
        )

    def commit(self, reservation: QuotaReservation) -> DailyQuota | None:
        """
        Apply a reservation from ``check``.

        Returns:
            The principal's previous quota record (for rollback), or None.
        """
        previous = self._quotas.get(reservation.principal)
        self._quotas[reservation.principal] = DailyQuota(
            window_day=reservation.window_day,
            consumed=reservation.consumed_after,
        )
        return previous

    def restore(self, principal: str, previous: DailyQuota | None) -> None:
        """Put back the record returned by ``commit``."""
        if previous is None:
            self._quotas.pop(principal, None)
        else:
            self._quotas[principal] = previous

    def check_and_consume(self, principal: str, amount: int, now: int | None = None) -> DailyQuota:
        """Check and immediately apply a mint quota consumption."""
        self.commit(self.check(principal, amount, now))
        return self._quotas[principal].model_copy()
