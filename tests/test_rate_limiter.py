"""
Tests for the Rate Limiter.

Validates:
- Per-transaction ceiling
- Per-day cap with lazy rollover
- Check / commit separation
- Per-principal overrides
"""

from __future__ import annotations

import pytest

from mintgate.policy.errors import (
    DailyMintLimitExceededError,
    ErrorKind,
    TxMintLimitExceededError,
)
from mintgate.policy.rate_limiter import RateLimiter
from mintgate.policy.schema import PolicyLimits

DAY = 86_400
T0 = 20_000 * DAY  # start of a day


class TestRateLimiter:
    def setup_method(self):
        self.limits = PolicyLimits(mint_limit_per_tx=1_000, daily_mint_multiplier=3)
        self.limiter = RateLimiter(self.limits, clock=lambda: T0)

    def test_default_daily_cap(self):
        assert self.limits.default_daily_cap == 3_000
        assert self.limiter.daily_cap("m") == 3_000

    def test_consume_within_limits(self):
        record = self.limiter.check_and_consume("m", 1_000, T0)
        assert record.consumed == 1_000
        assert record.window_day == T0 // DAY
        assert self.limiter.remaining("m", T0) == 2_000

    def test_per_tx_ceiling(self):
        with pytest.raises(TxMintLimitExceededError) as exc_info:
            self.limiter.check_and_consume("m", 1_001, T0)
        assert exc_info.value.kind == ErrorKind.TX_MINT_LIMIT_EXCEEDED
        assert self.limiter.consumed("m", T0) == 0

    def test_daily_cap(self):
        for _ in range(3):
            self.limiter.check_and_consume("m", 1_000, T0)
        with pytest.raises(DailyMintLimitExceededError) as exc_info:
            self.limiter.check_and_consume("m", 1, T0 + 10)
        assert exc_info.value.kind == ErrorKind.DAILY_MINT_LIMIT_EXCEEDED
        assert self.limiter.consumed("m", T0) == 3_000

    def test_quotas_are_per_principal(self):
        for _ in range(3):
            self.limiter.check_and_consume("m1", 1_000, T0)
        self.limiter.check_and_consume("m2", 1_000, T0)
        assert self.limiter.consumed("m2", T0) == 1_000

    def test_lazy_rollover_on_new_day(self):
        for _ in range(3):
            self.limiter.check_and_consume("m", 1_000, T0)
        # Nothing changes until a mint is evaluated on the next day
        assert self.limiter.quota_record("m").consumed == 3_000

        record = self.limiter.check_and_consume("m", 500, T0 + DAY)
        assert record.window_day == T0 // DAY + 1
        assert record.consumed == 500

    def test_rollover_happens_once_per_day(self):
        self.limiter.check_and_consume("m", 1_000, T0)
        self.limiter.check_and_consume("m", 1_000, T0 + DAY)
        self.limiter.check_and_consume("m", 1_000, T0 + DAY + 3_600)
        assert self.limiter.consumed("m", T0 + DAY + 3_600) == 2_000

    def test_last_second_of_day_is_same_day(self):
        self.limiter.check_and_consume("m", 1_000, T0)
        self.limiter.check_and_consume("m", 1_000, T0 + DAY - 1)
        assert self.limiter.consumed("m", T0 + DAY - 1) == 2_000

    def test_check_does_not_mutate(self):
        reservation = self.limiter.check("m", 700, T0)
        assert reservation.consumed_after == 700
        assert self.limiter.quota_record("m") is None

        self.limiter.commit(reservation)
        assert self.limiter.consumed("m", T0) == 700

    def test_failed_check_after_rollover_keeps_old_record(self):
        self.limiter.check_and_consume("m", 1_000, T0)
        with pytest.raises(TxMintLimitExceededError):
            self.limiter.check("m", 5_000, T0 + DAY)
        record = self.limiter.quota_record("m")
        assert record.window_day == T0 // DAY
        assert record.consumed == 1_000

    def test_restore_undoes_commit(self):
        previous = self.limiter.commit(self.limiter.check("m", 400, T0))
        assert previous is None
        self.limiter.restore("m", previous)
        assert self.limiter.quota_record("m") is None

    def test_override_daily_cap(self):
        self.limiter.set_daily_limit("m", 1_500)
        self.limiter.check_and_consume("m", 1_000, T0)
        with pytest.raises(DailyMintLimitExceededError):
            self.limiter.check_and_consume("m", 600, T0)
        assert self.limiter.daily_cap("other") == 3_000

    def test_negative_override_rejected(self):
        with pytest.raises(ValueError):
            self.limiter.set_daily_limit("m", -1)

    def test_clock_used_when_now_omitted(self):
        self.limiter.check_and_consume("m", 250)
        assert self.limiter.quota_record("m").window_day == T0 // DAY
