"""
Tests for the Recovery Module and the Reentrancy Guard.
"""

from __future__ import annotations

import pytest

from mintgate.governance.roles import RoleRegistry
from mintgate.ledger.primitive import InMemoryForeignAsset, InMemoryLedgerPrimitive
from mintgate.policy.errors import (
    CannotRecoverNativeError,
    ErrorKind,
    InsufficientBalanceError,
    InvalidDestinationError,
    ReentrantCallError,
    UnauthorizedError,
)
from mintgate.policy.recovery import ForeignAsset, ReentrancyGuard, RecoveryModule
from mintgate.policy.schema import ZERO_ADDRESS, Role

CUSTODY = "0xcustody"


class TestReentrancyGuard:
    def test_nested_scope_rejected(self):
        guard = ReentrancyGuard()
        with guard.scope("outer"):
            assert guard.entered
            with pytest.raises(ReentrantCallError) as exc_info:
                with guard.scope("inner"):
                    pass
            assert exc_info.value.kind == ErrorKind.REENTRANT_CALL
            assert guard.entered
        assert not guard.entered

    def test_released_on_failure(self):
        guard = ReentrancyGuard()
        with pytest.raises(RuntimeError):
            with guard.scope("outer"):
                raise RuntimeError("boom")
        assert not guard.entered
        with guard.scope("again"):
            pass


class TestRecoveryModule:
    def setup_method(self):
        self.roles = RoleRegistry("admin")
        self.roles.grant("admin", "gov", Role.GOVERNANCE)
        self.guard = ReentrancyGuard()
        self.module = RecoveryModule(self.roles, self.guard, "MGT", CUSTODY)
        self.usdx = InMemoryForeignAsset("USDX")
        self.usdx.mint(CUSTODY, 1_000)

    def test_foreign_asset_satisfies_protocol(self):
        assert isinstance(self.usdx, ForeignAsset)

    def test_recover_moves_foreign_asset(self):
        self.module.recover("gov", self.usdx, "treasury", 400)
        assert self.usdx.balance_of(CUSTODY) == 600
        assert self.usdx.balance_of("treasury") == 400

    def test_requires_governance(self):
        with pytest.raises(UnauthorizedError):
            self.module.recover("admin", self.usdx, "treasury", 1)
        assert self.usdx.balance_of(CUSTODY) == 1_000

    @pytest.mark.parametrize("to", ["", None, ZERO_ADDRESS])
    def test_null_destination(self, to):
        with pytest.raises(InvalidDestinationError):
            self.module.recover("gov", self.usdx, to, 1)

    def test_cannot_recover_native(self):
        native = InMemoryLedgerPrimitive("MGT")
        with pytest.raises(CannotRecoverNativeError) as exc_info:
            self.module.recover("gov", native, "treasury", 0)
        assert exc_info.value.kind == ErrorKind.CANNOT_RECOVER_NATIVE

    def test_amount_above_custody(self):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            self.module.recover("gov", self.usdx, "treasury", 1_001)
        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_BALANCE
        assert self.usdx.balance_of(CUSTODY) == 1_000

    def test_reentrant_recover_rejected_outer_succeeds(self):
        attempts = []

        def reenter(sender, to, amount):
            try:
                self.module.recover("gov", self.usdx, "attacker", 100)
            except ReentrantCallError as exc:
                attempts.append(exc)

        self.usdx.on_transfer = reenter
        self.module.recover("gov", self.usdx, "treasury", 500)

        assert len(attempts) == 1
        assert self.usdx.balance_of("treasury") == 500
        assert self.usdx.balance_of("attacker") == 0
        assert self.usdx.balance_of(CUSTODY) == 500
        assert not self.guard.entered
