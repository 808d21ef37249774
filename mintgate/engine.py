"""
Policy Engine — the single entry point for every mutation of the asset.

Each public operation runs its checks in a fixed order:

1. capability (RoleRegistry)
2. halt switch (PauseSwitch)
3. domain guards (MintWindow, per-tx ceilings, SupplyLedger, DenyList)
4. quota consumption (RateLimiter)
5. ledger mutation (LedgerPrimitive)
6. audit record (AuditLedger)

A rejection at any step raises a ``PolicyError`` and leaves every counter,
quota and balance exactly as it was, and so does a failed audit append.
Value-moving operations share one ``ReentrancyGuard``.

An engine built over a resumed audit trail replays it to rebuild supply,
quotas, balances, roles, the deny list and the halt switch.

Usage:
    ledger = InMemoryLedgerPrimitive(asset_id="MGT")
    engine = PolicyEngine(
        ledger=ledger,
        admin="alice",
        window=MintWindowBounds(start_time=start, end_time=end),
    )
    engine.grant_role("alice", "minter-1", Role.MINTER)
    engine.mint("minter-1", "bob", 500_000, now=start)
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from mintgate.governance.pause import PauseSwitch
from mintgate.governance.roles import RoleRegistry
from mintgate.ledger.primitive import LedgerPrimitive
from mintgate.ledger.service import AuditLedger
from mintgate.policy.errors import (
    InsufficientBalanceError,
    InvalidDestinationError,
    NotAMinterError,
    PolicyError,
    TxMintLimitExceededError,
)
from mintgate.policy.rate_limiter import QuotaReservation, RateLimiter
from mintgate.policy.recovery import ForeignAsset, ReentrancyGuard, RecoveryModule
from mintgate.policy.schema import (
    AuditEventType,
    AuditRecord,
    MintWindowBounds,
    PolicyLimits,
    Role,
    is_null_principal,
)
from mintgate.policy.supply import MintWindow, SupplyLedger
from mintgate.policy.transfer_guard import DenyList, TransferGuard

logger = logging.getLogger(__name__)

DEFAULT_CONTRACT_ADDRESS = "0x" + "c0" * 20


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {amount!r}")
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")


class PolicyEngine:
    """
    Orchestrator composing every policy component around a ledger primitive.

    The engine owns all policy state. Components are exposed as attributes
    for inspection, but every mutation goes through the engine's operations
    so the all-or-nothing ordering holds.
    """

    def __init__(
        self,
        ledger: LedgerPrimitive,
        admin: str,
        window: MintWindowBounds,
        limits: PolicyLimits | None = None,
        contract_address: str = DEFAULT_CONTRACT_ADDRESS,
        audit: AuditLedger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the engine and install its transfer hook on ``ledger``.

        Args:
            ledger: Balance primitive for the native asset.
            admin: Principal that receives ``Role.ADMIN``.
            window: Inclusive minting period.
            limits: Numeric policy limits. Defaults to ``PolicyLimits()``.
            contract_address: The engine's own holding account.
            audit: Audit trail. Defaults to an in-memory ``AuditLedger``.
            clock: Time source used when an operation is called without ``now``.
        """
        self.ledger = ledger
        self.limits = limits or PolicyLimits()
        self.contract_address = contract_address
        self.clock = clock

        self.roles = RoleRegistry(admin)
        self.pause_switch = PauseSwitch()
        self.window = MintWindow(window)
        self.supply = SupplyLedger(self.limits.max_supply)
        self.rate_limiter = RateLimiter(self.limits, clock)
        self.deny_list = DenyList()
        self.transfer_guard = TransferGuard(
            self.deny_list, self.limits.transfer_limit_per_tx, contract_address
        )
        self.guard = ReentrancyGuard()
        self.recovery = RecoveryModule(self.roles, self.guard, ledger.asset_id, contract_address)
        self.audit = audit if audit is not None else AuditLedger()

        # A resumed trail is the source of truth; ``ledger`` must start empty
        if self.audit.count() > 1:
            self._replay(self.audit.records())
        ledger.set_transfer_hook(self._before_balance_change)

        logger.info(
            "Policy engine initialized: asset=%s admin=%s window=[%d, %d] max_supply=%d",
            ledger.asset_id, admin, window.start_time, window.end_time, self.limits.max_supply,
        )

    # ── Internal ────────────────────────────────────────────────

    def _now(self, now: int | None) -> int:
        return int(self.clock()) if now is None else now

    @contextmanager
    def _operation(self, name: str, caller: str | None) -> Iterator[None]:
        """Log rejections of ``name`` and re-raise them unchanged."""
        try:
            yield
        except PolicyError as exc:
            logger.warning("%s rejected: caller=%s kind=%s %s", name, caller, exc.kind.value, exc.message)
            raise

    def _record(
        self,
        kind: AuditEventType,
        initiator: str,
        affected: list[str],
        now: int,
        amount: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return self.audit.append(
            kind=kind,
            initiator=initiator,
            affected=affected,
            amount=amount,
            timestamp=now,
            details=details,
        )

    def _record_or_undo(
        self,
        undo: Callable[[], None],
        kind: AuditEventType,
        initiator: str,
        affected: list[str],
        now: int,
        amount: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Append the audit record for an applied change, or undo the change."""
        try:
            return self._record(kind, initiator, affected, now, amount, details)
        except Exception:
            logger.error("Audit append failed for %s by %s; reverting", kind.value, initiator)
            undo()
            raise

    @contextmanager
    def _hook_suspended(self) -> Iterator[None]:
        self.ledger.set_transfer_hook(None)
        try:
            yield
        finally:
            self.ledger.set_transfer_hook(self._before_balance_change)

    def _move_back(self, sender: str, recipient: str, amount: int) -> None:
        with self._hook_suspended():
            self.ledger.move_balance(recipient, sender, amount)

    def _replay(self, records: list[AuditRecord]) -> None:
        """
        Rebuild policy state and native balances from a resumed audit trail.

        The chain is verified first. Runs before the transfer hook is
        installed. Allowances and foreign-asset custody are not part of the
        trail and start empty.
        """
        self.audit.verify_chain(strict=True)
        for record in records:
            self._apply(record)
        logger.info(
            "Policy state replayed: records=%d total_issued=%d paused=%s blacklisted=%d",
            len(records), self.supply.total_issued, self.pause_switch.paused,
            len(self.deny_list.listed()),
        )

    def _apply(self, record: AuditRecord) -> None:
        kind, details = record.kind, record.details
        if kind == AuditEventType.MINT:
            self.supply.record_issuance(record.amount)
            self.ledger.credit_balance(record.affected[0], record.amount)
            self.rate_limiter.commit(
                QuotaReservation(
                    principal=record.initiator,
                    amount=record.amount,
                    window_day=self.rate_limiter.day_of(record.timestamp),
                    consumed_after=details["consumed_today"],
                )
            )
        elif kind in (AuditEventType.TRANSFER, AuditEventType.TRANSFER_FROM):
            sender, recipient = record.affected
            self.ledger.move_balance(sender, recipient, record.amount)
        elif kind == AuditEventType.PAUSE:
            self.pause_switch.pause(record.initiator, details.get("reason", ""), record.timestamp)
        elif kind == AuditEventType.UNPAUSE:
            self.pause_switch.unpause(record.initiator, record.timestamp)
        elif kind in (AuditEventType.ROLE_GRANTED, AuditEventType.ROLE_REVOKED):
            self.roles.restore_grant(
                record.affected[0], Role(details["role"]), kind == AuditEventType.ROLE_GRANTED
            )
        elif kind == AuditEventType.BLACKLIST_UPDATED:
            self.deny_list.set_blacklisted(record.affected[0], details["blacklisted"])
        elif kind == AuditEventType.DAILY_LIMIT_SET:
            self.rate_limiter.set_daily_limit(record.affected[0], record.amount)
        # GENESIS and RECOVER carry no native state

    def _before_balance_change(self, sender: str | None, recipient: str | None, amount: int) -> None:
        """
        Transfer hook run by the ledger primitive before every balance change.

        Credits (``sender`` None) and debits (``recipient`` None) get the
        pause and deny-list checks; movements between two holders also get
        the ceiling and self-transfer checks.
        """
        self.pause_switch.require_not_paused()
        if sender is not None and recipient is not None:
            self.transfer_guard.check_transfer(sender, recipient, amount)
        else:
            self.transfer_guard.check_parties(sender, recipient)

    # ── Issuance ────────────────────────────────────────────────

    def mint(self, caller: str, to: str, amount: int, now: int | None = None) -> AuditRecord:
        """
        Issue ``amount`` new units to ``to``.

        Raises:
            ReentrantCallError, UnauthorizedError, HaltedError,
            InvalidDestinationError, RecipientBlacklistedError,
            MintingNotStartedError, MintingEndedError, TxMintLimitExceededError,
            SupplyCapExceededError, DailyMintLimitExceededError
        """
        _require_amount(amount)
        now = self._now(now)
        with self._operation("mint", caller), self.guard.scope("mint"):
            self.roles.require(caller, Role.MINTER)
            self.pause_switch.require_not_paused()
            if is_null_principal(to):
                raise InvalidDestinationError("Cannot mint to the null principal")
            self.transfer_guard.check_parties(None, to)
            self.window.check_window(now)
            if amount > self.limits.mint_limit_per_tx:
                raise TxMintLimitExceededError(
                    f"Mint of {amount} exceeds per-transaction limit {self.limits.mint_limit_per_tx}",
                    limit=self.limits.mint_limit_per_tx,
                )
            self.supply.check_supply(amount)
            reservation = self.rate_limiter.check(caller, amount, now)

            previous_quota = self.rate_limiter.commit(reservation)
            self.supply.record_issuance(amount)
            credited = False
            try:
                self.ledger.credit_balance(to, amount)
                credited = True
                record = self._record(
                    AuditEventType.MINT, caller, [to], now, amount,
                    details={
                        "total_issued": self.supply.total_issued,
                        "consumed_today": reservation.consumed_after,
                    },
                )
            except Exception:
                if credited:
                    with self._hook_suspended():
                        self.ledger.debit_balance(to, amount)
                self.supply.rollback_issuance(amount)
                self.rate_limiter.restore(caller, previous_quota)
                raise

            logger.info(
                "Minted: amount=%d to=%s by=%s total_issued=%d",
                amount, to, caller, self.supply.total_issued,
            )
            return record

    # ── Transfers ───────────────────────────────────────────────

    def transfer(self, caller: str, to: str, amount: int, now: int | None = None) -> AuditRecord:
        """
        Move ``amount`` from ``caller`` to ``to``.

        Raises:
            ReentrantCallError, HaltedError, InvalidDestinationError,
            SenderBlacklistedError, RecipientBlacklistedError,
            TransferLimitExceededError, SelfTransferToContractError,
            InsufficientBalanceError
        """
        _require_amount(amount)
        now = self._now(now)
        with self._operation("transfer", caller), self.guard.scope("transfer"):
            self.pause_switch.require_not_paused()
            if is_null_principal(to):
                raise InvalidDestinationError("Cannot transfer to the null principal")
            self.transfer_guard.check_transfer(caller, to, amount)
            self.ledger.move_balance(caller, to, amount)
            return self._record_or_undo(
                lambda: self._move_back(caller, to, amount),
                AuditEventType.TRANSFER, caller, [caller, to], now, amount,
            )

    def transfer_from(
        self,
        spender: str,
        owner: str,
        to: str,
        amount: int,
        now: int | None = None,
    ) -> AuditRecord:
        """
        Move ``amount`` from ``owner`` to ``to`` using ``spender``'s allowance.

        The guard checks apply to ``owner`` and ``to`` exactly as in ``transfer``.
        Allowance and balance are checked before either is touched.
        """
        _require_amount(amount)
        now = self._now(now)
        with self._operation("transfer_from", spender), self.guard.scope("transfer_from"):
            self.pause_switch.require_not_paused()
            if is_null_principal(to):
                raise InvalidDestinationError("Cannot transfer to the null principal")
            self.transfer_guard.check_transfer(owner, to, amount)

            allowance = self.ledger.allowance(owner, spender)
            if allowance < amount:
                raise InsufficientBalanceError(
                    f"Allowance of {spender} over {owner} is {allowance}, requested {amount}",
                    held=allowance,
                    requested=amount,
                )
            held = self.ledger.balance_of(owner)
            if held < amount:
                raise InsufficientBalanceError(
                    f"{owner} holds {held}, requested {amount}",
                    held=held,
                    requested=amount,
                )

            self.ledger.move_balance(owner, to, amount)
            self.ledger.spend_allowance(owner, spender, amount)

            def undo() -> None:
                self._move_back(owner, to, amount)
                self.ledger.approve(owner, spender, allowance)

            return self._record_or_undo(
                undo, AuditEventType.TRANSFER_FROM, spender, [owner, to], now, amount,
                details={"spender": spender},
            )

    # ── Halt switch ─────────────────────────────────────────────

    def pause(self, caller: str, reason: str = "", now: int | None = None) -> bool:
        """Engage the halt switch. Idempotent; returns True if the state changed."""
        now = self._now(now)
        with self._operation("pause", caller):
            self.roles.require(caller, Role.PAUSER)
            changed = self.pause_switch.pause(caller, reason, now)
            if changed:
                self._record_or_undo(
                    self.pause_switch.revert_last,
                    AuditEventType.PAUSE, caller, [], now, details={"reason": reason},
                )
            return changed

    def unpause(self, caller: str, now: int | None = None) -> bool:
        """Release the halt switch. Idempotent; returns True if the state changed."""
        now = self._now(now)
        with self._operation("unpause", caller):
            self.roles.require(caller, Role.PAUSER)
            changed = self.pause_switch.unpause(caller, now)
            if changed:
                self._record_or_undo(
                    self.pause_switch.revert_last, AuditEventType.UNPAUSE, caller, [], now,
                )
            return changed

    # ── Capability administration ───────────────────────────────

    def grant_role(self, caller: str, principal: str, role: Role, now: int | None = None) -> bool:
        now = self._now(now)
        with self._operation("grant_role", caller):
            changed = self.roles.grant(caller, principal, role)
            if changed:
                self._record_or_undo(
                    lambda: self.roles.restore_grant(principal, role, False),
                    AuditEventType.ROLE_GRANTED, caller, [principal], now,
                    details={"role": role.value},
                )
            return changed

    def revoke_role(self, caller: str, principal: str, role: Role, now: int | None = None) -> bool:
        now = self._now(now)
        with self._operation("revoke_role", caller):
            changed = self.roles.revoke(caller, principal, role)
            if changed:
                self._record_or_undo(
                    lambda: self.roles.restore_grant(principal, role, True),
                    AuditEventType.ROLE_REVOKED, caller, [principal], now,
                    details={"role": role.value},
                )
            return changed

    def renounce_role(self, caller: str, role: Role, now: int | None = None) -> bool:
        now = self._now(now)
        with self._operation("renounce_role", caller):
            changed = self.roles.renounce(caller, role)
            if changed:
                self._record_or_undo(
                    lambda: self.roles.restore_grant(caller, role, True),
                    AuditEventType.ROLE_REVOKED, caller, [caller], now,
                    details={"role": role.value, "renounced": True},
                )
            return changed

    # ── Governance policy ───────────────────────────────────────

    def set_blacklisted(self, caller: str, principal: str, flag: bool, now: int | None = None) -> bool:
        """List or unlist ``principal``. Governance only; effective from the next call."""
        now = self._now(now)
        with self._operation("set_blacklisted", caller):
            self.roles.require(caller, Role.GOVERNANCE)
            changed = self.deny_list.set_blacklisted(principal, flag)
            if changed:
                self._record_or_undo(
                    lambda: self.deny_list.set_blacklisted(principal, not flag),
                    AuditEventType.BLACKLIST_UPDATED, caller, [principal], now,
                    details={"blacklisted": flag},
                )
            return changed

    def set_daily_limit(self, caller: str, principal: str, limit: int, now: int | None = None) -> AuditRecord:
        """Override ``principal``'s daily mint cap. Governance only; target must be a minter."""
        _require_amount(limit)
        now = self._now(now)
        with self._operation("set_daily_limit", caller):
            self.roles.require(caller, Role.GOVERNANCE)
            if not self.roles.has(principal, Role.MINTER):
                raise NotAMinterError(f"{principal} does not hold the minter role", principal=principal)
            previous = self.rate_limiter.daily_override(principal)
            self.rate_limiter.set_daily_limit(principal, limit)
            return self._record_or_undo(
                lambda: self.rate_limiter.restore_daily_limit(principal, previous),
                AuditEventType.DAILY_LIMIT_SET, caller, [principal], now, limit,
            )

    # ── Recovery ────────────────────────────────────────────────

    def recover(
        self,
        caller: str,
        token: ForeignAsset,
        to: str,
        amount: int,
        now: int | None = None,
    ) -> AuditRecord:
        """Withdraw a foreign asset from custody. See ``RecoveryModule.recover``."""
        _require_amount(amount)
        now = self._now(now)
        with self._operation("recover", caller):
            self.recovery.recover(caller, token, to, amount)
            return self._record_or_undo(
                lambda: token.transfer(to, self.recovery.custody_address, amount),
                AuditEventType.RECOVER, caller, [to], now, amount,
                details={"asset_id": token.asset_id},
            )

    # ── Queries ─────────────────────────────────────────────────

    @property
    def paused(self) -> bool:
        return self.pause_switch.paused

    @property
    def total_issued(self) -> int:
        return self.supply.total_issued

    @property
    def remaining_supply(self) -> int:
        return self.supply.remaining

    def has_role(self, principal: str, role: Role) -> bool:
        return self.roles.has(principal, role)

    def is_blacklisted(self, principal: str) -> bool:
        return self.deny_list.is_blacklisted(principal)

    def daily_cap(self, principal: str) -> int:
        return self.rate_limiter.daily_cap(principal)

    def remaining_daily_quota(self, principal: str, now: int | None = None) -> int:
        return self.rate_limiter.remaining(principal, self._now(now))

    def balance_of(self, principal: str) -> int:
        return self.ledger.balance_of(principal)
