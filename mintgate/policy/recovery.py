"""
Recovery Module — emergency withdrawal of foreign assets held in custody.

Assets sent to the engine's holding account by mistake can only leave it
through ``recover``. The engine's own asset can never be recovered.

Every value-moving operation shares one ``ReentrancyGuard``: a foreign asset
whose transfer calls back into a guarded operation sees ``ReentrantCallError``
and the outer call carries on unaffected.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Protocol, runtime_checkable

from mintgate.governance.roles import RoleRegistry
from mintgate.policy.errors import (
    CannotRecoverNativeError,
    InsufficientBalanceError,
    InvalidDestinationError,
    ReentrantCallError,
)
from mintgate.policy.schema import Role, is_null_principal

logger = logging.getLogger(__name__)


@runtime_checkable
class ForeignAsset(Protocol):
    """Any asset other than the engine's own that the engine can hold."""

    asset_id: str

    def balance_of(self, holder: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> None: ...


class ReentrancyGuard:
    """
    Single-depth call guard.

    ``scope`` raises ``ReentrantCallError`` when entered while another scope
    is open; the flag is cleared on every exit path of the outer scope.
    """

    def __init__(self) -> None:
        self._operation: str | None = None

    @property
    def entered(self) -> bool:
        return self._operation is not None

    @contextmanager
    def scope(self, operation: str) -> Iterator[None]:
        if self._operation is not None:
            logger.warning(
                "Reentrant call rejected: %s while %s in progress", operation, self._operation
            )
            raise ReentrantCallError(
                f"Reentrant call to {operation} while {self._operation} is in progress",
                operation=operation,
                in_progress=self._operation,
            )
        self._operation = operation
        try:
            yield
        finally:
            self._operation = None


class RecoveryModule:
    """Governance-only withdrawal of foreign assets from the engine's custody."""

    def __init__(
        self,
        roles: RoleRegistry,
        guard: ReentrancyGuard,
        native_asset_id: str,
        custody_address: str,
    ) -> None:
        self.roles = roles
        self.guard = guard
        self.native_asset_id = native_asset_id
        self.custody_address = custody_address

    def recover(self, caller: str, token: ForeignAsset, to: str, amount: int) -> None:
        """
        Move ``amount`` of ``token`` from custody to ``to``.

        Raises:
            ReentrantCallError: Called from inside another guarded operation.
            UnauthorizedError: ``caller`` lacks ``Role.GOVERNANCE``.
            InvalidDestinationError: ``to`` is the null principal.
            CannotRecoverNativeError: ``token`` is the engine's own asset.
            InsufficientBalanceError: Custody holds less than ``amount``.
        """
        with self.guard.scope("recover"):
            self.roles.require(caller, Role.GOVERNANCE)
            if is_null_principal(to):
                raise InvalidDestinationError("Recovery destination must be a non-null principal")
            if token.asset_id == self.native_asset_id:
                raise CannotRecoverNativeError(
                    f"Asset {token.asset_id} is the native asset and cannot be recovered"
                )
            held = token.balance_of(self.custody_address)
            if held < amount:
                raise InsufficientBalanceError(
                    f"Custody holds {held} of {token.asset_id}, requested {amount}",
                    held=held,
                    requested=amount,
                )
            token.transfer(self.custody_address, to, amount)
            logger.info(
                "Foreign asset recovered: asset=%s amount=%d to=%s by=%s",
                token.asset_id, amount, to, caller,
            )
