"""
Deny List and Transfer Guard — the checks every guarded transfer passes.

The same ``check_transfer`` runs for two-party transfers, delegated
(allowance-based) transfers and, through the ledger transfer hook, for any
direct balance movement. Listing a principal takes effect on the next call.
"""

from __future__ import annotations

import logging

from mintgate.policy.errors import (
    InvalidDestinationError,
    RecipientBlacklistedError,
    SelfTransferToContractError,
    SenderBlacklistedError,
    TransferLimitExceededError,
)
from mintgate.policy.schema import is_null_principal

logger = logging.getLogger(__name__)


class DenyList:
    """Principals barred from sending or receiving the asset."""

    def __init__(self) -> None:
        self._listed: dict[str, bool] = {}

    def set_blacklisted(self, principal: str, flag: bool) -> bool:
        """
        List or unlist ``principal``.

        Returns:
            True if the flag changed.

        Raises:
            InvalidDestinationError: If ``principal`` is the null principal.
        """
        if is_null_principal(principal):
            raise InvalidDestinationError("Cannot change deny-list status of the null principal")
        changed = self._listed.get(principal, False) != flag
        if flag:
            self._listed[principal] = True
        else:
            self._listed.pop(principal, None)
        if changed:
            logger.info("Deny-list updated: principal=%s listed=%s", principal, flag)
        return changed

    def is_blacklisted(self, principal: str | None) -> bool:
        if principal is None:
            return False
        return self._listed.get(principal, False)

    def listed(self) -> list[str]:
        return sorted(self._listed)


class TransferGuard:
    """Transfer ceiling, deny-list and self-transfer checks."""

    def __init__(self, deny_list: DenyList, transfer_limit_per_tx: int, contract_address: str) -> None:
        self.deny_list = deny_list
        self.transfer_limit_per_tx = transfer_limit_per_tx
        self.contract_address = contract_address

    def check_parties(self, sender: str | None, recipient: str | None) -> None:
        if sender is not None and self.deny_list.is_blacklisted(sender):
            raise SenderBlacklistedError(f"Sender {sender} is blacklisted", principal=sender)
        if recipient is not None and self.deny_list.is_blacklisted(recipient):
            raise RecipientBlacklistedError(f"Recipient {recipient} is blacklisted", principal=recipient)

    def check_transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Raise the first failing transfer rule, if any.

        Order: sender listed, recipient listed, ceiling, destination is self.
        """
        self.check_parties(sender, recipient)
        if amount > self.transfer_limit_per_tx:
            raise TransferLimitExceededError(
                f"Transfer of {amount} exceeds per-transaction limit {self.transfer_limit_per_tx}",
                limit=self.transfer_limit_per_tx,
            )
        if recipient == self.contract_address:
            raise SelfTransferToContractError(
                "Transfers to the contract's own holding account are not allowed"
            )
