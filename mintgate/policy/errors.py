"""
Policy Errors — the rejection taxonomy of the issuance engine.

Every rejected operation raises a ``PolicyError`` subclass whose ``kind``
names the exact rule that failed. Rejections abort the operation before
any state is mutated and are never retried internally.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Kinds of policy rejection."""

    UNAUTHORIZED = "unauthorized"
    HALTED = "halted"
    MINTING_NOT_STARTED = "minting_not_started"
    MINTING_ENDED = "minting_ended"
    SUPPLY_CAP_EXCEEDED = "supply_cap_exceeded"
    TX_MINT_LIMIT_EXCEEDED = "tx_mint_limit_exceeded"
    DAILY_MINT_LIMIT_EXCEEDED = "daily_mint_limit_exceeded"
    SENDER_BLACKLISTED = "sender_blacklisted"
    RECIPIENT_BLACKLISTED = "recipient_blacklisted"
    TRANSFER_LIMIT_EXCEEDED = "transfer_limit_exceeded"
    SELF_TRANSFER_TO_CONTRACT = "self_transfer_to_contract"
    INVALID_DESTINATION = "invalid_destination"
    NOT_A_MINTER = "not_a_minter"
    REENTRANT_CALL = "reentrant_call"
    CANNOT_RECOVER_NATIVE = "cannot_recover_native"
    INSUFFICIENT_BALANCE = "insufficient_balance"


class PolicyError(Exception):
    """Base class for every policy rejection."""

    kind: ErrorKind

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind.value, "detail": self.message, **self.context}


class UnauthorizedError(PolicyError):
    """Caller lacks the capability the operation requires."""

    kind = ErrorKind.UNAUTHORIZED


class HaltedError(PolicyError):
    """The global halt switch is engaged."""

    kind = ErrorKind.HALTED


class MintingNotStartedError(PolicyError):
    kind = ErrorKind.MINTING_NOT_STARTED


class MintingEndedError(PolicyError):
    kind = ErrorKind.MINTING_ENDED


class SupplyCapExceededError(PolicyError):
    kind = ErrorKind.SUPPLY_CAP_EXCEEDED


class TxMintLimitExceededError(PolicyError):
    kind = ErrorKind.TX_MINT_LIMIT_EXCEEDED


class DailyMintLimitExceededError(PolicyError):
    kind = ErrorKind.DAILY_MINT_LIMIT_EXCEEDED


class SenderBlacklistedError(PolicyError):
    kind = ErrorKind.SENDER_BLACKLISTED


class RecipientBlacklistedError(PolicyError):
    kind = ErrorKind.RECIPIENT_BLACKLISTED


class TransferLimitExceededError(PolicyError):
    kind = ErrorKind.TRANSFER_LIMIT_EXCEEDED


class SelfTransferToContractError(PolicyError):
    """Destination is the engine's own holding account."""

    kind = ErrorKind.SELF_TRANSFER_TO_CONTRACT


class InvalidDestinationError(PolicyError):
    """Destination (or listed principal) is the null principal."""

    kind = ErrorKind.INVALID_DESTINATION


class NotAMinterError(PolicyError):
    kind = ErrorKind.NOT_A_MINTER


class ReentrantCallError(PolicyError):
    """A guarded operation was entered again before the outer call finished."""

    kind = ErrorKind.REENTRANT_CALL


class CannotRecoverNativeError(PolicyError):
    kind = ErrorKind.CANNOT_RECOVER_NATIVE


class InsufficientBalanceError(PolicyError):
    kind = ErrorKind.INSUFFICIENT_BALANCE
