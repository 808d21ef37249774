"""
Policy Schema — Pydantic models and enumerations shared by every MintGate component.

These models are the canonical data structures for the issuance policy:
capability roles, numeric limits, per-principal quota records, pause events
and the audit records emitted on every state change.

Amounts are integer base units. Times are integer epoch seconds; the day
index used by quota rollover is ``timestamp // day_length``.
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, computed_field, model_validator


# ════════════════════════════════════════════════════════════════
# Principals
# ════════════════════════════════════════════════════════════════

ZERO_ADDRESS = "0x" + "0" * 40


def is_null_principal(principal: str | None) -> bool:
    """True for the null principal: ``None``, the empty string, or the zero address."""
    return not principal or principal == ZERO_ADDRESS


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Role(str, enum.Enum):
    """Fixed capability set. ADMIN administers every role, including itself."""

    ADMIN = "admin"
    MINTER = "minter"
    PAUSER = "pauser"
    GOVERNANCE = "governance"


class AuditEventType(str, enum.Enum):
    """Kinds of audit records appended by the policy engine."""

    # Issuance and movement
    MINT = "mint"
    TRANSFER = "transfer"
    TRANSFER_FROM = "transfer_from"
    RECOVER = "recover"

    # Halt switch
    PAUSE = "pause"
    UNPAUSE = "unpause"

    # Capability administration
    ROLE_GRANTED = "role_granted"
    ROLE_REVOKED = "role_revoked"

    # Governance policy
    BLACKLIST_UPDATED = "blacklist_updated"
    DAILY_LIMIT_SET = "daily_limit_set"

    # System
    GENESIS = "genesis"


# ════════════════════════════════════════════════════════════════
# Policy Models
# ════════════════════════════════════════════════════════════════


class PolicyLimits(BaseModel):
    """
    Numeric limits of the issuance policy.

    The defaults cap supply at one billion units, issuance at one million
    units per transaction and ten million per principal per day.
    """

    max_supply: int = Field(default=1_000_000_000, gt=0, description="Hard cap on cumulative issuance")
    mint_limit_per_tx: int = Field(default=1_000_000, gt=0, description="Largest single mint")
    daily_mint_multiplier: int = Field(
        default=10, gt=0, description="Default daily cap as a multiple of mint_limit_per_tx"
    )
    transfer_limit_per_tx: int = Field(default=10_000_000, gt=0, description="Largest single transfer")
    day_length: int = Field(default=86_400, gt=0, description="Seconds per quota day")

    @computed_field
    @property
    def default_daily_cap(self) -> int:
        return self.mint_limit_per_tx * self.daily_mint_multiplier


class MintWindowBounds(BaseModel):
    """Inclusive ``[start_time, end_time]`` range during which minting is open."""

    model_config = {"frozen": True}

    start_time: int
    end_time: int

    @model_validator(mode="after")
    def _check_order(self) -> "MintWindowBounds":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be after start_time ({self.start_time})"
            )
        return self


class DailyQuota(BaseModel):
    """Issuance consumed by one principal during ``window_day``."""

    window_day: int = 0
    consumed: int = 0


class PauseEvent(BaseModel):
    """A single pause or unpause of the global halt switch."""

    paused: bool
    triggered_by: str
    reason: str = ""
    timestamp: int
    recorded_at: datetime = Field(default_factory=datetime.utcnow)


# ════════════════════════════════════════════════════════════════
# Audit Models
# ════════════════════════════════════════════════════════════════


class AuditRecord(BaseModel):
    """
    One append-only audit record.

    Each record stores its own hash and the hash of the previous record,
    forming a chain that any holder of the trail can re-verify.
    """

    sequence_number: int = Field(description="Monotonically increasing sequence number")
    kind: AuditEventType
    initiator: str = Field(description="Principal that initiated the operation")
    affected: list[str] = Field(
        default_factory=list, description="Principals whose state the operation changed"
    )
    amount: int | None = Field(default=None, description="Amount moved or configured, if any")
    timestamp: int = Field(description="Operation time, epoch seconds")
    details: dict[str, Any] = Field(default_factory=dict)
    previous_hash: str = Field(description="SHA-256 hash of the previous record")
    record_hash: str = Field(default="", description="SHA-256 hash of this record")

    def compute_hash(self) -> str:
        """
        Compute the SHA-256 hash of this record.

        Hash = SHA-256(previous_hash || canonical_json(hashable_fields))
        """
        hashable = {
            "sequence_number": self.sequence_number,
            "kind": self.kind.value,
            "initiator": self.initiator,
            "affected": self.affected,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (self.previous_hash + canonical).encode("utf-8")
        ).hexdigest()
