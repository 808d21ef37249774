"""
Audit Ledger Service — append-only, hash-chained record of every state change.

This service provides the core operations for the audit trail:
- Append new records with automatic hash chain computation
- Verify the integrity of the full hash chain
- Query records by kind, principal, or recency

Records always live in memory. When an ``SqlAuditStore`` is attached, each
record is also inserted into the ``audit_records`` table, and an existing
trail is resumed from the store on startup.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from mintgate.ledger.models import AuditRecordDB, Base
from mintgate.policy.schema import AuditEventType, AuditRecord

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Genesis Constants
# ════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64  # The "previous hash" for the first record in the chain


class AuditIntegrityError(Exception):
    """Raised when the hash chain integrity check fails."""
    pass


class SqlAuditStore:
    """
    SQL persistence for audit records.

    Usage:
        store = SqlAuditStore("postgresql+psycopg2://...")
        store.initialize()
        ledger = AuditLedger(store=store)
    """

    def __init__(self, database_url: str) -> None:
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the audit table if it does not exist."""
        Base.metadata.create_all(self.engine)

    def persist(self, record: AuditRecord) -> None:
        with self.SessionLocal() as session:
            session.add(
                AuditRecordDB(
                    sequence_number=record.sequence_number,
                    kind=record.kind.value,
                    initiator=record.initiator,
                    affected=list(record.affected),
                    amount=record.amount,
                    timestamp=record.timestamp,
                    details=record.details,
                    previous_hash=record.previous_hash,
                    record_hash=record.record_hash,
                )
            )
            session.commit()

    def load_all(self) -> list[AuditRecord]:
        """Load every persisted record in sequence order."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(AuditRecordDB).order_by(AuditRecordDB.sequence_number.asc())
            ).scalars().all()
            return [
                AuditRecord(
                    sequence_number=row.sequence_number,
                    kind=AuditEventType(row.kind),
                    initiator=row.initiator,
                    affected=list(row.affected or []),
                    amount=row.amount,
                    timestamp=row.timestamp,
                    details=dict(row.details or {}),
                    previous_hash=row.previous_hash,
                    record_hash=row.record_hash,
                )
                for row in rows
            ]

    def count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(select(func.count()).select_from(AuditRecordDB))
            return result.scalar() or 0


class AuditLedger:
    """
    The audit trail of the policy engine.

    Every successful state-changing engine operation appends exactly one
    record here. There is no update and no delete.
    """

    def __init__(self, store: SqlAuditStore | None = None, genesis_timestamp: int = 0) -> None:
        self.store = store
        self._records: list[AuditRecord] = []

        if store is not None:
            store.initialize()
            self._records = store.load_all()
            if self._records:
                logger.info("Audit trail resumed from store: %d records", len(self._records))

        if not self._records:
            self._append_record(
                kind=AuditEventType.GENESIS,
                initiator="system",
                affected=[],
                amount=None,
                timestamp=genesis_timestamp,
                details={"message": "Genesis of the audit trail"},
            )

    def append(
        self,
        kind: AuditEventType,
        initiator: str,
        affected: list[str] | None = None,
        amount: int | None = None,
        timestamp: int = 0,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """
        Append a new record to the trail.

        This is the ONLY write operation. The hash chain is computed here.

        Returns:
            The newly created AuditRecord.
        """
        return self._append_record(
            kind=kind,
            initiator=initiator,
            affected=[p for p in (affected or []) if p],
            amount=amount,
            timestamp=timestamp,
            details=details or {},
        )

    def _append_record(
        self,
        kind: AuditEventType,
        initiator: str,
        affected: list[str],
        amount: int | None,
        timestamp: int,
        details: dict[str, Any],
    ) -> AuditRecord:
        previous_hash = self._records[-1].record_hash if self._records else GENESIS_HASH
        record = AuditRecord(
            sequence_number=len(self._records),
            kind=kind,
            initiator=initiator,
            affected=affected,
            amount=amount,
            timestamp=timestamp,
            details=details,
            previous_hash=previous_hash,
        )
        record.record_hash = record.compute_hash()

        if self.store is not None:
            self.store.persist(record)
        self._records.append(record)

        logger.info(
            "Audit record appended: seq=%d kind=%s hash=%s",
            record.sequence_number, kind.value, record.record_hash[:16],
        )
        return record

    def verify_chain(self, strict: bool = False) -> tuple[bool, int, str]:
        """
        Verify the integrity of the entire hash chain.

        Args:
            strict: Raise ``AuditIntegrityError`` instead of returning a failure.

        Returns:
            Tuple of (is_valid, records_verified, message).
        """
        is_valid, verified, message = verify_records(self._records)
        if strict and not is_valid:
            raise AuditIntegrityError(message)
        return is_valid, verified, message

    def records(self) -> list[AuditRecord]:
        return list(self._records)

    def count(self) -> int:
        return len(self._records)

    def latest(self, limit: int = 50) -> list[AuditRecord]:
        """Most recent records, newest first."""
        return list(reversed(self._records[-limit:])) if limit > 0 else []

    def by_kind(self, kind: AuditEventType) -> list[AuditRecord]:
        return [r for r in self._records if r.kind == kind]

    def by_principal(self, principal: str) -> list[AuditRecord]:
        """Records initiated by or affecting ``principal``."""
        return [
            r for r in self._records
            if r.initiator == principal or principal in r.affected
        ]


def verify_records(records: list[AuditRecord]) -> tuple[bool, int, str]:
    """
    Walk ``records`` from genesis forward, recomputing every hash.

    Returns:
        Tuple of (is_valid, records_verified, message).
    """
    if not records:
        return False, 0, "No records found in audit trail"

    first = records[0]
    if first.sequence_number != 0:
        return False, 0, f"First record has sequence {first.sequence_number}, expected 0"
    if first.previous_hash != GENESIS_HASH:
        return False, 0, "Genesis record has incorrect previous_hash"

    for i, record in enumerate(records):
        if record.sequence_number != i:
            return False, i, f"Sequence gap at position {i}: found {record.sequence_number}"

        expected_hash = record.compute_hash()
        if record.record_hash != expected_hash:
            return (
                False, i,
                f"Hash mismatch at sequence {record.sequence_number}: "
                f"stored={record.record_hash[:16]}... "
                f"computed={expected_hash[:16]}..."
            )

        if i > 0 and record.previous_hash != records[i - 1].record_hash:
            return (
                False, i,
                f"Chain break at sequence {record.sequence_number}: "
                f"previous_hash does not match prior record's hash"
            )

    return True, len(records), f"Chain verified: {len(records)} records, integrity intact"
