"""
Audit Trail — SQLAlchemy models for the persisted audit record.

The table is APPEND-ONLY: rows are inserted once and never updated or
deleted. Each row stores the SHA-256 hash of
(previous_hash || canonical_json(record)), so any retroactive alteration is
detectable by recomputing the chain.

Column types are portable (``JSON`` rather than ``JSONB``) so the same model
works against PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all audit models."""
    pass


class AuditRecordDB(Base):
    """A single persisted audit record."""

    __tablename__ = "audit_records"

    sequence_number = Column(
        Integer, primary_key=True, autoincrement=False,
        comment="Monotonically increasing sequence number",
    )
    kind = Column(String(32), nullable=False, index=True)
    initiator = Column(String(128), nullable=False)
    affected = Column(
        JSON, nullable=False, default=list,
        comment="Principals whose state the operation changed",
    )
    amount = Column(BigInteger, nullable=True)
    timestamp = Column(BigInteger, nullable=False, comment="Operation time, epoch seconds")
    details = Column(JSON, nullable=False, default=dict)

    previous_hash = Column(String(64), nullable=False)
    record_hash = Column(String(64), nullable=False, unique=True)

    persisted_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_audit_kind_timestamp", "kind", "timestamp"),
        Index("ix_audit_initiator", "initiator"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditRecord seq={self.sequence_number} "
            f"kind={self.kind} hash={self.record_hash[:12]}...>"
        )
