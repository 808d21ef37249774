"""
Tests for the audit trail hash chain.

Validates:
- Append-only semantics
- SHA-256 hash chain integrity
- Tamper detection
- SQL persistence and resumption
- The verification CLI
"""

from __future__ import annotations

import pytest
from sqlalchemy import update

from mintgate.ledger.audit import main as audit_main
from mintgate.ledger.audit import run_audit
from mintgate.ledger.models import AuditRecordDB
from mintgate.ledger.service import (
    GENESIS_HASH,
    AuditIntegrityError,
    AuditLedger,
    SqlAuditStore,
    verify_records,
)
from mintgate.policy.schema import AuditEventType, AuditRecord


class TestAuditRecordHash:
    """Test the Pydantic AuditRecord hash computation."""

    def _record(self, **overrides) -> AuditRecord:
        fields = {
            "sequence_number": 1,
            "kind": AuditEventType.MINT,
            "initiator": "minter",
            "affected": ["alice"],
            "amount": 100,
            "timestamp": 1_000,
            "previous_hash": GENESIS_HASH,
        }
        fields.update(overrides)
        return AuditRecord(**fields)

    def test_compute_hash_deterministic(self):
        record = self._record()
        assert record.compute_hash() == record.compute_hash()

    def test_compute_hash_changes_with_amount(self):
        assert self._record(amount=100).compute_hash() != self._record(amount=101).compute_hash()

    def test_compute_hash_format(self):
        h = self._record().compute_hash()
        assert len(h) == 64, "SHA-256 hex digest should be 64 chars"
        assert all(c in "0123456789abcdef" for c in h)

    def test_tamper_detection(self):
        record = self._record()
        tampered = record.model_copy(update={"affected": ["mallory"]})
        assert record.compute_hash() != tampered.compute_hash()


class TestAuditLedger:
    def setup_method(self):
        self.audit = AuditLedger()

    def test_starts_with_genesis(self):
        assert self.audit.count() == 1
        genesis = self.audit.records()[0]
        assert genesis.kind == AuditEventType.GENESIS
        assert genesis.previous_hash == GENESIS_HASH

    def test_append_links_records(self):
        first = self.audit.append(AuditEventType.PAUSE, "pauser", timestamp=5)
        second = self.audit.append(AuditEventType.UNPAUSE, "pauser", timestamp=6)
        assert first.sequence_number == 1
        assert second.previous_hash == first.record_hash
        assert self.audit.verify_chain() == (True, 3, "Chain verified: 3 records, integrity intact")

    def test_null_principals_dropped_from_affected(self):
        record = self.audit.append(AuditEventType.MINT, "minter", affected=["alice", None, ""])
        assert record.affected == ["alice"]

    def test_tampered_record_detected(self):
        self.audit.append(AuditEventType.MINT, "minter", ["alice"], amount=10)
        self.audit.append(AuditEventType.TRANSFER, "alice", ["alice", "bob"], amount=5)
        self.audit.records()[1].amount = 10_000

        is_valid, position, message = self.audit.verify_chain()
        assert not is_valid
        assert position == 1
        assert "Hash mismatch" in message
        with pytest.raises(AuditIntegrityError):
            self.audit.verify_chain(strict=True)

    def test_queries(self):
        self.audit.append(AuditEventType.MINT, "minter", ["alice"], amount=10)
        self.audit.append(AuditEventType.TRANSFER, "alice", ["alice", "bob"], amount=5)
        self.audit.append(AuditEventType.MINT, "minter", ["carol"], amount=1)

        assert len(self.audit.by_kind(AuditEventType.MINT)) == 2
        assert [r.amount for r in self.audit.by_principal("alice")] == [10, 5]
        assert [r.sequence_number for r in self.audit.latest(2)] == [3, 2]
        assert self.audit.latest(0) == []

    def test_empty_chain_is_invalid(self):
        assert verify_records([])[0] is False


class TestSqlAuditStore:
    def _url(self, tmp_path) -> str:
        return f"sqlite:///{tmp_path / 'audit.db'}"

    def test_records_persist_and_resume(self, tmp_path):
        url = self._url(tmp_path)
        audit = AuditLedger(store=SqlAuditStore(url))
        audit.append(AuditEventType.MINT, "minter", ["alice"], amount=500_000, timestamp=1)
        audit.append(AuditEventType.PAUSE, "pauser", timestamp=2, details={"reason": "drill"})

        resumed = AuditLedger(store=SqlAuditStore(url))
        assert resumed.count() == 3
        assert resumed.records()[1].amount == 500_000
        assert resumed.records()[2].details == {"reason": "drill"}
        assert resumed.verify_chain()[0] is True

        appended = resumed.append(AuditEventType.UNPAUSE, "pauser", timestamp=3)
        assert appended.sequence_number == 3
        assert appended.previous_hash == audit.records()[-1].record_hash
        assert SqlAuditStore(url).count() == 4

    def test_cli_verifies_clean_trail(self, tmp_path):
        url = self._url(tmp_path)
        audit = AuditLedger(store=SqlAuditStore(url))
        audit.append(AuditEventType.MINT, "minter", ["alice"], amount=1)
        assert run_audit(url, verbose=True) is True

    def test_cli_detects_tampering(self, tmp_path):
        url = self._url(tmp_path)
        store = SqlAuditStore(url)
        audit = AuditLedger(store=store)
        audit.append(AuditEventType.MINT, "minter", ["alice"], amount=1)

        with store.SessionLocal() as session:
            session.execute(
                update(AuditRecordDB)
                .where(AuditRecordDB.sequence_number == 1)
                .values(amount=1_000_000)
            )
            session.commit()

        assert run_audit(url) is False
        with pytest.raises(SystemExit) as exc_info:
            audit_main(["--database-url", url])
        assert exc_info.value.code == 1

    def test_cli_empty_trail(self, tmp_path):
        assert run_audit(self._url(tmp_path)) is True
