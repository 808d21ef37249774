"""
MintGate — service bootstrap.

Central coordination entrypoint that:
1. Configures structured logging
2. Opens the audit trail (SQL-backed when configured)
3. Builds the ledger primitive and the policy engine from settings
4. Verifies the audit chain before the engine accepts operations

The HTTP API (``mintgate.api.app``) calls ``build_engine`` at startup; this
module can also be run directly as a configuration and integrity check.
"""

from __future__ import annotations

import logging
import sys

import structlog

from mintgate.config import MintGateSettings, settings
from mintgate.engine import PolicyEngine
from mintgate.ledger.primitive import InMemoryLedgerPrimitive
from mintgate.ledger.service import AuditLedger, SqlAuditStore
from mintgate.policy.schema import Role

logger = logging.getLogger(__name__)


def configure_logging(config: MintGateSettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=config.log_level.upper(), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_engine(
    config: MintGateSettings = settings,
) -> tuple[PolicyEngine, InMemoryLedgerPrimitive]:
    """
    Build a policy engine and its ledger primitive from ``config``.

    On a fresh trail the configured admin also receives the minter, pauser
    and governance roles so the deployment is operable; each grant is
    audited. A resumed trail is replayed by the engine and gets no grants.
    """
    store = SqlAuditStore(config.audit_database_url) if config.audit_database_url else None
    audit = AuditLedger(store=store, genesis_timestamp=config.mint_start_time)
    resumed = audit.count() > 1

    ledger = InMemoryLedgerPrimitive(asset_id=config.asset_id)
    engine = PolicyEngine(
        ledger=ledger,
        admin=config.admin_principal,
        window=config.mint_window,
        limits=config.policy_limits,
        contract_address=config.contract_address,
        audit=audit,
    )
    if resumed:
        return engine, ledger

    for role in (Role.MINTER, Role.PAUSER, Role.GOVERNANCE):
        engine.grant_role(config.admin_principal, config.admin_principal, role)
    return engine, ledger


def main() -> None:
    """Build the engine and verify the audit trail."""
    configure_logging()
    log = structlog.get_logger()

    log.info(
        "mintgate.orchestrator.starting",
        asset_id=settings.asset_id,
        max_supply=settings.max_supply,
        audit_persistent=bool(settings.audit_database_url),
    )

    engine, _ = build_engine(settings)
    is_valid, records, message = engine.audit.verify_chain()
    if not is_valid:
        log.critical("mintgate.orchestrator.integrity_failure", message=message, records=records)
        sys.exit(1)

    log.info(
        "mintgate.orchestrator.ready",
        audit_records=records,
        window_start=engine.window.start_time,
        window_end=engine.window.end_time,
        admins=engine.roles.members(Role.ADMIN),
    )


if __name__ == "__main__":
    main()
