"""
Audit Trail Verifier — independent chain integrity check of a persisted trail.

Anyone holding the audit database can run this tool to recompute every hash
in the chain and confirm that no record has been altered after the fact.

Usage:
    python -m mintgate.ledger.audit
    python -m mintgate.ledger.audit --database-url sqlite:///audit.db
    python -m mintgate.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table

from mintgate.config import settings
from mintgate.ledger.service import SqlAuditStore, verify_records

console = Console()


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Run a full hash chain integrity audit.

    Args:
        database_url: SQLAlchemy connection string of the audit store.
        verbose: Print every record if True.

    Returns:
        True if the chain is valid (or empty), False otherwise.
    """
    console.print("\n[bold blue]═══ MintGate Audit Trail Verification ═══[/bold blue]\n")

    store = SqlAuditStore(database_url)
    store.initialize()
    records = store.load_all()
    console.print(f"  Records in trail: [bold]{len(records)}[/bold]")

    if not records:
        console.print("[yellow]⚠ Audit trail is empty — nothing to verify[/yellow]")
        return True

    console.print("  Verifying hash chain...", end=" ")
    start_time = time.time()
    is_valid, verified, message = verify_records(records)
    elapsed = time.time() - start_time

    if is_valid:
        console.print("[bold green]✓ VALID[/bold green]")
        console.print(f"  Records verified: [bold]{verified}[/bold]")
        console.print(f"  Verification time: {elapsed:.3f}s")
    else:
        console.print("[bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at record: {verified}")
        console.print(f"  Reason: {message}")

    if verbose:
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Kind", style="green", width=18)
        table.add_column("Initiator", style="yellow", width=20)
        table.add_column("Affected", width=28)
        table.add_column("Amount", justify="right", width=14)
        table.add_column("Time", width=12)
        table.add_column("Hash (first 16)", style="dim", width=18)

        for record in records:
            table.add_row(
                str(record.sequence_number),
                record.kind.value,
                record.initiator,
                ", ".join(record.affected) or "—",
                "—" if record.amount is None else str(record.amount),
                str(record.timestamp),
                record.record_hash[:16] + "...",
            )
        console.print(table)

    console.print("\n[bold blue]═══ Verification Complete ═══[/bold blue]\n")
    return is_valid


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="MintGate audit trail integrity verifier")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to MINTGATE_AUDIT_DATABASE_URL)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show every record",
    )
    args = parser.parse_args(argv)

    db_url = args.database_url or settings.audit_database_url
    if not db_url:
        console.print("[red]No audit database configured[/red]")
        sys.exit(2)
    is_valid = run_audit(db_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
