"""
Verification commands: chain, immutability
"""

import signal
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.table import Table

from auditchain.config import Settings
from auditchain.core.errors import AuditChainError, VerificationCancelled
from auditchain.immutability import verify_immutability_status
from auditchain.log import SqlAuditStore
from auditchain.verify import verify_integrity

from .common import console, database_url_option, fail, json_option, open_engine, print_json

app = typer.Typer()


@contextmanager
def cancel_on_sigint(cancel: threading.Event) -> Iterator[None]:
    """Ctrl-C sets cancel instead of raising, so the scan stops at the next entry."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle_sigint(signum, frame):
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@app.command()
def chain(
    database_url: Optional[str] = database_url_option(),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Rows per round trip"),
    json_output: bool = json_option(),
):
    """
    Recompute and check every link of the hash chain.

    Exit code 0 if the chain is intact, 2 if tampering was found or the
    check could not complete.

    Examples:
        auditctl verify chain
        auditctl verify chain --json
    """
    store = SqlAuditStore(open_engine(database_url))
    cancel = threading.Event()
    try:
        with cancel_on_sigint(cancel):
            report = verify_integrity(
                store,
                batch_size=batch_size or Settings.from_env().verify_batch_size,
                cancel=cancel,
            )
    except VerificationCancelled as e:
        fail(str(e), json_output)

    if json_output:
        print_json(report.to_dict())
    else:
        colour = "green" if report.is_valid else "red"
        console.print(f"[{colour}]{report.message}[/{colour}]")
        if report.error:
            console.print(f"  [red]{report.error}[/red]")
        if report.tampered_entries:
            table = Table(title="Tampered or unverifiable entries")
            table.add_column("ID", style="cyan")
            table.add_column("Timestamp")
            table.add_column("Action", style="green")
            table.add_column("Issue", style="red")
            table.add_column("Stored (prefix)", style="dim")
            table.add_column("Expected (prefix)", style="dim")
            for t in report.tampered_entries:
                d = t.to_dict()
                table.add_row(
                    str(t.id),
                    d["timestamp"] or "N/A",
                    t.action,
                    t.issue,
                    (t.stored_previous_hash or "NULL")[:16],
                    t.expected_previous_hash[:16],
                )
            console.print(table)
        elif report.total_logs:
            console.print(f"  Verified: {report.verified_logs}/{report.total_logs}")

    if not report.is_valid:
        raise typer.Exit(2)


@app.command()
def immutability(
    database_url: Optional[str] = database_url_option(),
    json_output: bool = json_option(),
):
    """
    Check that the storage-level DELETE/UPDATE triggers are active.

    Examples:
        auditctl verify immutability --json
    """
    try:
        status = verify_immutability_status(open_engine(database_url))
    except AuditChainError as e:
        fail(str(e), json_output)

    if json_output:
        print_json(status.to_dict())
    else:
        table = Table(show_header=False, box=None)
        table.add_row("Delete protection", status.delete_protection)
        table.add_row("Update protection", status.update_protection)
        console.print(table)
        colour = "green" if status.is_fully_protected else "red"
        console.print(f"[{colour}]{status.message}[/{colour}]")

    if not status.is_fully_protected:
        raise typer.Exit(2)
