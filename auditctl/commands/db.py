"""
Startup command: init
"""

from typing import Optional

import typer
from rich.table import Table

from auditchain.core.errors import AuditChainError
from auditchain.migration import initialize_audit_log

from .common import console, database_url_option, fail, json_option, open_engine, print_json


def init_command(
    database_url: Optional[str] = database_url_option(),
    batch_size: int = typer.Option(1000, "--batch-size", help="Rows per backfill batch"),
    json_output: bool = json_option(),
):
    """
    Create the audit table, backfill legacy entries, install immutability triggers.

    Safe to run repeatedly.

    Examples:
        auditctl init
        auditctl init --database-url postgresql+psycopg://audit@db/clinic
    """
    try:
        report = initialize_audit_log(open_engine(database_url), batch_size=batch_size)
    except AuditChainError as e:
        fail(str(e), json_output)

    if json_output:
        print_json(report.to_dict())
        return

    table = Table(show_header=False, box=None)
    table.add_row("Table created", "yes" if report.created_table else "no (existing)")
    table.add_row("Entries backfilled", str(report.backfilled))
    table.add_row("Delete protection", report.immutability.delete_protection)
    table.add_row("Update protection", report.immutability.update_protection)
    console.print(table)
    console.print(f"[green]✓ {report.immutability.message}[/green]")
