"""
Audit log commands: tail, query
"""

from datetime import datetime
from typing import List, Optional

import typer
from rich.table import Table

from auditchain.core.entry import AuditLogEntry, AuditStatus
from auditchain.core.errors import AuditChainError
from auditchain.query import AuditQuery, query_entries

from .common import console, database_url_option, fail, json_option, open_store, print_json

app = typer.Typer()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


def _entries_table(title: str, entries: List[AuditLogEntry]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Timestamp")
    table.add_column("Actor", style="yellow")
    table.add_column("Action", style="green")
    table.add_column("Resource")
    table.add_column("Status")
    table.add_column("Prev hash (prefix)", style="dim")
    for e in entries:
        resource = "/".join(x for x in (e.resource_type, e.resource_id) if x) or "-"
        table.add_row(
            str(e.id),
            e.to_dict()["timestamp"],
            e.actor_email or e.actor_id or "-",
            e.action,
            resource,
            e.status,
            (e.previous_hash or "")[:16] if e.previous_hash is not None else "NULL",
        )
    return table


@app.command()
def tail(
    database_url: Optional[str] = database_url_option(),
    lines: int = typer.Option(20, "--lines", "-n", help="Number of entries to show"),
    json_output: bool = json_option(),
):
    """
    Show the newest audit entries.

    Examples:
        auditctl log tail
        auditctl log tail --lines 5 --json
    """
    try:
        entries = open_store(database_url).recent(lines)
    except AuditChainError as e:
        fail(str(e), json_output)

    if json_output:
        print_json({"entries": [e.to_dict() for e in entries], "count": len(entries)})
        return
    if not entries:
        console.print("[yellow]Audit log is empty[/yellow]")
        return
    console.print(_entries_table("Audit log (newest first)", entries))


@app.command()
def query(
    database_url: Optional[str] = database_url_option(),
    actor_id: Optional[str] = typer.Option(None, "--actor-id", help="Exact actor id"),
    start: Optional[datetime] = typer.Option(None, "--start", formats=DATE_FORMATS, help="From (inclusive, UTC)"),
    end: Optional[datetime] = typer.Option(None, "--end", formats=DATE_FORMATS, help="Until (inclusive, UTC)"),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Case-insensitive substring of action"),
    resource_type: Optional[str] = typer.Option(None, "--resource-type", "-r"),
    status: Optional[AuditStatus] = typer.Option(None, "--status", "-s"),
    page: int = typer.Option(1, "--page"),
    limit: int = typer.Option(50, "--limit", help="Entries per page (1-1000)"),
    json_output: bool = json_option(),
):
    """
    Filter the audit log, newest first.

    Examples:
        auditctl log query --actor-id 42 --start 2024-01-01
        auditctl log query --action phi --status failure --json
    """
    q = AuditQuery(
        actor_id=actor_id,
        start_date=start,
        end_date=end,
        action=action,
        resource_type=resource_type,
        status=status.value if status is not None else None,
        page=page,
        limit=limit,
    )
    try:
        result = query_entries(open_store(database_url), q)
    except AuditChainError as e:
        fail(str(e), json_output)

    if json_output:
        print_json(result.to_dict())
        return
    console.print(_entries_table("Audit log query", result.entries))
    console.print(
        f"\n[bold]Page[/bold] {result.page}/{max(result.total_pages, 1)}  "
        f"[bold]Total[/bold] {result.total}"
    )
