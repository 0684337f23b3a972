"""
Helpers shared by auditctl commands.
"""

import json
from typing import Any, Optional

import typer
from rich.console import Console
from sqlalchemy.engine import Engine

from auditchain.config import Settings
from auditchain.log import SqlAuditStore, create_audit_engine

console = Console()


def database_url_option() -> Any:
    return typer.Option(
        None,
        "--database-url",
        "-d",
        help="SQLAlchemy database URL (default: AUDITCHAIN_DATABASE_URL)",
    )


def json_option() -> Any:
    return typer.Option(False, "--json", help="Output as JSON")


def open_engine(database_url: Optional[str]) -> Engine:
    return create_audit_engine(database_url or Settings.from_env().database_url)


def open_store(database_url: Optional[str]) -> SqlAuditStore:
    return SqlAuditStore(open_engine(database_url))


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def fail(message: str, json_output: bool, code: int = 2) -> None:
    """Report an error and exit with code."""
    if json_output:
        print_json({"error": message})
    else:
        console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code)
