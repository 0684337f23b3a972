#!/usr/bin/env python3
"""
auditctl - tamper-evident audit log operations

Main entrypoint for the auditctl command-line tool.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from auditchain.config import Settings
from auditchain.logging_config import setup_logging
from auditchain.metrics import start_metrics_server
from auditctl.commands import checkpoint, db, log, verify

app = typer.Typer(
    name="auditctl",
    help="Tamper-evident audit log CLI",
    add_completion=False,
)

console = Console()

app.add_typer(verify.app, name="verify", help="Chain integrity and immutability checks")
app.add_typer(log.app, name="log", help="Read the audit log")
app.add_typer(checkpoint.app, name="checkpoint", help="Signed external anchors")

app.command("init")(db.init_command)


@app.callback()
def configure(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Operational log level"),
    log_format: Optional[str] = typer.Option("text", "--log-format", help="json or text"),
):
    setup_logging(level=log_level, fmt=log_format)
    settings = Settings.from_env()
    start_metrics_server(settings.metrics_enabled, settings.metrics_port)


@app.command()
def version():
    """Show version information."""
    from auditctl import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]auditctl[/bold]", f"v{__version__}")
    table.add_row("Hash", "SHA-256, canonical JSON")
    table.add_row("Anchors", "Ed25519")

    console.print(table)


def main():
    app()


if __name__ == "__main__":
    main()
