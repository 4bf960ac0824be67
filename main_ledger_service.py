"""Mini README: Entry point CLI for the TTO ledger service.

This script exposes a Typer CLI with two commands:
    * run - start the FastAPI application with uvicorn.
    * summary - print a project's financial summary from the demo data.

Settings come from ``TTOLEDGER_*`` environment variables (or ``.env``) and
command-line options override them.
"""

from __future__ import annotations

import json

import typer
import uvicorn

from ttoledger.configuration import get_settings
from ttoledger.errors import LedgerError
from ttoledger.logging_utils import configure_root_logger
from ttoledger.service import build_demo_service

cli = typer.Typer(help="Launch and inspect the TTO ledger service.")


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # 0.0.0.0 is a bind address, not something a browser can open.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting TTO ledger on {effective_host}:{effective_port}.\n"
        f"API docs at http://{browser_host}:{effective_port}/docs"
    )
    uvicorn.run(
        "ttoledger.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command()
def summary(project_id: str = typer.Argument(..., help="Project identifier, e.g. prj_0001.")) -> None:
    """Print the financial summary and team allocations of a demo project."""

    settings = get_settings()
    configure_root_logger(settings.log_level)
    service = build_demo_service(settings)
    try:
        overview = service.summarize_project(project_id)
    except LedgerError as error:
        typer.echo(f"{error.code}: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(overview.as_dict(), indent=2))


if __name__ == "__main__":
    cli()
