"""
catchcoupling Command Line Interface (CLI)

Couples the catches of a fishery database with environmental parameters and
prints the joined table, or copies it into a new table. Also lists the
parameters, operations and SQL templates the database is configured with.
"""

import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from catchcoupling.core.database import FisheryDatabase
from catchcoupling.core.settings import CouplingSettings
from catchcoupling.core.templates import QueryTemplates
from catchcoupling.errors import CouplingError
from catchcoupling.models.catch import CENTER

app = typer.Typer(rich_markup_mode="markdown")
console = Console()


def get_database(db: Optional[str] = None) -> FisheryDatabase:
    """Open the database named on the command line, or the configured one."""
    settings = CouplingSettings.from_env()
    try:
        return FisheryDatabase(db, settings=settings)
    except SQLAlchemyError as exc:
        console.print(f"[red]Cannot open database: {exc}[/red]")
        raise typer.Exit(1)


def _render_names(title: str, names: List[str]) -> None:
    if not names:
        console.print(f"[yellow]No {title.lower()} found.[/yellow]")
        return
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    for name in names:
        table.add_row(name)
    console.print(table)


@app.command()
def couple(
    parameters: List[str] = typer.Option(
        [], "-p", "--parameter", help="Parameter name (repeatable)."
    ),
    operations: List[str] = typer.Option(
        [], "-o", "--operation", help="Operation name (repeatable)."
    ),
    time_lags: List[int] = typer.Option(
        [], "-t", "--time-lag", help="Time lag in days (repeatable)."
    ),
    position: int = typer.Option(CENTER, help="Relative position along the catch."),
    count: int = typer.Option(20, "--count", help="Maximum rows to print."),
    copy_to: Optional[str] = typer.Option(
        None, "--copy-to", help="Copy the rows into this new table instead."
    ),
    db: Optional[str] = typer.Option(None, "--db", help="Database URL."),
) -> None:
    """Join catches with every operation x parameter x time lag combination."""
    if not (parameters or operations or time_lags):
        console.print("[yellow]Nothing to couple: give -p, -o and -t.[/yellow]")
        raise typer.Exit(1)

    with get_database(db) as database:
        try:
            with database.get_environment_table() as table:
                for operation in operations:
                    for parameter in parameters:
                        for time_lag in time_lags:
                            table.add_parameter(parameter, operation, position, time_lag)
                if copy_to:
                    copied = table.copy_to_table(copy_to)
                    console.print(f"[green]✓ Copied {copied} row(s) to {copy_to}[/green]")
                else:
                    table.print_table(sys.stdout, max_rows=count)
        except (CouplingError, SQLAlchemyError) as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(1)


@app.command()
def parameters(
    db: Optional[str] = typer.Option(None, "--db", help="Database URL."),
) -> None:
    """List the environmental parameters known to the database."""
    with get_database(db) as database:
        _render_names("Parameters", database.list_parameters())


@app.command()
def operations(
    db: Optional[str] = typer.Option(None, "--db", help="Database URL."),
) -> None:
    """List the operations applicable to parameters."""
    with get_database(db) as database:
        _render_names("Operations", database.list_operations())


@app.command()
def templates() -> None:
    """Show the SQL templates in effect, marking the overridden ones."""
    store = QueryTemplates.from_settings(CouplingSettings.from_env())
    table = Table(title="SQL Templates")
    table.add_column("Key", style="cyan")
    table.add_column("SQL")
    table.add_column("Source", style="dim")
    for key in store:
        source = "[yellow]override[/yellow]" if store.is_overridden(key) else "default"
        table.add_row(key, store[key], source)
    console.print(table)


if __name__ == "__main__":
    app()
