"""
Currency snapshot CLI commands.

- show:    Show the cached snapshot's date, size, and staleness
- refresh: Download a fresh snapshot and cache it
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from tally.cli.utils import console, print_error, resolve_config
from tally.core.errors import TallyError
from tally.core.units.currency import fetch_snapshot, is_stale, load_snapshot, save_snapshot

currency_app = typer.Typer(
    help="Currency exchange-rate snapshot commands",
    no_args_is_help=True,
)


@currency_app.command(name="show")
def show_command(
    config: Path | None = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Config file (default: ~/.config/tally/config.toml)"
    ),
    rates: bool = typer.Option(False, "--rates", help="List every rate"),
) -> None:
    """Show the cached currency snapshot."""
    try:
        settings = resolve_config(config).currency
        snapshot = load_snapshot(settings.resolved_rates_file, settings.base)
    except TallyError as e:
        print_error(e)
        raise typer.Exit(code=1) from e

    if snapshot.is_empty:
        console.print(
            f"[yellow]No currency rates cached at {settings.resolved_rates_file}[/yellow]"
        )
        console.print("Run [cyan]tally currency refresh[/cyan] to download them.")
        return

    console.print(f"Snapshot date: [green]{snapshot.date or 'unknown'}[/green]")
    console.print(f"Base currency: {snapshot.base}")
    console.print(f"Rates:         {len(snapshot.rates)}")
    if is_stale(snapshot, settings.max_age_hours):
        console.print(
            f"[yellow]Snapshot is older than {settings.max_age_hours}h; "
            "run tally currency refresh[/yellow]"
        )

    if rates:
        table = Table(title=f"Units per 1 {snapshot.base}")
        table.add_column("Code", style="cyan")
        table.add_column("Rate", justify="right")
        for code in sorted(snapshot.rates):
            table.add_row(code, str(snapshot.rates[code]))
        console.print(table)


@currency_app.command(name="refresh")
def refresh_command(
    url: str | None = typer.Option(None, "--url", help="Rate source (default: from config)"),
    config: Path | None = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Config file (default: ~/.config/tally/config.toml)"
    ),
) -> None:
    """Download a fresh currency snapshot."""
    try:
        settings = resolve_config(config).currency
        snapshot = fetch_snapshot(url or settings.source_url, settings.base)
    except TallyError as e:
        print_error(e)
        raise typer.Exit(code=1) from e

    target = settings.resolved_rates_file
    save_snapshot(snapshot, target)
    console.print(
        f"[green]Saved {len(snapshot.rates)} rates dated {snapshot.date or 'unknown'} "
        f"to {target}[/green]"
    )
