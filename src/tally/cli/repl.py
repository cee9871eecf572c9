"""
Interactive calculator session.

Reads lines until ``:quit`` or end of input. Besides expressions the loop
understands a few colon commands:

- ``:vars``  list bound variables
- ``:reset`` forget variables and history
- ``:quit``  leave (also ``:q`` and ``:exit``)
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import typer
from rich.table import Table

from tally.cli.utils import console, open_session, print_error, print_result
from tally.core.engine import CalculatorSession
from tally.core.errors import TallyError
from tally.core.values import type_name

PROMPT = "> "
QUIT_COMMANDS = frozenset({":quit", ":q", ":exit"})


def repl_command(
    precision: int | None = typer.Option(
        None, "--precision", "-p", min=0, max=20, help="Decimal places to show"
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Config file (default: ~/.config/tally/config.toml)"
    ),
) -> None:
    """Start an interactive session."""
    session = open_session(config, precision)
    console.print("[bold]tally[/bold] [dim]:quit to exit, :vars, :reset[/dim]")
    run_repl(session, lambda: console.input(PROMPT))


def run_repl(session: CalculatorSession, read_line: Callable[[], str]) -> None:
    """Evaluate lines from ``read_line`` until a quit command or EOF."""
    while True:
        try:
            line = read_line()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return

        command = line.strip()
        if command in QUIT_COMMANDS:
            return
        if command == ":reset":
            session.reset()
            console.print("[dim]Session reset[/dim]")
            continue
        if command == ":vars":
            _show_variables(session)
            continue

        try:
            value = session.evaluate_line(line)
        except TallyError as e:
            print_error(e)
            continue
        if value is not None:
            text = session.format(value)
            if text:
                print_result(text)


def _show_variables(session: CalculatorSession) -> None:
    if not session.variables:
        console.print("[yellow]No variables defined[/yellow]")
        return
    table = Table(title="Variables")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Value")
    for name, value in session.variables.items():
        table.add_row(name, type_name(value), session.format(value))
    console.print(table)
