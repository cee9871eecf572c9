"""
tally CLI utilities.

Shared helpers used across CLI modules.
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from tally._version import get_version
from tally.core.config import CalculatorConfig, load_config
from tally.core.engine import CalculatorSession
from tally.core.errors import TallyError

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"tally version {get_version()}")
        typer.echo(f"  Python:   {platform.python_implementation()} {platform.python_version()}")
        typer.echo(f"  Platform: {platform.system()} {platform.release()}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def resolve_config(config_path: Path | None, precision: int | None = None) -> CalculatorConfig:
    """Load configuration, applying a ``--precision`` override."""
    config = load_config(config_path)
    if precision is not None:
        config = config.model_copy(update={"precision": precision})
    return config


def open_session(config_path: Path | None, precision: int | None = None) -> CalculatorSession:
    """Create a session, or exit with status 1 if config or rates are unusable."""
    try:
        return CalculatorSession(resolve_config(config_path, precision))
    except TallyError as e:
        print_error(e)
        raise typer.Exit(code=1) from e


def print_error(error: TallyError) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(error))}", highlight=False)


def print_result(text: str) -> None:
    console.print(text, markup=False, highlight=False)
