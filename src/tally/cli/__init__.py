"""
tally CLI Package.

- repl.py: interactive session
- currency.py: currency snapshot management
- utils.py: shared utilities

The ``tally`` console script runs ``main``.
"""

from __future__ import annotations

from pathlib import Path

import typer

from tally.cli.utils import (
    configure_logging,
    console,
    open_session,
    print_error,
    print_result,
    version_callback,
)
from tally.core.errors import TallyError
from tally.core.values import type_name

app = typer.Typer(
    help="""tally - calculator language with units, currencies and dates

Examples:
  tally eval "5 km to mi"
  tally eval "price = 20 EUR" "price * 3 in USD"
  tally repl
""",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and environment information",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr"),
) -> None:
    """tally CLI main callback for global options."""
    configure_logging(verbose)


@app.command(name="eval")
def eval_command(
    expressions: list[str] = typer.Argument(..., help="Lines to evaluate, in order"),
    precision: int | None = typer.Option(
        None, "--precision", "-p", min=0, max=20, help="Decimal places to show"
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Config file (default: ~/.config/tally/config.toml)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """
    Evaluate expressions in one session.

    Variables and history carry from one expression to the next. Stops
    with status 1 at the first error.
    """
    session = open_session(config, precision)
    results: list[dict[str, str]] = []

    for line in expressions:
        try:
            value = session.evaluate_line(line)
        except TallyError as e:
            if json_output:
                console.print_json(data={"results": results, "error": e.message})
            else:
                print_error(e)
            raise typer.Exit(code=1) from e
        if value is None:
            continue
        text = session.format(value)
        if json_output:
            results.append({"input": line, "result": text, "type": type_name(value)})
        elif text:
            print_result(text)

    if json_output:
        console.print_json(data={"results": results})


# =============================================================================
# Sub-commands
# =============================================================================
from tally.cli.currency import currency_app  # noqa: E402
from tally.cli.repl import repl_command  # noqa: E402

app.command(name="repl")(repl_command)
app.add_typer(currency_app, name="currency")


def main() -> None:
    """Entry point for the ``tally`` console script."""
    app()


__all__ = ["app", "main"]
