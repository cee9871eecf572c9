"""Tests for CLI commands."""

import json
from decimal import Decimal
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tally.cli import app
from tally.core.errors import CurrencyError
from tally.core.units.currency import CurrencySnapshot, load_snapshot, save_snapshot


@pytest.fixture
def cli_runner():
    """Return a CLI test runner."""
    return CliRunner()


@pytest.fixture
def offline_config(tmp_path: Path) -> Path:
    """Config file that never touches the real rate cache."""
    path = tmp_path / "config.toml"
    path.write_text("[currency]\nenabled = false\n")
    return path


@pytest.fixture
def rates_config(tmp_path: Path) -> Path:
    """Config file pointing the rate cache into the temporary directory."""
    path = tmp_path / "config.toml"
    path.write_text(f'[currency]\nrates_file = "{(tmp_path / "rates.json").as_posix()}"\n')
    return path


@pytest.fixture
def sample_snapshot() -> CurrencySnapshot:
    return CurrencySnapshot(
        date="2024-03-15",
        base="USD",
        rates={"USD": Decimal(1), "EUR": Decimal("0.5"), "GBP": Decimal("0.25")},
    )


class TestEvalCommand:
    def test_single_expression(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(app, ["eval", "1 + 2", "--config", str(offline_config)])
        assert result.exit_code == 0
        assert result.output == "3\n"

    def test_lines_share_a_session(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["eval", "x = 4", "// note", "x * 2", "--config", str(offline_config)]
        )
        assert result.exit_code == 0
        assert result.output == "4\n8\n"

    def test_precision_option(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["eval", "1 / 3", "-p", "4", "--config", str(offline_config)]
        )
        assert result.output == "0.3333\n"

    def test_brackets_print_literally(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(app, ["eval", "[1, 2] + [3]", "-c", str(offline_config)])
        assert result.output == "[1, 2, 3]\n"

    def test_error_exits_with_status_1(
        self, cli_runner: CliRunner, offline_config: Path
    ) -> None:
        result = cli_runner.invoke(app, ["eval", "1 / 0", "--config", str(offline_config)])
        assert result.exit_code == 1
        assert "Division by zero" in result.output

    def test_json_output(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["eval", "5 km to m", "--json", "--config", str(offline_config)]
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "results": [{"input": "5 km to m", "result": "5000 m", "type": "quantity"}]
        }

    def test_json_error(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["eval", "2", "nope", "--json", "--config", str(offline_config)]
        )
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["results"] == [{"input": "2", "result": "2", "type": "number"}]
        assert data["error"] == "Undefined variable: nope"

    def test_invalid_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("precision = 99\n")
        result = cli_runner.invoke(app, ["eval", "1", "--config", str(path)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_currency_from_cache(
        self,
        cli_runner: CliRunner,
        rates_config: Path,
        tmp_path: Path,
        sample_snapshot: CurrencySnapshot,
    ) -> None:
        save_snapshot(sample_snapshot, tmp_path / "rates.json")
        result = cli_runner.invoke(app, ["eval", "10 USD to EUR", "--config", str(rates_config)])
        assert result.exit_code == 0
        assert result.output == "5 EUR\n"


class TestReplCommand:
    def test_session_and_quit(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app,
            ["repl", "--config", str(offline_config)],
            input="x = 2\nx * 21\n:quit\nnever evaluated\n",
        )
        assert result.exit_code == 0
        assert "42" in result.output
        assert "never evaluated" not in result.output

    def test_errors_do_not_end_session(
        self, cli_runner: CliRunner, offline_config: Path
    ) -> None:
        result = cli_runner.invoke(
            app, ["repl", "--config", str(offline_config)], input="1 +\n6 * 7\n"
        )
        assert result.exit_code == 0
        assert "Error:" in result.output
        assert "42" in result.output

    def test_vars_and_reset(self, cli_runner: CliRunner, offline_config: Path) -> None:
        result = cli_runner.invoke(
            app,
            ["repl", "--config", str(offline_config)],
            input="rate = 3\n:vars\n:reset\n:vars\n:q\n",
        )
        assert result.exit_code == 0
        assert "Variables" in result.output
        assert "rate" in result.output
        assert "Session reset" in result.output
        assert "No variables defined" in result.output


class TestCurrencyCommands:
    def test_show_empty(self, cli_runner: CliRunner, rates_config: Path) -> None:
        result = cli_runner.invoke(app, ["currency", "show", "--config", str(rates_config)])
        assert result.exit_code == 0
        assert "No currency rates cached" in result.output

    def test_show_snapshot(
        self,
        cli_runner: CliRunner,
        rates_config: Path,
        tmp_path: Path,
        sample_snapshot: CurrencySnapshot,
    ) -> None:
        save_snapshot(sample_snapshot, tmp_path / "rates.json")
        result = cli_runner.invoke(
            app, ["currency", "show", "--rates", "--config", str(rates_config)]
        )
        assert result.exit_code == 0
        assert "Snapshot date: 2024-03-15" in result.output
        assert "Base currency: USD" in result.output
        assert "GBP" in result.output
        assert "0.25" in result.output

    def test_refresh_saves_snapshot(
        self,
        cli_runner: CliRunner,
        rates_config: Path,
        tmp_path: Path,
        sample_snapshot: CurrencySnapshot,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        requested: list[str] = []

        def fake_fetch(url: str, base: str = "USD") -> CurrencySnapshot:
            requested.append(url)
            return sample_snapshot

        monkeypatch.setattr("tally.cli.currency.fetch_snapshot", fake_fetch)
        url = "https://rates.test/usd.json"
        result = cli_runner.invoke(
            app, ["currency", "refresh", "--url", url, "-c", str(rates_config)]
        )
        assert result.exit_code == 0
        assert "Saved 3 rates" in result.output
        assert requested == [url]
        assert load_snapshot(tmp_path / "rates.json") == sample_snapshot

    def test_refresh_failure(
        self, cli_runner: CliRunner, rates_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def failing_fetch(url: str, base: str = "USD") -> CurrencySnapshot:
            raise CurrencyError("Failed to fetch currency rates")

        monkeypatch.setattr("tally.cli.currency.fetch_snapshot", failing_fetch)
        result = cli_runner.invoke(app, ["currency", "refresh", "-c", str(rates_config)])
        assert result.exit_code == 1
        assert "Failed to fetch" in result.output


class TestGlobalOptions:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "tally version" in result.output

    def test_no_args_shows_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, [])
        assert "eval" in result.output
        assert "repl" in result.output
