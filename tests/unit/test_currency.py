"""Tests for currency rate snapshots: parsing, caching, fetching."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import httpx
import pytest

from tally.core.errors import CurrencyError
from tally.core.units.currency import (
    CurrencySnapshot,
    fetch_snapshot,
    is_stale,
    load_snapshot,
    parse_snapshot,
    save_snapshot,
)

UPSTREAM = {
    "date": "2024-03-15",
    "usd": {"eur": 0.92, "gbp": 0.79, "1inch": 3.2, "jpy": "n/a", "usd": 1},
}


class TestParseSnapshot:
    """Both the upstream and the cached layouts are accepted."""

    def test_upstream_format(self) -> None:
        snapshot = parse_snapshot(UPSTREAM)
        assert snapshot.date == "2024-03-15"
        assert snapshot.base == "USD"
        assert snapshot.rates == {
            "EUR": Decimal("0.92"),
            "GBP": Decimal("0.79"),
            "USD": Decimal(1),
        }

    def test_cached_format(self) -> None:
        data = {"date": "2024-03-15", "base": "EUR", "rates": {"USD": "1.09", "EUR": "3"}}
        snapshot = parse_snapshot(data)
        assert snapshot.base == "EUR"
        assert snapshot.rates == {"USD": Decimal("1.09"), "EUR": Decimal(1)}

    def test_non_positive_rates_dropped(self) -> None:
        snapshot = parse_snapshot({"rates": {"AAA": 0, "BBB": -1, "CCC": 2}})
        assert set(snapshot.rates) == {"CCC", "USD"}

    def test_missing_table(self) -> None:
        with pytest.raises(CurrencyError, match="No 'usd' or 'rates' table"):
            parse_snapshot({"date": "2024-03-15"})


class TestSnapshotFiles:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "rates.json"
        original = parse_snapshot(UPSTREAM)
        save_snapshot(original, path)
        assert load_snapshot(path) == original

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        snapshot = load_snapshot(tmp_path / "absent.json", "EUR")
        assert snapshot.is_empty
        assert snapshot.base == "EUR"

    def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rates.json"
        path.write_text("{not json")
        with pytest.raises(CurrencyError, match="Cannot read currency snapshot"):
            load_snapshot(path)

    def test_non_object_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rates.json"
        path.write_text(json.dumps([1, 2, 3]))
        with pytest.raises(CurrencyError, match="not a JSON object"):
            load_snapshot(path)


class TestFetchSnapshot:
    """HTTP fetching goes through an injectable httpx client."""

    def test_fetch(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/usd.json"
            return httpx.Response(200, json=UPSTREAM)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            snapshot = fetch_snapshot("https://rates.test/usd.json", client=client)
        assert snapshot.rates["EUR"] == Decimal("0.92")

    def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CurrencyError, match="Failed to fetch"):
                fetch_snapshot("https://rates.test/usd.json", client=client)

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CurrencyError, match="Failed to fetch"):
                fetch_snapshot("https://rates.test/usd.json", client=client)

    def test_not_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CurrencyError, match="did not return JSON"):
                fetch_snapshot("https://rates.test/usd.json", client=client)


class TestStaleness:
    NOW = datetime(2024, 3, 16, 12, 0, tzinfo=UTC)

    def test_fresh(self) -> None:
        snapshot = CurrencySnapshot(date="2024-03-16")
        assert not is_stale(snapshot, 24, now=self.NOW)

    def test_old(self) -> None:
        snapshot = CurrencySnapshot(date="2024-03-14")
        assert is_stale(snapshot, 24, now=self.NOW)

    def test_undated(self) -> None:
        assert is_stale(CurrencySnapshot(), 24, now=self.NOW)

    def test_naive_now_is_utc(self) -> None:
        snapshot = CurrencySnapshot(date="2024-03-16")
        assert not is_stale(snapshot, 24, now=datetime(2024, 3, 16, 12, 0))
