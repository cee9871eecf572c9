"""
Currency rate snapshots.

A snapshot is an immutable, point-in-time table of exchange rates: for each
ISO code, how many units of that currency one unit of the base currency
buys. The calculator core only ever reads ``snapshot.rates``. Loading,
saving, and fetching live here so the core never performs I/O.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tally.core.decimal_math import ONE, to_decimal
from tally.core.errors import CurrencyError
from tally.core.units.tables import CURRENCY_CODE_RE

logger = logging.getLogger(__name__)


class CurrencySnapshot(BaseModel):
    """Exchange rates relative to ``base`` as of ``date``."""

    date: str = Field(default="", description="ISO date the rates were published")
    base: str = Field(default="USD", description="Base currency code")
    rates: dict[str, Decimal] = Field(
        default_factory=dict, description="Units of each currency per one base unit"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.rates

    def published_at(self) -> datetime | None:
        if not self.date:
            return None
        try:
            return datetime.fromisoformat(self.date).replace(tzinfo=UTC)
        except ValueError:
            return None


def parse_snapshot(data: dict[str, Any], base: str = "USD") -> CurrencySnapshot:
    """
    Build a snapshot from either the cached format or the upstream API format.

    Cached format: ``{"date": ..., "base": ..., "rates": {"EUR": "0.92"}}``.
    Upstream format: ``{"date": ..., "usd": {"eur": 0.92, ...}}``.

    Raises:
        CurrencyError: If no rate table can be found.
    """
    base = str(data.get("base", base)).upper()
    raw = data.get("rates")
    if raw is None:
        raw = data.get(base.lower())
    if not isinstance(raw, dict):
        raise CurrencyError(f"No '{base.lower()}' or 'rates' table in currency data")

    rates: dict[str, Decimal] = {}
    for code, rate in raw.items():
        code = str(code).upper()
        if not CURRENCY_CODE_RE.match(code):
            continue
        try:
            value = to_decimal(rate)
        except (ValueError, TypeError, InvalidOperation):
            logger.debug(f"Skipping non-numeric rate for {code}: {rate!r}")
            continue
        if value > 0:
            rates[code] = value
    rates[base] = ONE

    try:
        return CurrencySnapshot(date=str(data.get("date", "")), base=base, rates=rates)
    except ValidationError as e:
        raise CurrencyError(f"Invalid currency data: {e}") from e


def load_snapshot(path: Path, base: str = "USD") -> CurrencySnapshot:
    """
    Load a cached snapshot.

    Returns an empty snapshot when the file does not exist; an empty
    snapshot is a valid state in which every currency lookup fails.

    Raises:
        CurrencyError: If the file exists but cannot be parsed.
    """
    if not path.exists():
        logger.debug(f"No currency snapshot at {path}")
        return CurrencySnapshot(base=base)

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise CurrencyError(f"Cannot read currency snapshot {path}: {e}") from e
    if not isinstance(data, dict):
        raise CurrencyError(f"Currency snapshot {path} is not a JSON object")

    snapshot = parse_snapshot(data, base)
    logger.debug(f"Loaded {len(snapshot.rates)} currency rates dated {snapshot.date or '?'}")
    return snapshot


def save_snapshot(snapshot: CurrencySnapshot, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2))


def fetch_snapshot(
    url: str,
    base: str = "USD",
    client: httpx.Client | None = None,
    timeout: float = 10.0,
) -> CurrencySnapshot:
    """
    Download a fresh snapshot.

    Args:
        url: Rate source returning the upstream JSON format
        base: Base currency the source is priced in
        client: Optional preconfigured client (used by tests)
        timeout: HTTP timeout in seconds when no client is given

    Raises:
        CurrencyError: On any HTTP or decoding failure.
    """
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = http.get(url)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as e:
        raise CurrencyError(f"Failed to fetch currency rates from {url}: {e}") from e
    except ValueError as e:
        raise CurrencyError(f"Currency source {url} did not return JSON") from e
    finally:
        if owns_client:
            http.close()

    if not isinstance(data, dict):
        raise CurrencyError(f"Currency source {url} did not return a JSON object")
    snapshot = parse_snapshot(data, base)
    logger.info(f"Fetched {len(snapshot.rates)} currency rates dated {snapshot.date or '?'}")
    return snapshot


def is_stale(snapshot: CurrencySnapshot, max_age_hours: int, now: datetime | None = None) -> bool:
    """True when the snapshot is undated or older than ``max_age_hours``."""
    published = snapshot.published_at()
    if published is None:
        return True
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return current - published > timedelta(hours=max_age_hours)
