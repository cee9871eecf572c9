"""
Calculator configuration models.

Parses ``config.toml`` (by default ``~/.config/tally/config.toml``) into a
typed ``CalculatorConfig``. The configuration is handed to the session and
evaluator explicitly; nothing in the core reads it from global state.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tally.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TALLY_CONFIG"
DEFAULT_CONFIG_DIR = Path("~/.config/tally")
DEFAULT_RECURSION_LIMIT = 1000
DEFAULT_RATES_URL = (
    "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.json"
)


class CurrencyConfig(BaseModel):
    """Currency snapshot settings."""

    enabled: bool = Field(default=True, description="Load the rate snapshot at startup")
    base: str = Field(default="USD", description="Base code the snapshot is priced in")
    rates_file: Path = Field(
        default=DEFAULT_CONFIG_DIR / "rates.json",
        description="Cached snapshot location",
    )
    source_url: str = Field(default=DEFAULT_RATES_URL, description="Where refresh fetches from")
    max_age_hours: int = Field(default=24, ge=1, description="Age after which rates are stale")

    model_config = ConfigDict(frozen=True)

    @property
    def resolved_rates_file(self) -> Path:
        return self.rates_file.expanduser()


class CalculatorConfig(BaseModel):
    """Top-level calculator configuration."""

    precision: int = Field(default=2, ge=0, le=20, description="Decimal places shown")
    recursion_limit: int = Field(
        default=DEFAULT_RECURSION_LIMIT,
        ge=1,
        description="Maximum call depth for a named function",
    )
    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)

    model_config = ConfigDict(frozen=True)


def default_config_path() -> Path:
    """Config path from ``TALLY_CONFIG`` or the per-user default."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return (DEFAULT_CONFIG_DIR / "config.toml").expanduser()


def load_config(toml_path: Path | None = None) -> CalculatorConfig:
    """
    Load calculator configuration from a TOML file.

    Args:
        toml_path: Path to the config file. Defaults to ``default_config_path()``.

    Returns:
        CalculatorConfig with parsed values or defaults when the file is absent.

    Raises:
        ConfigError: If the file is not valid TOML or fails validation.
    """
    path = toml_path or default_config_path()
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return CalculatorConfig()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    config_dict: dict[str, Any] = {}
    for key in ("precision", "recursion_limit"):
        if key in data:
            config_dict[key] = data[key]

    if "currency" in data:
        currency_data = data["currency"]
        config_dict["currency"] = {
            key: currency_data[key]
            for key in ("enabled", "base", "rates_file", "source_url", "max_age_hours")
            if key in currency_data
        }

    try:
        config = CalculatorConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.debug(f"Loaded config from {path}")
    return config
