from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def get_str(name: str, default: str = "") -> str:
    """Return env var as a string with a sensible default."""
    value = os.getenv(name)
    return value if value not in (None, "") else default


def get_bool(name: str, default: bool = False) -> bool:
    """Coerce env var into bool (accepts 1/0, true/false, yes/no)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def get_int(name: str, default: int) -> int:
    """Coerce env var into int, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def get_float(name: str, default: float) -> float:
    """Coerce env var into float, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def get_csv(name: str, default: str = "") -> List[str]:
    """Parse comma-delimited strings into a list of trimmed tokens."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        raw = default
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


@dataclass(frozen=True)
class EnvSettings:
    """Runtime configuration sourced from environment variables."""

    #: Deployment environment label (local/test/prod).
    ENV: str = field(default_factory=lambda: get_str("ENV", "local"))
    #: Default log level for loguru sinks.
    LOG_LEVEL: str = field(default_factory=lambda: get_str("LOG_LEVEL", "INFO"))
    #: Directory holding <SYMBOL>.csv bar files for the CSV bar source.
    DATA_DIR: str = field(default_factory=lambda: get_str("TRADELAB_DATA_DIR", "data"))
    #: Default starting cash for batch runs that omit initialCash.
    DEFAULT_INITIAL_CASH: float = field(
        default_factory=lambda: get_float("TRADELAB_INITIAL_CASH", 10_000.0)
    )
    #: Symbols used by the suggestion service when none are passed.
    DEFAULT_SYMBOLS: List[str] = field(
        default_factory=lambda: get_csv("TRADELAB_SYMBOLS", "BTCUSDT,ETHUSDT")
    )
    #: Pretty-print JSON emitted by the batch runner.
    BATCH_PRETTY: bool = field(
        default_factory=lambda: get_bool("TRADELAB_BATCH_PRETTY", True)
    )
    #: Indent used when BATCH_PRETTY is enabled.
    BATCH_INDENT: int = field(default_factory=lambda: get_int("TRADELAB_BATCH_INDENT", 2))


ENV = EnvSettings()
