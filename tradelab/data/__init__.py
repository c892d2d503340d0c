"""Bar sources consumed by the backtest engine."""

from .source import (
    BarSource,
    CsvBarSource,
    InMemoryBarSource,
    bars_from_dataframe,
    bars_to_dataframe,
)

__all__ = [
    "BarSource",
    "CsvBarSource",
    "InMemoryBarSource",
    "bars_from_dataframe",
    "bars_to_dataframe",
]
