"""
Feature engineering package.

Exposes the rolling-window technical indicators consumed by strategies.
"""

from .indicators import (
    BollingerBands,
    MACDResult,
    bollinger_bands,
    ema,
    highest_high,
    lowest_low,
    macd,
    rsi,
    sma,
)

__all__ = [
    "BollingerBands",
    "MACDResult",
    "bollinger_bands",
    "ema",
    "highest_high",
    "lowest_low",
    "macd",
    "rsi",
    "sma",
]
