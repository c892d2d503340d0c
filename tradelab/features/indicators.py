"""
Feature engineering: technical indicators.

Pure functions over a flat price array. Every function returns a float array of the
same length as its input, left-padded with NaN wherever there is not yet enough
history to compute a value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

PriceInput = Union[Sequence[float], np.ndarray, pd.Series]


@dataclass(frozen=True)
class MACDResult:
    macd_line: np.ndarray
    signal_line: np.ndarray
    histogram: np.ndarray


@dataclass(frozen=True)
class BollingerBands:
    middle: np.ndarray
    upper: np.ndarray
    lower: np.ndarray


def _as_array(prices: PriceInput) -> np.ndarray:
    if isinstance(prices, pd.Series):
        return prices.to_numpy(dtype=float, copy=True)
    return np.asarray(prices, dtype=float).copy()


def _nan_like(values: np.ndarray) -> np.ndarray:
    return np.full(values.shape[0], np.nan, dtype=float)


def sma(prices: PriceInput, period: int) -> np.ndarray:
    """
    Simple moving average of the trailing ``period`` values.

    Parameters
    ----------
    prices : sequence of float
        Price series (e.g., closing prices).
    period : int
        Window length.

    Returns
    -------
    np.ndarray
        SMA values, NaN for indices without a full window or when ``period <= 0``.
    """
    values = _as_array(prices)
    if period <= 0 or values.size < period:
        return _nan_like(values)
    rolled = pd.Series(values).rolling(window=period, min_periods=period).mean()
    return rolled.to_numpy(dtype=float)


def ema(prices: PriceInput, period: int) -> np.ndarray:
    """
    Exponential moving average seeded with the SMA of the first complete window.

    The seed is placed at the end of the first run of ``period`` consecutive
    non-NaN inputs. After seeding, ``ema[i] = price[i] * k + ema[i-1] * (1 - k)``
    with ``k = 2 / (period + 1)``. Once a NaN price is met the output stays NaN;
    there is no re-seeding mid-series.
    """
    values = _as_array(prices)
    out = _nan_like(values)
    if period <= 0 or values.size < period:
        return out

    seed_end: Optional[int] = None
    run = 0
    for i, price in enumerate(values):
        run = 0 if np.isnan(price) else run + 1
        if run == period:
            seed_end = i
            break
    if seed_end is None:
        return out

    k = 2.0 / (period + 1.0)
    out[seed_end] = float(values[seed_end - period + 1 : seed_end + 1].mean())
    for i in range(seed_end + 1, values.size):
        price = values[i]
        prev = out[i - 1]
        if np.isnan(price) or np.isnan(prev):
            break
        out[i] = price * k + prev * (1.0 - k)
    return out


def rsi(prices: PriceInput, period: int = 14) -> np.ndarray:
    """
    Compute Relative Strength Index (RSI) with Wilder smoothing.

    Parameters
    ----------
    prices : sequence of float
        Price series (e.g., closing prices).
    period : int, default 14
        Lookback period for RSI.

    Returns
    -------
    np.ndarray
        RSI values scaled 0-100. The first value sits at index ``period``; earlier
        indices are NaN. When the average loss is zero the RSI is 100.
    """
    values = _as_array(prices)
    out = _nan_like(values)
    if period <= 0 or values.size <= period:
        log.debug("RSI input too short (len=%s, period=%s)", values.size, period)
        return out

    changes = np.diff(values)
    gains = np.clip(changes, 0.0, None)
    losses = np.clip(-changes, 0.0, None)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, changes.size):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def macd(
    prices: PriceInput,
    short_period: int = 12,
    long_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """
    Moving Average Convergence Divergence.

    ``macd_line = EMA(short) - EMA(long)``, ``signal_line = EMA(macd_line, signal)``
    and ``histogram = macd_line - signal_line``. Invalid period combinations
    (``short >= long`` or any period ``<= 0``) produce all-NaN output.
    """
    values = _as_array(prices)
    if (
        short_period <= 0
        or long_period <= 0
        or signal_period <= 0
        or short_period >= long_period
    ):
        return MACDResult(_nan_like(values), _nan_like(values), _nan_like(values))

    macd_line = ema(values, short_period) - ema(values, long_period)
    signal_line = ema(macd_line, signal_period)
    histogram = macd_line - signal_line
    return MACDResult(macd_line=macd_line, signal_line=signal_line, histogram=histogram)


def bollinger_bands(
    prices: PriceInput, period: int = 20, std_dev_multiplier: float = 2.0
) -> BollingerBands:
    """
    Bollinger Bands around the SMA.

    Bands are ``middle +/- multiplier * sigma`` where sigma is the population
    standard deviation of the trailing window.
    """
    values = _as_array(prices)
    if period <= 0 or values.size < period:
        return BollingerBands(_nan_like(values), _nan_like(values), _nan_like(values))

    window = pd.Series(values).rolling(window=period, min_periods=period)
    middle = window.mean().to_numpy(dtype=float)
    sigma = window.std(ddof=0).to_numpy(dtype=float)
    upper = middle + sigma * std_dev_multiplier
    lower = middle - sigma * std_dev_multiplier
    return BollingerBands(middle=middle, upper=upper, lower=lower)


def highest_high(values: PriceInput, period: int, end_index: int) -> Optional[float]:
    """Max of the ``period`` values ending at ``end_index``; None if incomplete."""
    arr = _as_array(values)
    start = end_index - period + 1
    if period <= 0 or start < 0 or end_index >= arr.size:
        return None
    return float(arr[start : end_index + 1].max())


def lowest_low(values: PriceInput, period: int, end_index: int) -> Optional[float]:
    """Min of the ``period`` values ending at ``end_index``; None if incomplete."""
    arr = _as_array(values)
    start = end_index - period + 1
    if period <= 0 or start < 0 or end_index >= arr.size:
        return None
    return float(arr[start : end_index + 1].min())


__all__ = [
    "MACDResult",
    "BollingerBands",
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "highest_high",
    "lowest_low",
]
