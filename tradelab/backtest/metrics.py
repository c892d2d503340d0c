# tradelab/backtest/metrics.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from loguru import logger

TRADING_DAYS = 252


@dataclass
class EquityMetrics:
    periods: int
    total_return: float
    sharpe: float
    max_drawdown: float


# -------- Internals --------
def _to_curve(values: Sequence[float] | pd.Series) -> pd.Series:
    s = values if isinstance(values, pd.Series) else pd.Series(list(values), dtype=float)
    return s.astype(float).reset_index(drop=True)


# -------- Public API --------
def period_returns(values: Sequence[float] | pd.Series) -> pd.Series:
    """
    Simple per-period returns of an equity curve.

    A period whose previous value is zero contributes a return of 0.
    """
    curve = _to_curve(values)
    if len(curve) < 2:
        return pd.Series(dtype=float)
    prev = curve.shift(1).iloc[1:]
    cur = curve.iloc[1:]
    rets = (cur - prev) / prev.where(prev != 0)
    return rets.fillna(0.0).astype(float).reset_index(drop=True)


def sharpe_ratio(
    values: Sequence[float] | pd.Series, *, periods_per_year: int = TRADING_DAYS
) -> float:
    """
    Annualised Sharpe ratio of an equity curve.

    Uses the sample standard deviation (n-1) of per-period returns, scaled by
    ``sqrt(periods_per_year)``. Fewer than two returns or zero deviation give 0.
    """
    rets = period_returns(values)
    if len(rets) < 2:
        return 0.0
    std = float(rets.std(ddof=1))
    if not std > 0:
        return 0.0
    return float(rets.mean()) / std * math.sqrt(periods_per_year)


def max_drawdown(values: Sequence[float] | pd.Series) -> float:
    """Largest peak-to-trough decline as a positive fraction of the peak."""
    curve = _to_curve(values)
    if curve.empty:
        return 0.0
    peak = curve.cummax()
    dd = (peak - curve) / peak.where(peak > 0)
    worst = dd.max()
    return float(worst) if pd.notna(worst) else 0.0


def equity_stats(
    values: Sequence[float] | pd.Series, *, periods_per_year: int = TRADING_DAYS
) -> EquityMetrics:
    curve = _to_curve(values)
    if curve.empty:
        return EquityMetrics(0, 0.0, 0.0, 0.0)
    start = float(curve.iloc[0])
    total_ret = float(curve.iloc[-1] / start - 1.0) if start != 0 else 0.0
    sharpe = sharpe_ratio(curve, periods_per_year=periods_per_year)
    mdd = max_drawdown(curve)
    logger.debug(
        "[metrics] n={} tot={:.4f} sharpe={:.3f} maxDD={:.4f}",
        len(curve),
        total_ret,
        sharpe,
        mdd,
    )
    return EquityMetrics(
        periods=len(curve), total_return=total_ret, sharpe=sharpe, max_drawdown=mdd
    )


def sample_sharpe(returns: Sequence[float], *, zero_std_sentinel: float) -> float:
    """
    Mean over sample standard deviation of raw per-bar returns, not annualised.

    Zero deviation yields ``+/- zero_std_sentinel`` signed by the mean, or 0 when
    the mean is also 0. Fewer than two returns give 0.
    """
    arr = np.asarray(list(returns), dtype=float)
    if arr.size < 2:
        return 0.0
    mean = float(arr.mean())
    std = float(arr.std(ddof=1))
    if std == 0 or not np.isfinite(std):
        if mean > 0:
            return float(zero_std_sentinel)
        if mean < 0:
            return -float(zero_std_sentinel)
        return 0.0
    return mean / std
