from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from tradelab.features.indicators import highest_high, lowest_low
from tradelab.strats.base import (
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySignal,
)


@dataclass(frozen=True)
class IchimokuLines:
    tenkan: Optional[float]
    kijun: Optional[float]
    span_a: Optional[float]
    span_b: Optional[float]
    chikou: Optional[float]
    future_span_a: Optional[float]
    future_span_b: Optional[float]

    def complete(self) -> bool:
        # zero is treated as missing
        return all(
            v
            for v in (
                self.tenkan,
                self.kijun,
                self.span_a,
                self.span_b,
                self.chikou,
                self.future_span_a,
                self.future_span_b,
            )
        )


def _midpoint(
    highs: np.ndarray, lows: np.ndarray, period: int, idx: int
) -> Optional[float]:
    hi = highest_high(highs, period, idx)
    lo = lowest_low(lows, period, idx)
    if hi is None or lo is None:
        return None
    return (hi + lo) / 2.0


def ichimoku_lines(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    idx: int,
    *,
    tenkan_period: int,
    kijun_period: int,
    span_b_period: int,
    chikou_lag: int,
    displacement: int,
) -> IchimokuLines:
    """
    Ichimoku components as seen at bar ``idx``.

    The current cloud is the one projected ``displacement`` bars ago; the future
    cloud is the one projected from ``idx``.
    """
    tenkan = _midpoint(highs, lows, tenkan_period, idx)
    kijun = _midpoint(highs, lows, kijun_period, idx)
    chikou = float(closes[idx - chikou_lag]) if idx >= chikou_lag else None

    span_a = span_b = None
    past = idx - displacement
    if past >= 0:
        past_tenkan = _midpoint(highs, lows, tenkan_period, past)
        past_kijun = _midpoint(highs, lows, kijun_period, past)
        if past_tenkan is not None and past_kijun is not None:
            span_a = (past_tenkan + past_kijun) / 2.0
        span_b = _midpoint(highs, lows, span_b_period, past)

    future_a = None
    if tenkan is not None and kijun is not None:
        future_a = (tenkan + kijun) / 2.0
    future_b = _midpoint(highs, lows, span_b_period, idx)
    return IchimokuLines(tenkan, kijun, span_a, span_b, chikou, future_a, future_b)


class IchimokuCloudStrategy(Strategy):
    """Trend following on Tenkan/Kijun crosses confirmed by the cloud."""

    id = "ichimoku-cloud"
    name = "Ichimoku Cloud Strategy"
    description = (
        "Trend-following strategy on the Ichimoku Kinko Hyo indicator: Tenkan/Kijun "
        "crosses confirmed by price, Chikou and the projected cloud."
    )
    parameters = (
        StrategyParameterDefinition("tenkanPeriod", "Tenkan-sen Period", "number", 9),
        StrategyParameterDefinition("kijunPeriod", "Kijun-sen Period", "number", 26),
        StrategyParameterDefinition(
            "senkouSpanBPeriod", "Senkou Span B Period", "number", 52
        ),
        StrategyParameterDefinition(
            "chikouLaggingPeriod", "Chikou Span Lag Period", "number", 26
        ),
        StrategyParameterDefinition(
            "senkouCloudDisplacement", "Cloud Displacement", "number", 26
        ),
        StrategyParameterDefinition(
            "tradeAmount",
            "Trade Amount",
            "number",
            1,
            description="Number of shares to trade or units of asset.",
        ),
    )

    async def decide(self, context: StrategyContext) -> StrategySignal:
        p = context.parameters
        periods = dict(
            tenkan_period=int(p["tenkanPeriod"]),
            kijun_period=int(p["kijunPeriod"]),
            span_b_period=int(p["senkouSpanBPeriod"]),
            chikou_lag=int(p["chikouLaggingPeriod"]),
            displacement=int(p["senkouCloudDisplacement"]),
        )
        amount = float(p["tradeAmount"])

        idx = context.current_index
        warmup = (
            max(periods["tenkan_period"], periods["kijun_period"], periods["span_b_period"])
            + periods["chikou_lag"]
            + periods["displacement"]
        )
        if idx < warmup:
            return StrategySignal.hold()

        highs, lows, closes = context.highs(), context.lows(), context.closes()
        now = ichimoku_lines(highs, lows, closes, idx, **periods)
        prev = ichimoku_lines(highs, lows, closes, idx - 1, **periods)
        if not now.complete() or not prev.tenkan or not prev.kijun:
            return StrategySignal.hold()

        price = context.current_bar.close
        cloud_top = max(now.span_a, now.span_b)
        cloud_bottom = min(now.span_a, now.span_b)

        bullish = (
            prev.tenkan < prev.kijun
            and now.tenkan > now.kijun
            and price > cloud_top
            and now.chikou > cloud_top
            and now.future_span_a > now.future_span_b
        )
        if bullish and context.portfolio.cash >= price * amount:
            return StrategySignal.buy(amount)

        bearish = (
            prev.tenkan > prev.kijun
            and now.tenkan < now.kijun
            and price < cloud_bottom
            and now.chikou < cloud_bottom
            and now.future_span_a < now.future_span_b
        )
        if bearish and context.portfolio.shares >= amount:
            return StrategySignal.sell(amount)
        return StrategySignal.hold()
