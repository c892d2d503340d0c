from __future__ import annotations

import math

from tradelab.features.indicators import bollinger_bands, rsi
from tradelab.strats.base import (
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySignal,
)


class RSIBollingerStrategy(Strategy):
    """Mean-reversion entries confirmed by both RSI and Bollinger Bands."""

    id = "rsi-bollinger"
    name = "RSI + Bollinger Bands Strategy"
    description = (
        "Buys when RSI is oversold and price is at/below the lower band; sells when "
        "RSI is overbought and price is at/above the upper band."
    )
    parameters = (
        StrategyParameterDefinition(
            name="rsiPeriod",
            label="RSI Period",
            type="number",
            default=14,
            description="Lookback for RSI.",
            min=2,
            max=100,
            step=1,
        ),
        StrategyParameterDefinition(
            name="rsiOverbought",
            label="RSI Overbought",
            type="number",
            default=70,
            description="RSI level above which the market is overbought.",
            min=50,
            max=100,
            step=1,
        ),
        StrategyParameterDefinition(
            name="rsiOversold",
            label="RSI Oversold",
            type="number",
            default=30,
            description="RSI level below which the market is oversold.",
            min=0,
            max=50,
            step=1,
        ),
        StrategyParameterDefinition(
            name="bollingerPeriod",
            label="Bollinger Period",
            type="number",
            default=20,
            description="Window for the Bollinger middle band.",
            min=2,
            max=100,
            step=1,
        ),
        StrategyParameterDefinition(
            name="bollingerStdDev",
            label="Bollinger Std Dev",
            type="number",
            default=2,
            description="Band width in standard deviations.",
            min=0.5,
            max=5,
            step=0.1,
        ),
        StrategyParameterDefinition(
            name="tradeAmount",
            label="Trade Amount",
            type="number",
            default=1,
            description="Number of shares/units to trade per signal.",
            min=0.001,
            step=0.001,
        ),
    )

    async def decide(self, context: StrategyContext) -> StrategySignal:
        params = context.parameters
        rsi_p = int(params["rsiPeriod"])
        bb_p = int(params["bollingerPeriod"])
        amount = float(params["tradeAmount"])

        idx = context.current_index
        if idx < max(rsi_p, bb_p):
            return StrategySignal.hold()

        closes = context.closes()
        cur_rsi = rsi(closes, rsi_p)[idx]
        bands = bollinger_bands(closes, bb_p, float(params["bollingerStdDev"]))
        upper, lower = bands.upper[idx], bands.lower[idx]
        price = context.current_bar.close
        if any(math.isnan(v) for v in (cur_rsi, upper, lower, price)):
            return StrategySignal.hold()

        if cur_rsi < params["rsiOversold"] and price <= lower:
            if context.portfolio.cash >= price * amount:
                return StrategySignal.buy(amount)
            return StrategySignal.hold()
        if cur_rsi > params["rsiOverbought"] and price >= upper:
            if context.portfolio.shares >= amount:
                return StrategySignal.sell(amount)
        return StrategySignal.hold()
