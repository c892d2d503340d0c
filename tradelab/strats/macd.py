from __future__ import annotations

import math

from tradelab.features.indicators import macd
from tradelab.strats.base import (
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySignal,
)


class MACDCrossoverStrategy(Strategy):
    """Trade MACD line crossings of its signal line."""

    id = "macd-crossover"
    name = "MACD Crossover Strategy"
    description = (
        "Generates BUY signals when the MACD line crosses above the signal line, "
        "and SELL signals when it crosses below."
    )
    parameters = (
        StrategyParameterDefinition(
            name="shortPeriod",
            label="Short EMA Period",
            type="number",
            default=12,
            description="Period of the shorter EMA.",
            min=1,
            max=50,
            step=1,
        ),
        StrategyParameterDefinition(
            name="longPeriod",
            label="Long EMA Period",
            type="number",
            default=26,
            description="Period of the longer EMA. Must exceed shortPeriod.",
            min=2,
            max=100,
            step=1,
        ),
        StrategyParameterDefinition(
            name="signalPeriod",
            label="Signal Line EMA Period",
            type="number",
            default=9,
            description="Period of the EMA applied to the MACD line.",
            min=1,
            max=50,
            step=1,
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
        short_p = int(params["shortPeriod"])
        long_p = int(params["longPeriod"])
        signal_p = int(params["signalPeriod"])
        amount = float(params["tradeAmount"])

        idx = context.current_index
        if idx < 1 or long_p <= short_p:
            return StrategySignal.hold()

        out = macd(context.closes(), short_p, long_p, signal_p)
        cur_macd, prev_macd = out.macd_line[idx], out.macd_line[idx - 1]
        cur_sig, prev_sig = out.signal_line[idx], out.signal_line[idx - 1]
        if any(math.isnan(v) for v in (cur_macd, prev_macd, cur_sig, prev_sig)):
            return StrategySignal.hold()

        price = context.current_bar.close
        if prev_macd < prev_sig and cur_macd > cur_sig:
            if context.portfolio.cash >= price * amount:
                return StrategySignal.buy(amount)
            return StrategySignal.hold()
        if prev_macd > prev_sig and cur_macd < cur_sig:
            if context.portfolio.shares >= amount:
                return StrategySignal.sell(amount)
        return StrategySignal.hold()
