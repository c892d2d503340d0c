from __future__ import annotations

from tradelab.strats.base import (
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySignal,
)


class SimpleThresholdStrategy(Strategy):
    """Buy above an upper price level, sell below a lower one."""

    id = "simple-threshold"
    name = "Simple Threshold Strategy"
    description = "Buys if price > upperThreshold, sells if price < lowerThreshold."
    parameters = (
        StrategyParameterDefinition(
            name="upperThreshold",
            label="Upper Threshold",
            type="number",
            default=150,
            description="Price above which to buy.",
        ),
        StrategyParameterDefinition(
            name="lowerThreshold",
            label="Lower Threshold",
            type="number",
            default=140,
            description="Price below which to sell.",
        ),
        StrategyParameterDefinition(
            name="tradeAmount",
            label="Trade Amount",
            type="number",
            default=1,
            description="Number of shares to trade.",
        ),
    )

    async def decide(self, context: StrategyContext) -> StrategySignal:
        price = context.current_bar.close
        upper = float(context.parameters["upperThreshold"])
        lower = float(context.parameters["lowerThreshold"])
        amount = float(context.parameters["tradeAmount"])

        if price > upper and context.portfolio.cash >= price * amount:
            return StrategySignal.buy(amount)
        if price < lower and context.portfolio.shares >= amount:
            return StrategySignal.sell(amount)
        return StrategySignal.hold()
