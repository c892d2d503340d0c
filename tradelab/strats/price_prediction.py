from __future__ import annotations

import math
from typing import Optional

from loguru import logger

from tradelab.strats.base import (
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySession,
    StrategySignal,
)
from tradelab.strats.model import PricePredictor, create_price_sequences


class PricePredictionSession(StrategySession):
    """Trains once on the leading share of the bars, then predicts every bar."""

    def __init__(self, strategy: "PricePredictionStrategy") -> None:
        self._strategy = strategy
        self._model: Optional[PricePredictor] = None
        self._unusable = False

    def _train(self, context: StrategyContext) -> bool:
        p = context.parameters
        lookback = int(p["lookbackPeriod"])
        horizon = int(p["predictionHorizon"])
        total = len(context.historical_data)
        split = math.floor(total * float(p["trainingDataSplit"]))

        if split < lookback + horizon or total - split < lookback + 1:
            logger.warning(
                "[{}] not enough data to train and predict: total={} split={} "
                "lookback={} horizon={}",
                self._strategy.id,
                total,
                split,
                lookback,
                horizon,
            )
            return False

        closes = [bar.close for bar in context.historical_data[:split]]
        sequences, targets = create_price_sequences(closes, lookback, horizon)
        if sequences.shape[0] == 0:
            logger.warning(
                "[{}] no training sequences before split={}", self._strategy.id, split
            )
            return False

        self._model = PricePredictor(
            lookback,
            epochs=int(p["epochs"]),
            learning_rate=float(p["learningRate"]),
        ).fit(sequences, targets)
        logger.info(
            "[{}] model trained sequences={} epochs={} lr={}",
            self._strategy.id,
            sequences.shape[0],
            p["epochs"],
            p["learningRate"],
        )
        return True

    async def execute(self, context: StrategyContext) -> StrategySignal:
        if self._unusable:
            return StrategySignal.hold()
        if self._model is None and not self._train(context):
            self._unusable = True
            return StrategySignal.hold()

        p = context.parameters
        lookback = int(p["lookbackPeriod"])
        idx = context.current_index
        if idx < lookback - 1:
            return StrategySignal.hold()

        window = context.closes()[idx - lookback + 1 : idx + 1]
        probability = self._model.predict_proba(window)

        price = context.current_bar.close
        amount = float(p["tradeAmount"])
        if probability >= float(p["buyThreshold"]):
            if context.portfolio.cash >= price * amount:
                return StrategySignal.buy(amount)
        elif probability <= float(p["sellThreshold"]):
            if context.portfolio.shares >= amount:
                return StrategySignal.sell(amount)
        return StrategySignal.hold()

    def dispose(self) -> None:
        self._model = None
        self._unusable = False


class PricePredictionStrategy(Strategy):
    """Up/down classifier trained per run on the leading bars."""

    id = "ai-price-prediction"
    name = "AI Price Prediction Strategy (Experimental)"
    description = (
        "Uses a logistic-regression classifier over recent closes to predict price "
        "direction. Trains once per run."
    )
    parameters = (
        StrategyParameterDefinition(
            "lookbackPeriod", "Lookback Period", "number", 10, min=5, max=50, step=1
        ),
        StrategyParameterDefinition(
            "predictionHorizon", "Prediction Horizon", "number", 1, min=1, max=10, step=1
        ),
        StrategyParameterDefinition(
            "trainingDataSplit",
            "Training Data Split Ratio",
            "number",
            0.7,
            min=0.1,
            max=0.9,
            step=0.05,
        ),
        StrategyParameterDefinition(
            "epochs", "Training Epochs", "number", 10, min=1, max=100
        ),
        StrategyParameterDefinition(
            "learningRate",
            "Learning Rate",
            "number",
            0.01,
            min=0.0001,
            max=0.1,
        ),
        StrategyParameterDefinition(
            "buyThreshold",
            "Buy Signal Threshold",
            "number",
            0.6,
            min=0.5,
            max=1.0,
        ),
        StrategyParameterDefinition(
            "sellThreshold",
            "Sell Signal Threshold",
            "number",
            0.4,
            min=0.0,
            max=0.5,
        ),
        StrategyParameterDefinition(
            "tradeAmount",
            "Trade Amount",
            "number",
            1,
            min=0.001,
            max=1000,
        ),
    )

    def create_session(self) -> PricePredictionSession:
        return PricePredictionSession(self)
