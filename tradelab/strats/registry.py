from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, Iterator, List, Optional

from loguru import logger

from tradelab.core.exceptions import StrategyError
from tradelab.strats.base import Strategy
from tradelab.strats.ichimoku import IchimokuCloudStrategy
from tradelab.strats.macd import MACDCrossoverStrategy
from tradelab.strats.price_prediction import PricePredictionStrategy
from tradelab.strats.rsi_bollinger import RSIBollingerStrategy
from tradelab.strats.selector import AISelectorStrategy
from tradelab.strats.simple_threshold import SimpleThresholdStrategy


class StrategyRegistry:
    """Strategies by id, kept in registration order."""

    def __init__(self, initial: Optional[Iterable[Strategy]] = None) -> None:
        self._lock = Lock()
        self._strategies: Dict[str, Strategy] = {}
        for strategy in initial or ():
            self.register(strategy)

    def register(self, strategy: Strategy) -> Strategy:
        strategy_id = getattr(strategy, "id", None)
        if not strategy_id:
            raise StrategyError(f"cannot register {strategy!r}: strategy has no id")
        with self._lock:
            if strategy_id in self._strategies:
                logger.warning(
                    "[registry] replacing strategy id={} ({} -> {})",
                    strategy_id,
                    type(self._strategies[strategy_id]).__name__,
                    type(strategy).__name__,
                )
            self._strategies[strategy_id] = strategy
        logger.debug("[registry] registered {}", strategy_id)
        return strategy

    def get(self, strategy_id: str) -> Optional[Strategy]:
        with self._lock:
            return self._strategies.get(strategy_id)

    def list(self) -> List[Strategy]:
        with self._lock:
            return list(self._strategies.values())

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._strategies)

    def __contains__(self, strategy_id: object) -> bool:
        with self._lock:
            return strategy_id in self._strategies

    def __len__(self) -> int:
        with self._lock:
            return len(self._strategies)

    def __iter__(self) -> Iterator[Strategy]:
        return iter(self.list())


def build_default_registry() -> StrategyRegistry:
    """Registry holding every built-in strategy plus a selector bound to it."""
    registry = StrategyRegistry(
        [
            SimpleThresholdStrategy(),
            MACDCrossoverStrategy(),
            RSIBollingerStrategy(),
            IchimokuCloudStrategy(),
            PricePredictionStrategy(),
        ]
    )
    registry.register(AISelectorStrategy(registry))
    return registry


__all__ = ["StrategyRegistry", "build_default_registry"]
