"""Capital-aware strategy suggestion.

Runs the strategy selector once per symbol at the latest bar, picks the best
per-symbol choice by an overall metric, and resizes the winner's trade amount to
the caller's capital and risk budget.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from tradelab.backtest.evaluator import EvaluationMetric
from tradelab.config import settings as app_settings
from tradelab.core.models import AIDecision, PortfolioSnapshot
from tradelab.data.source import BarSource, load_bars
from tradelab.settings import SuggestionSettings, get_suggestion_settings
from tradelab.strats.base import StrategyContext
from tradelab.strats.registry import StrategyRegistry
from tradelab.strats.selector import AISelectorStrategy

SIZING_PARAMETERS = ("tradeAmount", "sharesToTrade", "contracts")
BTC_MIN_UNITS = 0.0001
BTC_DECIMALS = 5


@dataclass(frozen=True)
class SymbolChoice:
    """The selector's pick for one symbol."""

    symbol: str
    strategy_id: str
    strategy_name: str
    parameters: Dict[str, Any]
    evaluation_score: Optional[float]
    evaluation_metric: str
    simulated_pnl: Optional[float]
    simulated_sharpe: Optional[float]
    simulated_win_rate: Optional[float]
    recent_price: float

    def score(self, metric: EvaluationMetric) -> Optional[float]:
        if metric is EvaluationMetric.SHARPE:
            return self.simulated_sharpe
        if metric is EvaluationMetric.WIN_RATE:
            return self.simulated_win_rate
        return self.simulated_pnl


@dataclass(frozen=True)
class StrategySuggestion:
    strategy_id: Optional[str]
    strategy_name: Optional[str]
    parameters: Optional[Dict[str, Any]]
    message: str
    symbol: Optional[str] = None
    recent_price: Optional[float] = None
    evaluation_score: Optional[float] = None
    evaluation_metric: Optional[str] = None
    per_symbol: List[SymbolChoice] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestedStrategyId": self.strategy_id,
            "suggestedStrategyName": self.strategy_name,
            "suggestedParameters": self.parameters,
            "symbol": self.symbol,
            "recentPriceUsed": self.recent_price,
            "evaluationScore": self.evaluation_score,
            "evaluationMetricUsed": self.evaluation_metric,
            "message": self.message,
        }


def parse_metric(value: Optional[str]) -> EvaluationMetric:
    """Case-insensitive metric lookup; anything unknown means ``pnl``."""
    wanted = str(value or "").strip().lower()
    for member in EvaluationMetric:
        if member.value.lower() == wanted:
            return member
    return EvaluationMetric.PNL


def _fmt(value: Optional[float], spec: str = ".2f") -> str:
    return "n/a" if value is None else format(value, spec)


def size_position(
    symbol: str,
    capital: float,
    risk_percentage: float,
    price: float,
    original: float,
) -> Tuple[float, Optional[str]]:
    """
    Units worth ``risk_percentage`` of ``capital`` at ``price``.

    BTC pairs keep five decimals with a 0.0001 floor; everything else trades
    whole units with a floor of one. When the capital cannot cover the floor,
    ``original`` is returned along with a note explaining why.
    """
    if not price > 0:
        return original, f"No usable price for {symbol}; amount not adjusted"

    amount = capital * (risk_percentage / 100.0) / price
    if "BTC" in symbol.upper():
        amount = round(amount, BTC_DECIMALS)
        minimum = BTC_MIN_UNITS
    else:
        amount = float(math.floor(amount))
        minimum = 1.0

    if amount < minimum:
        if capital >= minimum * price:
            logger.info(
                "[suggest] {}: {} is below the minimum {}, using the minimum",
                symbol,
                amount,
                minimum,
            )
            amount = minimum
        else:
            logger.warning(
                "[suggest] capital {} too low for {} units of {} at {}",
                capital,
                minimum,
                symbol,
                price,
            )
            return original, (
                f"Capital too low for a minimum trade of {minimum:g} {symbol}; "
                f"amount not adjusted from {original:g}"
            )

    return amount, None


class SuggestionService:
    """Suggests one strategy and position size across a set of symbols."""

    def __init__(
        self,
        registry: StrategyRegistry,
        bar_source: BarSource,
        selector: Optional[AISelectorStrategy] = None,
        settings: Optional[SuggestionSettings] = None,
    ) -> None:
        self.registry = registry
        self.bar_source = bar_source
        self.settings = settings or get_suggestion_settings()
        if selector is None:
            registered = registry.get(AISelectorStrategy.id)
            if isinstance(registered, AISelectorStrategy):
                selector = registered
            else:
                selector = AISelectorStrategy(registry)
        self.selector = selector

    async def _choose_for_symbol(
        self,
        symbol: str,
        *,
        now: datetime,
        lookback: int,
        metric: EvaluationMetric,
        optimize: bool,
    ) -> Optional[SymbolChoice]:
        start = now - timedelta(days=lookback + self.settings.buffer_days)
        try:
            bars = await load_bars(
                self.bar_source,
                symbol,
                start.date(),
                now.date(),
                self.settings.source_api,
                self.settings.interval,
            )
        except Exception as exc:
            logger.warning("[suggest] {}: fetching bars failed: {}", symbol, exc)
            return None
        if len(bars) < lookback:
            logger.warning(
                "[suggest] {}: insufficient history, need {} got {}; skipping",
                symbol,
                lookback,
                len(bars),
            )
            return None

        params = self.selector.resolve_parameters(
            {
                "evaluationLookbackPeriod": lookback,
                "candidateStrategyIds": "",
                "evaluationMetric": metric.value,
                "optimizeParameters": bool(optimize),
            }
        )
        cash = self.settings.notional_cash
        context = StrategyContext(
            symbol=symbol,
            historical_data=tuple(bars),
            current_index=len(bars) - 1,
            portfolio=PortfolioSnapshot(
                cash=cash, shares=0.0, initial_value=cash, current_value=cash
            ),
            parameters=params,
        )
        session = self.selector.create_session()
        try:
            await session.execute(context)
            decision: Optional[AIDecision] = session.pop_decision()
        except Exception as exc:
            logger.warning("[suggest] {}: selection failed: {}", symbol, exc)
            return None
        finally:
            session.dispose()

        if decision is None or decision.chosen_strategy_id is None:
            logger.warning("[suggest] {}: selector made no choice", symbol)
            return None
        choice = SymbolChoice(
            symbol=symbol,
            strategy_id=decision.chosen_strategy_id,
            strategy_name=decision.chosen_strategy_name or decision.chosen_strategy_id,
            parameters=dict(decision.parameters_used or {}),
            evaluation_score=decision.evaluation_score,
            evaluation_metric=decision.evaluation_metric_used,
            simulated_pnl=decision.simulated_pnl,
            simulated_sharpe=decision.simulated_sharpe,
            simulated_win_rate=decision.simulated_win_rate,
            recent_price=float(bars[-1].close),
        )
        logger.info(
            "[suggest] {}: best {} by {} score={} pnl={} sharpe={} win_rate={}",
            symbol,
            choice.strategy_id,
            choice.evaluation_metric,
            _fmt(choice.evaluation_score, ".4f"),
            _fmt(choice.simulated_pnl),
            _fmt(choice.simulated_sharpe),
            _fmt(choice.simulated_win_rate, ".3f"),
        )
        return choice

    @staticmethod
    def pick_overall(
        choices: Sequence[SymbolChoice], metric: EvaluationMetric
    ) -> Optional[SymbolChoice]:
        """Highest finite score under ``metric``; the first-seen choice keeps ties."""
        best: Optional[SymbolChoice] = None
        best_score = -math.inf
        for choice in choices:
            score = choice.score(metric)
            if score is None or not math.isfinite(score):
                continue
            if score > best_score:
                best, best_score = choice, score
        return best

    async def suggest(
        self,
        symbols: Optional[Sequence[str]],
        initial_capital: float,
        *,
        lookback: Optional[int] = None,
        selector_metric: Optional[str] = None,
        optimize: bool = False,
        risk_percentage: Optional[float] = None,
        overall_metric: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StrategySuggestion:
        symbols = list(symbols or app_settings.default_symbols)
        if not symbols:
            return StrategySuggestion(
                None, None, None, "No symbols available for analysis."
            )

        lookback = int(lookback or self.settings.lookback)
        risk = self.settings.risk_percent
        if risk_percentage is not None and 1 <= risk_percentage <= 100:
            risk = float(risk_percentage)
        inner = parse_metric(selector_metric)
        overall = parse_metric(overall_metric)
        now = now or datetime.now(timezone.utc)
        logger.info(
            "[suggest] capital={} lookback={} selector_metric={} optimize={} risk={}% "
            "overall_metric={} symbols={}",
            initial_capital,
            lookback,
            inner.value,
            optimize,
            risk,
            overall.value,
            symbols,
        )

        choices: List[SymbolChoice] = []
        for symbol in symbols:
            choice = await self._choose_for_symbol(
                symbol, now=now, lookback=lookback, metric=inner, optimize=optimize
            )
            if choice is not None:
                choices.append(choice)
        if not choices:
            return StrategySuggestion(
                None,
                None,
                None,
                "No suitable strategy could be determined for any symbol.",
            )

        best = self.pick_overall(choices, overall)
        if best is None:
            logger.warning("[suggest] no finite {} score among choices", overall.value)
            return StrategySuggestion(
                None,
                None,
                None,
                "Could not determine an overall best strategy by "
                f"{overall.value}.",
                per_symbol=choices,
            )

        message = (
            f"Overall best for {best.symbol} (selected by {overall.value}): "
            f"{best.strategy_name} (P&L {_fmt(best.simulated_pnl)}, "
            f"Sharpe {_fmt(best.simulated_sharpe)}, "
            f"win rate {_fmt(best.simulated_win_rate, '.3f')})."
        )
        parameters = dict(best.parameters)
        sizing = next((n for n in SIZING_PARAMETERS if n in parameters), None)
        if sizing is None:
            message += " No trade sizing parameter found; amount not adjusted."
        else:
            original = float(parameters[sizing])
            amount, note = size_position(
                best.symbol, float(initial_capital), risk, best.recent_price, original
            )
            parameters[sizing] = amount
            if note:
                message += f" {note}."
            else:
                message += (
                    f" {sizing} adjusted to {amount:g} for capital "
                    f"{initial_capital:g}, risk {risk:g}%."
                )
            logger.info(
                "[suggest] {}: {} {} -> {}", best.symbol, sizing, original, amount
            )

        return StrategySuggestion(
            strategy_id=best.strategy_id,
            strategy_name=best.strategy_name,
            parameters=parameters,
            message=message,
            symbol=best.symbol,
            recent_price=best.recent_price,
            evaluation_score=best.evaluation_score,
            evaluation_metric=best.evaluation_metric,
            per_symbol=choices,
        )


__all__ = [
    "StrategySuggestion",
    "SuggestionService",
    "SymbolChoice",
    "parse_metric",
    "size_position",
]
