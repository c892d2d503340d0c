from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from tradelab.backtest.evaluator import (
    EvaluationMetric,
    EvaluationResult,
    StrategyEvaluator,
)
from tradelab.backtest.grid_search import generate_parameter_combinations
from tradelab.core.models import ActiveChoice, AIDecision
from tradelab.settings import SelectorSettings, get_selector_settings
from tradelab.strats.base import (
    ParameterOption,
    Strategy,
    StrategyContext,
    StrategyParameterDefinition,
    StrategySession,
    StrategySignal,
)

if TYPE_CHECKING:
    from tradelab.strats.registry import StrategyRegistry


class DecisionCache:
    """
    Last selector decision per symbol.

    Owned by one selector instance and retained across calls and runs; every
    selector invocation that gets past the warm-up overwrites its symbol's entry.
    """

    def __init__(self) -> None:
        self._decisions: Dict[str, AIDecision] = {}

    def record(self, symbol: str, decision: AIDecision) -> None:
        self._decisions[symbol] = decision

    def get(self, symbol: str) -> Optional[AIDecision]:
        return self._decisions.get(symbol)

    def active_choice(self, symbol: str) -> Optional[ActiveChoice]:
        decision = self._decisions.get(symbol)
        if decision is None or decision.chosen_strategy_id is None:
            return None
        return ActiveChoice(
            strategy_id=decision.chosen_strategy_id,
            name=decision.chosen_strategy_name or decision.chosen_strategy_id,
            params=dict(decision.parameters_used or {}),
        )

    def symbols(self) -> List[str]:
        return list(self._decisions)

    def clear(self) -> None:
        self._decisions.clear()


@dataclass(frozen=True)
class _Candidate:
    strategy: Strategy
    params: Dict[str, Any]
    result: EvaluationResult
    score: float


class SelectorSession(StrategySession):
    """
    Per-run selector state.

    Keeps one live session per delegated winner so stateful winners keep their
    state from bar to bar, and exposes each bar's decision through
    ``pop_decision``.
    """

    def __init__(self, selector: "AISelectorStrategy") -> None:
        self._selector = selector
        self._live: Dict[str, StrategySession] = {}
        self._last_decision: Optional[AIDecision] = None

    @property
    def last_decision(self) -> Optional[AIDecision]:
        return self._last_decision

    def pop_decision(self) -> Optional[AIDecision]:
        decision, self._last_decision = self._last_decision, None
        return decision

    def _live_session(self, strategy: Strategy) -> StrategySession:
        session = self._live.get(strategy.id)
        if session is None:
            session = strategy.create_session()
            self._live[strategy.id] = session
        return session

    async def execute(self, context: StrategyContext) -> StrategySignal:
        self._last_decision = None
        selector = self._selector
        params = {**selector.default_parameters(), **context.parameters}
        lookback = int(params["evaluationLookbackPeriod"])
        metric = EvaluationMetric.parse(params["evaluationMetric"])
        optimize = bool(params["optimizeParameters"])
        symbol = context.symbol

        candidates = selector.candidates(params["candidateStrategyIds"])
        if not candidates:
            logger.warning("[selector] {}: no candidate strategies; holding", symbol)
            return StrategySignal.hold()
        if context.current_index < lookback:
            logger.debug(
                "[selector] {}: index {} < lookback {}; holding",
                symbol,
                context.current_index,
                lookback,
            )
            return StrategySignal.hold()

        idx = context.current_index
        window = context.historical_data[idx - lookback : idx]
        best = await selector.rank_candidates(
            candidates, window, symbol=symbol, metric=metric, optimize=optimize
        )

        bar = context.current_bar
        if best is None:
            logger.warning(
                "[selector] {}: no candidate produced a usable score ({}); holding",
                symbol,
                metric.value,
            )
            decision = AIDecision(
                timestamp=bar.timestamp,
                date=bar.date,
                chosen_strategy_id=None,
                chosen_strategy_name=None,
                parameters_used=None,
                evaluation_score=None,
                evaluation_metric_used=metric.value,
            )
            selector.decision_cache.record(symbol, decision)
            self._last_decision = decision
            return StrategySignal.hold()

        winner = best.strategy
        merged = {**winner.default_parameters(), **best.params}
        decision = AIDecision(
            timestamp=bar.timestamp,
            date=bar.date,
            chosen_strategy_id=winner.id,
            chosen_strategy_name=winner.name,
            parameters_used=dict(merged),
            evaluation_score=best.score,
            evaluation_metric_used=metric.value,
            simulated_pnl=best.result.pnl,
            simulated_sharpe=best.result.sharpe,
            simulated_win_rate=best.result.win_rate,
        )
        selector.decision_cache.record(symbol, decision)
        self._last_decision = decision
        logger.info(
            "[selector] {}: chose {} by {} score={:.4f} params={}",
            symbol,
            winner.id,
            metric.value,
            best.score,
            merged,
        )
        session = self._live_session(winner)
        return await session.execute(context.with_parameters(merged))

    def dispose(self) -> None:
        for session in self._live.values():
            session.dispose()
        self._live.clear()
        self._last_decision = None


class AISelectorStrategy(Strategy):
    """
    Meta-strategy that scores candidates over a trailing window and delegates.

    Candidates are every registered strategy except the selector itself,
    optionally narrowed by a comma-separated allow-list. Each candidate is
    scored by the position-only evaluator, with its defaults or with every grid
    combination when optimization is on. The best score wins with strict ``>``
    comparisons, so the first-seen candidate keeps ties.
    """

    id = "ai-selector"
    name = "AI Strategy Selector"
    description = (
        "A meta-strategy that dynamically selects and executes an underlying trading "
        "strategy based on recent performance."
    )
    parameters = (
        StrategyParameterDefinition(
            name="evaluationLookbackPeriod",
            label="Evaluation Lookback Period",
            type="number",
            default=30,
            description="Number of recent bars used to evaluate candidates.",
            min=5,
            max=200,
            step=5,
        ),
        StrategyParameterDefinition(
            name="candidateStrategyIds",
            label="Candidate Strategy IDs (comma-separated)",
            type="string",
            default="",
            description="Optional allow-list of strategy ids. Empty means all.",
        ),
        StrategyParameterDefinition(
            name="evaluationMetric",
            label="Evaluation Metric",
            type="string",
            default="pnl",
            description="Metric used to rank candidates.",
            options=(
                ParameterOption("pnl", "Profit/Loss"),
                ParameterOption("sharpe", "Sharpe Ratio"),
                ParameterOption("winRate", "Win Rate"),
            ),
        ),
        StrategyParameterDefinition(
            name="optimizeParameters",
            label="Optimize Parameters of Candidate Strategies",
            type="boolean",
            default=False,
            description="Grid-search each candidate's numeric parameters.",
        ),
    )

    def __init__(
        self,
        registry: "StrategyRegistry",
        *,
        evaluator: Optional[StrategyEvaluator] = None,
        decision_cache: Optional[DecisionCache] = None,
        settings: Optional[SelectorSettings] = None,
    ) -> None:
        self._settings = settings or get_selector_settings()
        self.registry = registry
        self.evaluator = evaluator or StrategyEvaluator(settings=self._settings)
        self.decision_cache = decision_cache or DecisionCache()

    def create_session(self) -> SelectorSession:
        return SelectorSession(self)

    def candidates(self, allow_list: str = "") -> List[Strategy]:
        pool = [s for s in self.registry.list() if s.id != self.id]
        wanted = [p.strip() for p in (allow_list or "").split(",") if p.strip()]
        if wanted:
            pool = [s for s in pool if s.id in wanted]
        return pool

    def parameter_sets(
        self, strategy: Strategy, *, optimize: bool
    ) -> List[Dict[str, Any]]:
        if not optimize:
            return [strategy.default_parameters()]
        return generate_parameter_combinations(
            strategy.parameters,
            warning_threshold=self._settings.combination_warning_threshold,
            label=strategy.id,
        )

    async def _score(
        self,
        strategy: Strategy,
        params: Dict[str, Any],
        window,
        *,
        symbol: str,
        metric: EvaluationMetric,
    ) -> Optional[_Candidate]:
        try:
            result = await self.evaluator.evaluate(
                strategy, params, window, symbol=symbol
            )
        except Exception as exc:
            logger.warning(
                "[selector] {}: candidate {} failed with params={}: {}",
                symbol,
                strategy.id,
                params,
                exc,
            )
            return None
        score = result.score(metric)
        if math.isnan(score):
            logger.warning(
                "[selector] {}: candidate {} produced no usable {} score",
                symbol,
                strategy.id,
                metric.value,
            )
            return None
        return _Candidate(
            strategy=strategy, params=dict(params), result=result, score=score
        )

    async def rank_candidates(
        self,
        candidates: List[Strategy],
        window,
        *,
        symbol: str,
        metric: EvaluationMetric,
        optimize: bool,
    ) -> Optional[_Candidate]:
        """Best (candidate, parameters) over ``window``, or None when nothing scored."""
        best: Optional[_Candidate] = None
        best_score = -math.inf
        for strategy in candidates:
            best_for_candidate: Optional[_Candidate] = None
            candidate_score = -math.inf
            for params in self.parameter_sets(strategy, optimize=optimize):
                scored = await self._score(
                    strategy, params, window, symbol=symbol, metric=metric
                )
                if scored is None:
                    continue
                if scored.score > candidate_score:
                    best_for_candidate, candidate_score = scored, scored.score
            if best_for_candidate is None:
                continue
            logger.debug(
                "[selector] {}: {} best {}={:.4f}",
                symbol,
                strategy.id,
                metric.value,
                best_for_candidate.score,
            )
            if candidate_score > best_score:
                best, best_score = best_for_candidate, candidate_score
        return best

    def get_active_choice(self, symbol: str) -> Optional[ActiveChoice]:
        return self.decision_cache.active_choice(symbol)


__all__ = ["AISelectorStrategy", "DecisionCache", "SelectorSession"]
