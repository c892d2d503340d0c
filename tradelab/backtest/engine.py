from __future__ import annotations

import math
import uuid
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from tradelab.backtest.metrics import equity_stats
from tradelab.backtest.portfolio import Portfolio, apply_signal
from tradelab.backtest.results import BacktestResult
from tradelab.core.models import AIDecision, Bar, EquityPoint, Trade
from tradelab.data.source import BarSource, DateLike, as_date, load_bars
from tradelab.logging_utils import logging_context
from tradelab.settings import BacktestSettings, get_backtest_settings
from tradelab.strats.base import Strategy, StrategyContext, StrategySignal
from tradelab.strats.registry import StrategyRegistry


def profit_or_loss_percentage(pnl: float, initial_value: float) -> float:
    """P&L in percent of the initial value; +inf for a gain from nothing."""
    if initial_value == 0:
        return 0.0 if pnl == 0 else math.inf
    return pnl / initial_value * 100.0


class BacktestEngine:
    """
    Drives one strategy over one historical range.

    Bars are processed strictly in order. Each bar gets a fresh context holding
    snapshots of the portfolio and trade ledger, the strategy's signal is
    awaited, and the long-only trade rules are applied at the bar's close.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        bar_source: BarSource,
        settings: Optional[BacktestSettings] = None,
    ) -> None:
        self.registry = registry
        self.bar_source = bar_source
        self.settings = settings or get_backtest_settings()

    async def run_backtest(
        self,
        symbol: str,
        start_date: DateLike,
        end_date: DateLike,
        initial_cash: float,
        strategy_id: str,
        strategy_params: Optional[Mapping[str, Any]] = None,
        source_api: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> BacktestResult:
        """
        Run ``strategy_id`` over ``symbol`` between the two dates, inclusive.

        An unknown strategy id or an empty bar range yields a neutral zero-trade
        result instead of an error.

        Raises:
            ParameterValidationError: When ``strategy_params`` do not fit the
                strategy's parameter definitions.
        """
        start, end = as_date(start_date), as_date(end_date)
        strategy = self.registry.get(strategy_id)
        if strategy is None:
            logger.error(
                "[backtest] Strategy with ID {} not found. Available: {}",
                strategy_id,
                self.registry.ids(),
            )
            return BacktestResult.empty(symbol, start, end, initial_cash)

        params = strategy.resolve_parameters(strategy_params)
        source = source_api or self.settings.default_source
        interval = interval or self.settings.default_interval

        run_id = uuid.uuid4().hex[:12]
        with logging_context(run_id=run_id, strategy_id=strategy.id):
            bars = await load_bars(
                self.bar_source, symbol, start, end, source, interval
            )
            if not bars:
                logger.warning(
                    "[backtest] No historical data found for {} in range {} to {} "
                    "(source={}, interval={})",
                    symbol,
                    start,
                    end,
                    source,
                    interval,
                )
                return BacktestResult.empty(
                    symbol,
                    start,
                    end,
                    initial_cash,
                    strategy_id=strategy.id,
                    parameters_used=params,
                )

            result = await self._simulate(
                symbol, start, end, float(initial_cash), strategy, params, bars
            )
            logger.info(
                "[backtest] Backtest completed for {} using strategy {}: trades={} "
                "final={:.2f} pnl={:.2f} ({:.2f}%)",
                symbol,
                strategy.name,
                result.total_trades,
                result.final_portfolio_value,
                result.total_profit_or_loss,
                result.profit_or_loss_percentage,
            )
            return result

    async def _simulate(
        self,
        symbol: str,
        start: date,
        end: date,
        initial_cash: float,
        strategy: Strategy,
        params: Dict[str, Any],
        bars: Sequence[Bar],
    ) -> BacktestResult:
        history = tuple(bars)
        portfolio = Portfolio.open(initial_cash)
        trades: List[Trade] = []
        curve: List[EquityPoint] = []
        decisions: List[AIDecision] = []

        session = strategy.create_session()
        try:
            for i, bar in enumerate(history):
                context = StrategyContext(
                    symbol=symbol,
                    historical_data=history,
                    current_index=i,
                    portfolio=portfolio.snapshot(),
                    trade_history=tuple(trades),
                    parameters=dict(params),
                )
                signal = await session.execute(context)
                if not isinstance(signal, StrategySignal):
                    raise TypeError(
                        f"{strategy.id} returned {type(signal).__name__}, "
                        "expected StrategySignal"
                    )
                trade = apply_signal(
                    portfolio, signal, bar, symbol=symbol, strategy_name=strategy.name
                )
                if trade is not None:
                    trades.append(trade)
                    logger.debug(
                        "[backtest] {} {} {} @ {} cash={:.2f}",
                        trade.date.date(),
                        trade.action.value,
                        trade.shares_traded,
                        trade.price,
                        trade.cash_after_trade,
                    )
                curve.append(EquityPoint(bar.timestamp, portfolio.mark(bar.close)))
                decision = session.pop_decision()
                if decision is not None:
                    decisions.append(decision)
        finally:
            session.dispose()

        final_value = portfolio.current_value
        pnl = final_value - portfolio.initial_value
        stats = equity_stats(
            [portfolio.initial_value] + [p.value for p in curve],
            periods_per_year=self.settings.periods_per_year,
        )
        return BacktestResult(
            symbol=symbol,
            start_date=start,
            end_date=end,
            initial_portfolio_value=portfolio.initial_value,
            final_portfolio_value=final_value,
            total_profit_or_loss=pnl,
            profit_or_loss_percentage=profit_or_loss_percentage(
                pnl, portfolio.initial_value
            ),
            trades=trades,
            total_trades=len(trades),
            data_points_processed=len(history),
            strategy_id=strategy.id,
            parameters_used=dict(params),
            historical_data_used=list(history) if self.settings.include_bars else None,
            portfolio_history=curve,
            ai_decision_log=decisions or None,
            sharpe_ratio=stats.sharpe,
            max_drawdown=stats.max_drawdown,
        )


__all__ = ["BacktestEngine", "profit_or_loss_percentage"]
