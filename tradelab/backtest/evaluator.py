from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple

from loguru import logger

from tradelab.backtest.metrics import sample_sharpe
from tradelab.core.models import Bar, PortfolioSnapshot
from tradelab.settings import SelectorSettings, get_selector_settings
from tradelab.strats.base import (
    SignalAction,
    Strategy,
    StrategyContext,
    StrategySignal,
)


class EvaluationMetric(str, Enum):
    PNL = "pnl"
    SHARPE = "sharpe"
    WIN_RATE = "winRate"

    @classmethod
    def parse(cls, value: Any) -> "EvaluationMetric":
        """Map a raw metric name onto the enum, falling back to ``pnl``."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return cls.PNL


@dataclass(frozen=True)
class EvaluationResult:
    """
    Scores of one (strategy, parameters) simulation over a window.

    Attributes:
        pnl (float): Sum of realized per-trade P&L, including the mark-to-close.
        win_rate (float): Profitable trades over opened trades, 0 with no trades.
        sharpe (float): Mean over sample deviation of per-bar signed returns.
        trades (int): Positions opened.
        profitable_trades (int): Closed positions with positive P&L.
        period_returns (tuple[float, ...]): One signed return per bar.
    """

    pnl: float
    win_rate: float
    sharpe: float
    trades: int
    profitable_trades: int
    period_returns: Tuple[float, ...] = field(default_factory=tuple)

    def score(self, metric: EvaluationMetric | str) -> float:
        metric = EvaluationMetric.parse(metric)
        if metric is EvaluationMetric.SHARPE:
            return self.sharpe
        if metric is EvaluationMetric.WIN_RATE:
            return self.win_rate
        return self.pnl


@dataclass
class _Position:
    side: str
    entry_price: float


class StrategyEvaluator:
    """
    Position-only simulator used to score candidates.

    Holds at most one unit-sized position, long or short, with no cash ledger.
    Every evaluation runs the strategy in a fresh session, so results depend only
    on the strategy, its parameters and the window.
    """

    def __init__(
        self,
        *,
        evaluation_cash: Optional[float] = None,
        sharpe_sentinel: Optional[float] = None,
        settings: Optional[SelectorSettings] = None,
    ) -> None:
        settings = settings or get_selector_settings()
        self.evaluation_cash = float(
            settings.evaluation_cash if evaluation_cash is None else evaluation_cash
        )
        self.sharpe_sentinel = float(
            settings.sharpe_sentinel if sharpe_sentinel is None else sharpe_sentinel
        )

    def _snapshot(self, position: Optional[_Position]) -> PortfolioSnapshot:
        shares = 0.0
        if position is not None and position.side == "long" and position.entry_price > 0:
            shares = self.evaluation_cash / position.entry_price
        return PortfolioSnapshot(
            cash=self.evaluation_cash,
            shares=shares,
            initial_value=self.evaluation_cash,
            current_value=self.evaluation_cash,
        )

    async def evaluate(
        self,
        strategy: Strategy,
        params: Mapping[str, Any],
        bars: Sequence[Bar],
        *,
        symbol: str,
    ) -> EvaluationResult:
        window = tuple(bars)
        position: Optional[_Position] = None
        pnl = 0.0
        trades = 0
        profitable = 0
        returns = []

        session = strategy.create_session()
        try:
            for i, bar in enumerate(window):
                price = float(bar.close)
                previous = float(window[i - 1].close) if i > 0 else price

                context = StrategyContext(
                    symbol=symbol,
                    historical_data=window,
                    current_index=i,
                    portfolio=self._snapshot(position),
                    trade_history=(),
                    parameters=dict(params),
                )
                signal = await session.execute(context)
                if not isinstance(signal, StrategySignal):
                    raise TypeError(
                        f"{strategy.id} returned {type(signal).__name__}, expected StrategySignal"
                    )

                if signal.action is SignalAction.BUY:
                    if position is None:
                        position = _Position("long", price)
                        trades += 1
                    elif position.side == "short":
                        realized = position.entry_price - price
                        pnl += realized
                        profitable += realized > 0
                        position = None
                elif signal.action is SignalAction.SELL:
                    if position is None:
                        position = _Position("short", price)
                        trades += 1
                    elif position.side == "long":
                        realized = price - position.entry_price
                        pnl += realized
                        profitable += realized > 0
                        position = None

                bar_return = 0.0
                if position is not None and previous > 0:
                    bar_return = (price - previous) / previous
                    if position.side == "short":
                        bar_return = -bar_return
                returns.append(bar_return)
        finally:
            session.dispose()

        if position is not None and window:
            last = float(window[-1].close)
            if position.side == "long":
                realized = last - position.entry_price
            else:
                realized = position.entry_price - last
            pnl += realized
            profitable += realized > 0

        win_rate = profitable / trades if trades > 0 else 0.0
        sharpe = sample_sharpe(returns, zero_std_sentinel=self.sharpe_sentinel)
        logger.debug(
            "[evaluator] {} on {} bars={} pnl={:.4f} trades={} win_rate={:.3f} sharpe={:.4f}",
            strategy.id,
            symbol,
            len(window),
            pnl,
            trades,
            win_rate,
            sharpe,
        )
        return EvaluationResult(
            pnl=pnl,
            win_rate=win_rate,
            sharpe=sharpe,
            trades=trades,
            profitable_trades=profitable,
            period_returns=tuple(returns),
        )


__all__ = ["EvaluationMetric", "EvaluationResult", "StrategyEvaluator"]
