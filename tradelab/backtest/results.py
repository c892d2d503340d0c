from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from tradelab.core.models import AIDecision, Bar, EquityPoint, Trade


@dataclass
class BacktestResult:
    """
    Outcome of one strategy run over one historical range.

    Attributes:
        symbol (str): Instrument that was backtested.
        start_date (date): First requested calendar date.
        end_date (date): Last requested calendar date.
        initial_portfolio_value (float): Starting cash.
        final_portfolio_value (float): ``cash + shares * last close`` after the last bar.
        total_profit_or_loss (float): Final minus initial value.
        profit_or_loss_percentage (float): P&L over initial value in percent.
        trades (list[Trade]): Executed fills in order.
        total_trades (int): ``len(trades)``.
        data_points_processed (int): Bars the strategy saw.
        strategy_id (str | None): Resolved strategy id; None for an unknown id.
        parameters_used (dict | None): Effective parameters after merging defaults.
        historical_data_used (list[Bar] | None): The bars, when enabled in settings.
        portfolio_history (list[EquityPoint]): Equity curve, one point per bar.
        ai_decision_log (list[AIDecision] | None): Selector decisions, one per bar
            that produced one; None when the run made none.
        sharpe_ratio (float | None): Annualised Sharpe of the equity curve.
        max_drawdown (float | None): Largest peak-to-trough fraction.
    """

    symbol: str
    start_date: date
    end_date: date
    initial_portfolio_value: float
    final_portfolio_value: float
    total_profit_or_loss: float
    profit_or_loss_percentage: float
    trades: List[Trade] = field(default_factory=list)
    total_trades: int = 0
    data_points_processed: int = 0
    strategy_id: Optional[str] = None
    parameters_used: Optional[Dict[str, Any]] = None
    historical_data_used: Optional[List[Bar]] = None
    portfolio_history: List[EquityPoint] = field(default_factory=list)
    ai_decision_log: Optional[List[AIDecision]] = None
    sharpe_ratio: Optional[float] = None
    max_drawdown: Optional[float] = None

    @classmethod
    def empty(
        cls,
        symbol: str,
        start_date: date,
        end_date: date,
        initial_cash: float,
        *,
        strategy_id: Optional[str] = None,
        parameters_used: Optional[Dict[str, Any]] = None,
    ) -> "BacktestResult":
        """Neutral zero-trade result: final value equals initial value."""
        cash = float(initial_cash)
        return cls(
            symbol=symbol,
            start_date=start_date,
            end_date=end_date,
            initial_portfolio_value=cash,
            final_portfolio_value=cash,
            total_profit_or_loss=0.0,
            profit_or_loss_percentage=0.0,
            strategy_id=strategy_id,
            parameters_used=parameters_used,
        )

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a frame indexed by UTC time."""
        if not self.portfolio_history:
            return pd.DataFrame(columns=["timestamp", "value"])
        df = pd.DataFrame(
            [{"timestamp": p.timestamp, "value": p.value} for p in self.portfolio_history]
        )
        df.index = pd.to_datetime(df["timestamp"], unit="s", utc=True)
        df.index.name = "date"
        return df

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "initialPortfolioValue": self.initial_portfolio_value,
            "finalPortfolioValue": self.final_portfolio_value,
            "totalProfitOrLoss": self.total_profit_or_loss,
            "profitOrLossPercentage": self.profit_or_loss_percentage,
            "trades": [t.as_dict() for t in self.trades],
            "totalTrades": self.total_trades,
            "dataPointsProcessed": self.data_points_processed,
            "strategyId": self.strategy_id,
            "parametersUsed": self.parameters_used,
            "historicalDataUsed": (
                [b.as_dict() for b in self.historical_data_used]
                if self.historical_data_used is not None
                else None
            ),
            "portfolioHistory": [
                {"timestamp": p.timestamp, "value": p.value}
                for p in self.portfolio_history
            ],
            "aiDecisionLog": (
                [d.to_dict() for d in self.ai_decision_log]
                if self.ai_decision_log is not None
                else None
            ),
            "sharpeRatio": self.sharpe_ratio,
            "maxDrawdown": self.max_drawdown,
        }


__all__ = ["BacktestResult"]
