from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Bar:
    """Normalized OHLCV bar. ``timestamp`` is unix seconds, ``date`` is UTC."""

    timestamp: int
    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    source: str = "historical"
    interval: str = "1d"
    symbol: str = ""

    @classmethod
    def from_timestamp(
        cls,
        timestamp: int,
        *,
        open: float,
        high: float,
        low: float,
        close: float,
        volume: float = 0.0,
        source: str = "historical",
        interval: str = "1d",
        symbol: str = "",
    ) -> "Bar":
        return cls(
            timestamp=int(timestamp),
            date=datetime.fromtimestamp(int(timestamp), tz=timezone.utc),
            open=float(open),
            high=float(high),
            low=float(low),
            close=float(close),
            volume=float(volume),
            source=source,
            interval=interval,
            symbol=symbol,
        )

    def as_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "source": self.source,
            "interval": self.interval,
            "symbol": self.symbol,
        }


@dataclass(frozen=True, slots=True)
class Trade:
    """One executed fill. Trades are append-only and never mutated."""

    timestamp: int
    date: datetime
    action: TradeAction
    price: float
    shares_traded: float
    cash_after_trade: float

    def as_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "date": self.date.isoformat(),
            "action": self.action.value,
            "price": self.price,
            "sharesTraded": self.shares_traded,
            "cashAfterTrade": self.cash_after_trade,
        }


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    """Read-only view of a portfolio handed to strategies."""

    cash: float
    shares: float
    initial_value: float
    current_value: float


@dataclass(frozen=True, slots=True)
class EquityPoint:
    timestamp: int
    value: float


@dataclass(frozen=True, slots=True)
class AIDecision:
    """
    Outcome of one selector invocation.

    Attributes:
        timestamp (int): Timestamp of the decision bar.
        date (datetime): Date of the decision bar.
        chosen_strategy_id (str | None): Winning strategy id, None when nothing scored.
        chosen_strategy_name (str | None): Winning strategy display name.
        parameters_used (dict | None): Winning parameters merged over the defaults.
        evaluation_score (float | None): Winning score under ``evaluation_metric_used``.
        evaluation_metric_used (str): Metric that ranked the candidates.
        simulated_pnl (float | None): Evaluator pnl of the winning combination.
        simulated_sharpe (float | None): Evaluator sharpe of the winning combination.
        simulated_win_rate (float | None): Evaluator win rate of the winning combination.
    """

    timestamp: int
    date: datetime
    chosen_strategy_id: Optional[str]
    chosen_strategy_name: Optional[str]
    parameters_used: Optional[Dict[str, Any]]
    evaluation_score: Optional[float]
    evaluation_metric_used: str
    simulated_pnl: Optional[float] = None
    simulated_sharpe: Optional[float] = None
    simulated_win_rate: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "date": self.date.isoformat(),
            "chosenStrategyId": self.chosen_strategy_id,
            "chosenStrategyName": self.chosen_strategy_name,
            "parametersUsed": (
                dict(self.parameters_used) if self.parameters_used is not None else None
            ),
            "evaluationScore": self.evaluation_score,
            "evaluationMetricUsed": self.evaluation_metric_used,
            "simulatedPnl": self.simulated_pnl,
            "simulatedSharpe": self.simulated_sharpe,
            "simulatedWinRate": self.simulated_win_rate,
        }


@dataclass(frozen=True, slots=True)
class ActiveChoice:
    """What the selector is currently delegating to for a symbol."""

    strategy_id: str
    name: str
    params: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "TradeAction",
    "Bar",
    "Trade",
    "PortfolioSnapshot",
    "EquityPoint",
    "AIDecision",
    "ActiveChoice",
]
