from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from tradelab.core.models import Bar, PortfolioSnapshot, Trade, TradeAction
from tradelab.strats.base import SignalAction, StrategySignal


@dataclass
class Portfolio:
    """
    Long-only cash/shares book used by the backtest engine.

    Attributes:
        cash (float): Available cash, never negative.
        shares (float): Units held, never negative.
        initial_value (float): Value at the start of the run.
        current_value (float): ``cash + shares * close`` as of the last marked bar.
    """

    cash: float
    shares: float = 0.0
    initial_value: float = 0.0
    current_value: float = 0.0

    @classmethod
    def open(cls, initial_cash: float) -> "Portfolio":
        cash = float(initial_cash)
        return cls(cash=cash, shares=0.0, initial_value=cash, current_value=cash)

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            cash=self.cash,
            shares=self.shares,
            initial_value=self.initial_value,
            current_value=self.current_value,
        )

    def mark(self, close: float) -> float:
        self.current_value = self.cash + self.shares * float(close)
        return self.current_value


def apply_signal(
    portfolio: Portfolio,
    signal: StrategySignal,
    bar: Bar,
    *,
    symbol: str,
    strategy_name: str,
) -> Optional[Trade]:
    """
    Apply one signal at the bar's close.

    BUY needs ``cash >= close * amount``; SELL needs ``shares >= amount``.
    A signal that fails its check is dropped and logged at debug level.
    Returns the executed ``Trade`` or ``None``.
    """
    if signal.action is SignalAction.HOLD:
        return None

    price = float(bar.close)
    amount = signal.effective_amount

    if signal.action is SignalAction.BUY:
        cost = price * amount
        if portfolio.cash < cost:
            logger.debug(
                "[portfolio] Attempted BUY for {} at {} via {}, but insufficient cash. "
                "Needed {:.2f}, have {:.2f}",
                symbol,
                price,
                strategy_name,
                cost,
                portfolio.cash,
            )
            return None
        portfolio.cash -= cost
        portfolio.shares += amount
        action = TradeAction.BUY
    else:
        if portfolio.shares < amount:
            logger.debug(
                "[portfolio] Attempted SELL for {} at {} via {}, but insufficient shares. "
                "Needed {}, have {}",
                symbol,
                price,
                strategy_name,
                amount,
                portfolio.shares,
            )
            return None
        portfolio.cash += price * amount
        portfolio.shares -= amount
        action = TradeAction.SELL

    return Trade(
        timestamp=bar.timestamp,
        date=bar.date,
        action=action,
        price=price,
        shares_traded=amount,
        cash_after_trade=portfolio.cash,
    )


__all__ = ["Portfolio", "apply_signal"]
