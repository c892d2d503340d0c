from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from numbers import Real
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from tradelab.core.models import AIDecision, Bar, PortfolioSnapshot, Trade
from tradelab.strats.params import default_parameters, resolve_parameters


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class StrategySignal:
    """
    Decision returned by a strategy for one bar.

    Attributes:
        action (SignalAction): BUY, SELL or HOLD.
        amount (float | None): Units to trade. Missing or non-positive means 1.
    """

    action: SignalAction
    amount: Optional[float] = None

    @classmethod
    def hold(cls) -> "StrategySignal":
        return cls(SignalAction.HOLD)

    @classmethod
    def buy(cls, amount: Optional[float] = None) -> "StrategySignal":
        return cls(SignalAction.BUY, amount)

    @classmethod
    def sell(cls, amount: Optional[float] = None) -> "StrategySignal":
        return cls(SignalAction.SELL, amount)

    @property
    def effective_amount(self) -> float:
        if self.amount is None or not self.amount > 0:
            return 1.0
        return float(self.amount)


@dataclass(frozen=True)
class ParameterOption:
    value: Any
    label: str


@dataclass(frozen=True)
class StrategyParameterDefinition:
    """
    Declares one tunable parameter.

    The same definition drives input validation and the optimizer search space:
    a number parameter with finite ``min <= max`` and ``step > 0`` is optimizable.
    """

    name: str
    label: str
    type: str
    default: Any
    description: str = ""
    options: Tuple[ParameterOption, ...] = ()
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    @property
    def is_optimizable(self) -> bool:
        if self.type != "number":
            return False
        bounds = (self.min, self.max, self.step)
        if not all(isinstance(v, Real) and not isinstance(v, bool) for v in bounds):
            return False
        if not all(np.isfinite(float(v)) for v in bounds):
            return False
        return float(self.min) <= float(self.max) and float(self.step) > 0

    @property
    def option_values(self) -> Tuple[Any, ...]:
        return tuple(opt.value for opt in self.options)


@dataclass(frozen=True)
class StrategyContext:
    """
    Everything a strategy sees for one bar.

    ``portfolio``, ``trade_history`` and ``parameters`` are copies taken when the
    context is built; mutating them never reaches the engine.
    """

    symbol: str
    historical_data: Tuple[Bar, ...]
    current_index: int
    portfolio: PortfolioSnapshot
    trade_history: Tuple[Trade, ...] = ()
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def current_bar(self) -> Bar:
        return self.historical_data[self.current_index]

    def closes(self) -> np.ndarray:
        """Closing prices up to and including the current bar."""
        return np.fromiter(
            (bar.close for bar in self.historical_data[: self.current_index + 1]),
            dtype=float,
        )

    def highs(self) -> np.ndarray:
        return np.fromiter(
            (bar.high for bar in self.historical_data[: self.current_index + 1]),
            dtype=float,
        )

    def lows(self) -> np.ndarray:
        return np.fromiter(
            (bar.low for bar in self.historical_data[: self.current_index + 1]),
            dtype=float,
        )

    def with_parameters(self, parameters: Mapping[str, Any]) -> "StrategyContext":
        return replace(self, parameters=dict(parameters))


class StrategySession(ABC):
    """
    One run's worth of strategy state.

    A session is created per independent run and disposed when the run ends, so
    state trained or accumulated during one run never leaks into the next.
    """

    @abstractmethod
    async def execute(self, context: StrategyContext) -> StrategySignal:
        """Return the signal for ``context.current_index``."""

    def dispose(self) -> None:
        """Release per-run state. Stateless sessions have nothing to release."""

    def pop_decision(self) -> Optional[AIDecision]:
        """Return and clear the decision made by the last call, if any."""
        return None


class _StatelessSession(StrategySession):
    def __init__(self, strategy: "Strategy") -> None:
        self._strategy = strategy

    async def execute(self, context: StrategyContext) -> StrategySignal:
        return await self._strategy.decide(context)


class Strategy(ABC):
    """
    Base class for every strategy.

    Stateless strategies implement ``decide``. Strategies that keep state across
    bars override ``create_session`` and return their own ``StrategySession``.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    parameters: Tuple[StrategyParameterDefinition, ...] = ()

    def create_session(self) -> StrategySession:
        return _StatelessSession(self)

    async def decide(self, context: StrategyContext) -> StrategySignal:
        raise NotImplementedError(f"{type(self).__name__} does not implement decide()")

    async def execute(self, context: StrategyContext) -> StrategySignal:
        """Run a single call in a throwaway session."""
        session = self.create_session()
        try:
            return await session.execute(context)
        finally:
            session.dispose()

    def default_parameters(self) -> Dict[str, Any]:
        return default_parameters(self.parameters)

    def resolve_parameters(
        self, supplied: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        return resolve_parameters(self, supplied)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


__all__ = [
    "SignalAction",
    "StrategySignal",
    "ParameterOption",
    "StrategyParameterDefinition",
    "StrategyContext",
    "StrategySession",
    "Strategy",
]
