from __future__ import annotations

from typing import Sequence


class TradeLabError(Exception):
    """Base class for all tradelab exceptions."""


class ConfigError(TradeLabError):
    """Raised for missing/malformed configuration."""


class DataValidationError(TradeLabError):
    """Raised when bar data fails sanity or schema validation."""


class StrategyError(TradeLabError):
    """Raised when a strategy is malformed or cannot be registered."""


class StrategyNotFoundError(StrategyError):
    """Raised when a strategy id is not present in the registry."""

    def __init__(self, strategy_id: str) -> None:
        super().__init__(f"strategy not found: {strategy_id}")
        self.strategy_id = strategy_id


class ParameterValidationError(StrategyError):
    """Raised when supplied parameters do not match a strategy's definitions."""

    def __init__(self, strategy_id: str, errors: Sequence[str]) -> None:
        self.strategy_id = strategy_id
        self.errors = list(errors)
        joined = "; ".join(self.errors) or "invalid parameters"
        super().__init__(f"invalid parameters for {strategy_id}: {joined}")


__all__ = [
    "TradeLabError",
    "ConfigError",
    "DataValidationError",
    "StrategyError",
    "StrategyNotFoundError",
    "ParameterValidationError",
]
