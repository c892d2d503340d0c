"""Domain settings for backtests, the strategy selector and suggestions.

Environment matrix:

| Section    | Environment Variable            | Default   | Purpose                                        |
|------------|---------------------------------|-----------|------------------------------------------------|
| Backtest   | `BACKTEST_PERIODS_PER_YEAR`     | `252`     | Annualisation factor for the run Sharpe ratio  |
| Backtest   | `BACKTEST_INCLUDE_BARS`         | `true`    | Attach the processed bars to results           |
| Backtest   | `BACKTEST_DEFAULT_SOURCE`       | `None`    | Data source requested when a run omits one     |
| Backtest   | `BACKTEST_DEFAULT_INTERVAL`     | `None`    | Bar interval requested when a run omits one    |
| Selector   | `SELECTOR_EVALUATION_CASH`      | `100000`  | Notional cash in evaluation snapshots          |
| Selector   | `SELECTOR_COMBINATION_WARNING`  | `1000`    | Grid size that triggers a performance warning  |
| Selector   | `SELECTOR_SHARPE_SENTINEL`      | `1000`    | Magnitude reported for zero-variance Sharpe    |
| Suggestion | `SUGGEST_LOOKBACK`              | `30`      | Selector lookback used for suggestions         |
| Suggestion | `SUGGEST_BUFFER_DAYS`           | `60`      | Extra days of history fetched per symbol       |
| Suggestion | `SUGGEST_SOURCE_API`            | `binance` | Data source for suggestion bars                |
| Suggestion | `SUGGEST_INTERVAL`              | `1d`      | Bar interval for suggestion bars               |
| Suggestion | `SUGGEST_RISK_PERCENT`          | `20`      | Share of capital used to size the suggestion   |
| Suggestion | `SUGGEST_NOTIONAL_CASH`         | `100000`  | Portfolio cash used for the selector snapshot  |

Settings are read from the environment each time ``get_settings`` is called and are
frozen once built.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


class BacktestSettings(_SettingsBase):
    """Backtest engine configuration."""

    periods_per_year: int = Field(default=252, alias="BACKTEST_PERIODS_PER_YEAR")
    include_bars: bool = Field(default=True, alias="BACKTEST_INCLUDE_BARS")
    default_source: str | None = Field(default=None, alias="BACKTEST_DEFAULT_SOURCE")
    default_interval: str | None = Field(
        default=None, alias="BACKTEST_DEFAULT_INTERVAL"
    )

    @field_validator("periods_per_year", mode="before")
    @classmethod
    def _coerce_periods(cls, value: int | str | None) -> int:
        if value in (None, ""):
            return 252
        periods = int(value)
        return periods if periods > 0 else 252


class SelectorSettings(_SettingsBase):
    """Strategy selector configuration."""

    evaluation_cash: float = Field(default=100_000.0, alias="SELECTOR_EVALUATION_CASH")
    combination_warning_threshold: int = Field(
        default=1000, alias="SELECTOR_COMBINATION_WARNING"
    )
    sharpe_sentinel: float = Field(default=1000.0, alias="SELECTOR_SHARPE_SENTINEL")


class SuggestionSettings(_SettingsBase):
    """Capital-aware suggestion configuration."""

    lookback: int = Field(default=30, alias="SUGGEST_LOOKBACK")
    buffer_days: int = Field(default=60, alias="SUGGEST_BUFFER_DAYS")
    source_api: str = Field(default="binance", alias="SUGGEST_SOURCE_API")
    interval: str = Field(default="1d", alias="SUGGEST_INTERVAL")
    risk_percent: float = Field(default=20.0, alias="SUGGEST_RISK_PERCENT")
    notional_cash: float = Field(default=100_000.0, alias="SUGGEST_NOTIONAL_CASH")

    @computed_field
    @property
    def history_days(self) -> int:
        return self.lookback + self.buffer_days


class Settings(BaseModel):
    """Aggregate settings wrapper."""

    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    selector: SelectorSettings = Field(default_factory=SelectorSettings)
    suggestion: SuggestionSettings = Field(default_factory=SuggestionSettings)

    model_config = {
        "frozen": True,
    }


def get_settings() -> Settings:
    """Return a fresh settings snapshot from the current environment."""
    return Settings()


def reload_settings() -> Settings:
    """Alias for get_settings to maintain a consistent API."""
    return get_settings()


def get_backtest_settings() -> BacktestSettings:
    return get_settings().backtest


def get_selector_settings() -> SelectorSettings:
    return get_settings().selector


def get_suggestion_settings() -> SuggestionSettings:
    return get_settings().suggestion


__all__ = [
    "Settings",
    "BacktestSettings",
    "SelectorSettings",
    "SuggestionSettings",
    "get_settings",
    "reload_settings",
    "get_backtest_settings",
    "get_selector_settings",
    "get_suggestion_settings",
]
