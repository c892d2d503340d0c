from __future__ import annotations

from datetime import date

import pytest

from tradelab.backtest.engine import BacktestEngine, profit_or_loss_percentage
from tradelab.core.exceptions import ParameterValidationError
from tradelab.core.models import TradeAction
from tradelab.data.source import InMemoryBarSource
from tradelab.settings import BacktestSettings
from tradelab.strats.base import Strategy, StrategySignal
from tradelab.strats.registry import StrategyRegistry
from tradelab.strats.selector import AISelectorStrategy
from tradelab.strats.simple_threshold import SimpleThresholdStrategy

THRESHOLD_CLOSES = [145.0, 151.0, 155.0, 160.0, 165.0]


class ScriptedByPrice(Strategy):
    """Buys at 151 and sells at 160."""

    id = "scripted"
    name = "Scripted"

    async def decide(self, context):
        price = context.current_bar.close
        if price == 151.0:
            return StrategySignal.buy(1)
        if price == 160.0:
            return StrategySignal.sell(1)
        return StrategySignal.hold()


class AlwaysBuy(Strategy):
    id = "always-buy"
    name = "Always Buy"

    async def decide(self, context):
        return StrategySignal.buy(3)


class Holder(Strategy):
    id = "holder"
    name = "Holder"

    async def decide(self, context):
        if context.portfolio.shares == 0:
            return StrategySignal.buy()
        return StrategySignal.hold()


class AsyncSource:
    def __init__(self, bars):
        self.inner = InMemoryBarSource({"TEST": bars})
        self.calls = []

    async def fetch_bars(self, symbol, start, end, source=None, interval=None):
        self.calls.append((symbol, source, interval))
        return self.inner.fetch_bars(symbol, start, end)


def _engine(bars, *strategies, **settings):
    registry = StrategyRegistry(strategies or [SimpleThresholdStrategy()])
    source = InMemoryBarSource({"TEST": bars})
    return BacktestEngine(registry, source, BacktestSettings(**settings))


@pytest.mark.parametrize(
    "pnl, initial, expected",
    [(9.0, 10_000.0, 0.09), (0.0, 0.0, 0.0), (-50.0, 200.0, -25.0)],
)
def test_profit_or_loss_percentage(pnl, initial, expected):
    assert profit_or_loss_percentage(pnl, initial) == pytest.approx(expected)


def test_profit_from_nothing_is_infinite():
    assert profit_or_loss_percentage(5.0, 0.0) == float("inf")


@pytest.mark.anyio
async def test_buy_then_sell_round_trip(make_bars):
    engine = _engine(make_bars(THRESHOLD_CLOSES), ScriptedByPrice())

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-05", 10_000, "scripted"
    )

    assert [t.action for t in result.trades] == [TradeAction.BUY, TradeAction.SELL]
    assert [t.price for t in result.trades] == [151.0, 160.0]
    assert result.total_trades == 2
    assert result.final_portfolio_value == pytest.approx(10_009.0)
    assert result.total_profit_or_loss == pytest.approx(9.0)
    assert result.profit_or_loss_percentage == pytest.approx(0.09)
    assert result.data_points_processed == 5
    assert result.strategy_id == "scripted"
    assert result.parameters_used == {}
    assert result.ai_decision_log is None


@pytest.mark.anyio
async def test_threshold_strategy_keeps_buying_above_upper(make_bars):
    engine = _engine(make_bars(THRESHOLD_CLOSES))

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-05", 10_000, "simple-threshold"
    )

    assert [t.price for t in result.trades] == [151.0, 155.0, 160.0, 165.0]
    assert all(t.action is TradeAction.BUY for t in result.trades)
    # 10000 - 631 cash + 4 shares at 165
    assert result.final_portfolio_value == pytest.approx(10_029.0)
    assert result.parameters_used == {
        "upperThreshold": 150,
        "lowerThreshold": 140,
        "tradeAmount": 1,
    }


@pytest.mark.anyio
async def test_no_bars_gives_neutral_result(make_bars):
    engine = _engine(make_bars(THRESHOLD_CLOSES))

    result = await engine.run_backtest(
        "TEST", "2023-01-01", "2023-01-31", 10_000, "simple-threshold"
    )

    assert result.trades == []
    assert result.final_portfolio_value == 10_000.0
    assert result.profit_or_loss_percentage == 0.0
    assert result.data_points_processed == 0
    assert result.strategy_id == "simple-threshold"
    assert result.parameters_used["upperThreshold"] == 150
    assert result.portfolio_history == []


@pytest.mark.anyio
async def test_too_little_cash_never_trades(make_bars):
    engine = _engine(make_bars([151.0]))

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-01", 100, "simple-threshold"
    )

    assert result.total_trades == 0
    assert result.final_portfolio_value == 100.0
    assert result.data_points_processed == 1


@pytest.mark.anyio
async def test_unknown_strategy_is_logged_not_raised(make_bars, caplog):
    engine = _engine(make_bars(THRESHOLD_CLOSES))

    with caplog.at_level("ERROR"):
        result = await engine.run_backtest(
            "TEST", "2024-01-01", "2024-01-05", 500, "nope"
        )

    assert result.strategy_id is None
    assert result.parameters_used is None
    assert result.final_portfolio_value == 500.0
    assert result.total_trades == 0
    assert any("Strategy with ID nope not found" in r.getMessage() for r in caplog.records)


@pytest.mark.anyio
async def test_invalid_parameters_raise(make_bars):
    engine = _engine(make_bars(THRESHOLD_CLOSES))

    with pytest.raises(ParameterValidationError):
        await engine.run_backtest(
            "TEST",
            "2024-01-01",
            "2024-01-05",
            10_000,
            "simple-threshold",
            {"upperThreshold": "high"},
        )


@pytest.mark.anyio
async def test_date_range_is_inclusive(make_bars):
    engine = _engine(make_bars(THRESHOLD_CLOSES))

    result = await engine.run_backtest(
        "TEST", date(2024, 1, 2), "2024-01-03", 10_000, "simple-threshold"
    )

    assert result.data_points_processed == 2
    assert result.start_date == date(2024, 1, 2)
    assert result.end_date == date(2024, 1, 3)


@pytest.mark.anyio
async def test_async_source_and_defaults_are_forwarded(make_bars):
    source = AsyncSource(make_bars(THRESHOLD_CLOSES))
    engine = BacktestEngine(
        StrategyRegistry([SimpleThresholdStrategy()]),
        source,
        BacktestSettings(default_source="binance", default_interval="1h"),
    )

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-05", 10_000, "simple-threshold", interval="1d"
    )

    assert result.data_points_processed == 5
    assert source.calls == [("TEST", "binance", "1d")]


@pytest.mark.anyio
async def test_ledger_invariants_hold_every_bar(make_bars):
    closes = [10.0, 12.0, 9.0, 15.0, 11.0, 14.0]
    bars = make_bars(closes)
    engine = _engine(bars, AlwaysBuy())

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-06", 100, "always-buy"
    )

    assert all(t.cash_after_trade >= 0 for t in result.trades)
    assert len(result.portfolio_history) == len(bars)
    assert [p.timestamp for p in result.portfolio_history] == [b.timestamp for b in bars]

    shares = sum(t.shares_traded for t in result.trades)
    cash = result.trades[-1].cash_after_trade
    assert result.final_portfolio_value == pytest.approx(cash + shares * closes[-1])
    assert result.portfolio_history[-1].value == pytest.approx(
        result.final_portfolio_value
    )
    assert result.sharpe_ratio is not None
    assert 0.0 <= result.max_drawdown <= 1.0


@pytest.mark.anyio
@pytest.mark.parametrize("include", [True, False])
async def test_include_bars_setting(make_bars, include):
    bars = make_bars(THRESHOLD_CLOSES)
    engine = _engine(bars, SimpleThresholdStrategy(), include_bars=include)

    result = await engine.run_backtest(
        "TEST", "2024-01-01", "2024-01-05", 10_000, "simple-threshold"
    )

    assert result.historical_data_used == (bars if include else None)


@pytest.mark.anyio
async def test_selector_run_records_decision_log(make_bars):
    bars = make_bars([100.0 + i for i in range(10)])
    registry = StrategyRegistry([Holder()])
    registry.register(AISelectorStrategy(registry))
    engine = BacktestEngine(registry, InMemoryBarSource({"TEST": bars}), BacktestSettings())

    result = await engine.run_backtest(
        "TEST",
        "2024-01-01",
        "2024-01-10",
        10_000,
        "ai-selector",
        {"evaluationLookbackPeriod": 5},
    )

    assert len(result.ai_decision_log) == 5
    assert [d.timestamp for d in result.ai_decision_log] == [
        b.timestamp for b in bars[5:]
    ]
    assert {d.chosen_strategy_id for d in result.ai_decision_log} == {"holder"}
    # first delegated bar buys, the live portfolio then holds
    assert [t.price for t in result.trades] == [105.0]
    assert result.final_portfolio_value == pytest.approx(10_000 - 105.0 + 109.0)
