from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from tradelab.backtest.evaluator import EvaluationMetric
from tradelab.data.source import InMemoryBarSource
from tradelab.services.suggestion import (
    SuggestionService,
    SymbolChoice,
    parse_metric,
    size_position,
)
from tradelab.settings import SuggestionSettings
from tradelab.strats.base import Strategy, StrategyParameterDefinition, StrategySignal
from tradelab.strats.registry import StrategyRegistry
from tradelab.strats.selector import AISelectorStrategy

NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)
RISING = [100.0 + i for i in range(60)]
FALLING = [200.0 - i for i in range(60)]


class BuyAndHold(Strategy):
    id = "buy-and-hold"
    name = "Buy and Hold"
    parameters = (StrategyParameterDefinition("tradeAmount", "Trade Amount", "number", 1),)

    async def decide(self, context):
        if context.portfolio.shares == 0:
            return StrategySignal.buy(context.parameters["tradeAmount"])
        return StrategySignal.hold()


class Idle(Strategy):
    id = "idle"
    name = "Idle"

    async def decide(self, context):
        return StrategySignal.hold()


class FailingSource:
    def fetch_bars(self, symbol, start, end, source=None, interval=None):
        raise ConnectionError("feed down")


@pytest.fixture
def registry():
    registry = StrategyRegistry([BuyAndHold(), Idle()])
    registry.register(AISelectorStrategy(registry))
    return registry


@pytest.fixture
def settings():
    return SuggestionSettings(source_api="historical", interval="1d")


@pytest.fixture
def bar_source(make_bars):
    return InMemoryBarSource(
        {
            "AAPL": make_bars(RISING, symbol="AAPL"),
            "MSFT": make_bars(FALLING, symbol="MSFT"),
            "BTCUSDT": make_bars([60_000.0 + 10 * i for i in range(60)], symbol="BTCUSDT"),
        }
    )


@pytest.mark.parametrize(
    "symbol, capital, risk, price, expected",
    [
        ("BTCUSDT", 1_000.0, 10.0, 50_000.0, 0.002),
        ("BTCUSDT", 100.0, 1.0, 60_000.0, 0.0001),
        ("AAPL", 1_000.0, 20.0, 30.0, 6.0),
        ("AAPL", 100.0, 10.0, 50.0, 1.0),
    ],
)
def test_size_position(symbol, capital, risk, price, expected):
    amount, note = size_position(symbol, capital, risk, price, original=7.0)
    assert amount == pytest.approx(expected)
    assert note is None


def test_size_position_keeps_original_when_capital_too_low():
    amount, note = size_position("BTCUSDT", 5.0, 20.0, 60_000.0, original=0.5)
    assert amount == 0.5
    assert note.startswith("Capital too low")

    amount, note = size_position("AAPL", 10.0, 20.0, 50.0, original=3.0)
    assert amount == 3.0
    assert "AAPL" in note


def test_size_position_without_price():
    amount, note = size_position("AAPL", 1_000.0, 20.0, 0.0, original=2.0)
    assert amount == 2.0
    assert note is not None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("WINRATE", EvaluationMetric.WIN_RATE),
        ("winRate", EvaluationMetric.WIN_RATE),
        ("Sharpe", EvaluationMetric.SHARPE),
        (None, EvaluationMetric.PNL),
        ("bogus", EvaluationMetric.PNL),
    ],
)
def test_parse_metric(raw, expected):
    assert parse_metric(raw) is expected


def _choice(symbol, pnl, sharpe=None, win_rate=None):
    return SymbolChoice(
        symbol=symbol,
        strategy_id="s",
        strategy_name="S",
        parameters={},
        evaluation_score=pnl,
        evaluation_metric="pnl",
        simulated_pnl=pnl,
        simulated_sharpe=sharpe,
        simulated_win_rate=win_rate,
        recent_price=1.0,
    )


def test_pick_overall_skips_unusable_scores_and_keeps_first_tie():
    choices = [
        _choice("A", None),
        _choice("B", math.nan),
        _choice("C", 2.0),
        _choice("D", 2.0),
    ]
    assert SuggestionService.pick_overall(choices, EvaluationMetric.PNL).symbol == "C"
    assert SuggestionService.pick_overall(choices, EvaluationMetric.SHARPE) is None


@pytest.mark.anyio
async def test_suggest_picks_best_symbol_and_sizes_trade(registry, bar_source, settings):
    service = SuggestionService(registry, bar_source, settings=settings)

    suggestion = await service.suggest(
        ["MSFT", "AAPL"], 10_000, lookback=5, risk_percentage=20, now=NOW
    )

    assert service.selector is registry.get("ai-selector")
    assert suggestion.symbol == "AAPL"
    assert suggestion.strategy_id == "buy-and-hold"
    assert suggestion.recent_price == 159.0
    # window is the five bars before the last: 154 -> 158
    assert suggestion.evaluation_score == pytest.approx(4.0)
    assert suggestion.evaluation_metric == "pnl"
    # 20% of 10000 at 159 floors to 12 shares
    assert suggestion.parameters == {"tradeAmount": 12.0}
    assert "adjusted to 12" in suggestion.message
    assert [c.symbol for c in suggestion.per_symbol] == ["MSFT", "AAPL"]
    assert suggestion.per_symbol[0].strategy_id == "idle"

    payload = suggestion.to_dict()
    assert payload["suggestedStrategyId"] == "buy-and-hold"
    assert payload["recentPriceUsed"] == 159.0


@pytest.mark.anyio
async def test_suggest_out_of_range_risk_uses_default(registry, bar_source, settings):
    service = SuggestionService(registry, bar_source, settings=settings)

    suggestion = await service.suggest(
        ["AAPL"], 10_000, lookback=5, risk_percentage=250, now=NOW
    )

    assert suggestion.parameters == {"tradeAmount": 12.0}


@pytest.mark.anyio
async def test_suggest_reports_capital_too_low(registry, bar_source, settings):
    service = SuggestionService(registry, bar_source, settings=settings)

    suggestion = await service.suggest(["BTCUSDT"], 5, lookback=5, now=NOW)

    assert suggestion.strategy_id == "buy-and-hold"
    assert suggestion.parameters == {"tradeAmount": 1.0}
    assert "Capital too low" in suggestion.message


@pytest.mark.anyio
async def test_suggest_without_sizing_parameter(bar_source, settings):
    registry = StrategyRegistry([Idle()])
    service = SuggestionService(registry, bar_source, settings=settings)

    suggestion = await service.suggest(["AAPL"], 10_000, lookback=5, now=NOW)

    assert suggestion.strategy_id == "idle"
    assert suggestion.parameters == {}
    assert "No trade sizing parameter" in suggestion.message


@pytest.mark.anyio
async def test_suggest_with_no_usable_history(registry, settings, make_bars):
    source = InMemoryBarSource({"AAPL": make_bars(RISING[:3], symbol="AAPL")})
    service = SuggestionService(registry, source, settings=settings)

    suggestion = await service.suggest(["AAPL", "GOOG"], 10_000, lookback=5, now=NOW)

    assert suggestion.strategy_id is None
    assert suggestion.parameters is None
    assert suggestion.message == "No suitable strategy could be determined for any symbol."


@pytest.mark.anyio
async def test_suggest_survives_failing_source(registry, settings):
    service = SuggestionService(registry, FailingSource(), settings=settings)

    suggestion = await service.suggest(["AAPL"], 10_000, lookback=5, now=NOW)

    assert suggestion.strategy_id is None


@pytest.mark.anyio
async def test_source_filters_come_from_settings(registry, bar_source):
    service = SuggestionService(
        registry, bar_source, settings=SuggestionSettings(source_api="binance")
    )

    suggestion = await service.suggest(["AAPL"], 10_000, lookback=5, now=NOW)

    assert suggestion.strategy_id is None
