from __future__ import annotations

import numpy as np
import pytest

from tradelab.core.models import PortfolioSnapshot
from tradelab.strats.base import SignalAction, StrategyContext
from tradelab.strats.ichimoku import IchimokuCloudStrategy, ichimoku_lines

SHORT = {
    "tenkanPeriod": 2,
    "kijunPeriod": 3,
    "senkouSpanBPeriod": 4,
    "chikouLaggingPeriod": 1,
    "senkouCloudDisplacement": 1,
}
# tenkan crosses above kijun on the last bar, clear of a low cloud
BULLISH = [5.0, 5.0, 5.0, 5.0, 9.0, 7.0, 8.0, 12.0]
BEARISH = [20.0 - c for c in BULLISH]


def _context(bars, idx, *, cash=10_000.0, shares=0.0, **overrides):
    params = IchimokuCloudStrategy().resolve_parameters({**SHORT, **overrides})
    return StrategyContext(
        symbol="TEST",
        historical_data=tuple(bars),
        current_index=idx,
        portfolio=PortfolioSnapshot(cash, shares, cash, cash),
        parameters=params,
    )


def test_lines_at_last_bar():
    closes = np.array(BULLISH)
    lines = ichimoku_lines(
        closes,
        closes,
        closes,
        7,
        tenkan_period=2,
        kijun_period=3,
        span_b_period=4,
        chikou_lag=1,
        displacement=1,
    )

    assert lines.tenkan == pytest.approx(10.0)
    assert lines.kijun == pytest.approx(9.5)
    assert lines.span_a == pytest.approx(7.75)
    assert lines.span_b == pytest.approx(7.0)
    assert lines.chikou == pytest.approx(8.0)
    assert lines.future_span_a == pytest.approx(9.75)
    assert lines.future_span_b == pytest.approx(9.5)
    assert lines.complete()


def test_lines_are_incomplete_early():
    closes = np.array(BULLISH)
    lines = ichimoku_lines(
        closes,
        closes,
        closes,
        1,
        tenkan_period=2,
        kijun_period=3,
        span_b_period=4,
        chikou_lag=1,
        displacement=1,
    )
    assert lines.kijun is None
    assert lines.span_a is None
    assert not lines.complete()


@pytest.mark.anyio
async def test_buys_on_bullish_cross_above_cloud(make_bars):
    bars = make_bars(BULLISH)
    strategy = IchimokuCloudStrategy()

    assert (await strategy.execute(_context(bars, 7))).action is SignalAction.BUY
    starved = await strategy.execute(_context(bars, 7, cash=5.0))
    assert starved.action is SignalAction.HOLD


@pytest.mark.anyio
async def test_sells_on_bearish_cross_below_cloud(make_bars):
    bars = make_bars(BEARISH)
    strategy = IchimokuCloudStrategy()

    assert (await strategy.execute(_context(bars, 7, shares=1.0))).action is (
        SignalAction.SELL
    )
    assert (await strategy.execute(_context(bars, 7))).action is SignalAction.HOLD


@pytest.mark.anyio
async def test_holds_before_warmup(make_bars):
    bars = make_bars(BULLISH)
    # warm-up is max(2, 3, 4) + 1 + 1 = 6 bars
    signal = await IchimokuCloudStrategy().execute(_context(bars, 5))
    assert signal.action is SignalAction.HOLD


@pytest.mark.anyio
async def test_default_periods_need_long_history(make_bars):
    bars = make_bars([100.0 + i for i in range(60)])
    strategy = IchimokuCloudStrategy()
    params = strategy.resolve_parameters()
    context = StrategyContext(
        symbol="TEST",
        historical_data=tuple(bars),
        current_index=59,
        portfolio=PortfolioSnapshot(10_000.0, 0.0, 10_000.0, 10_000.0),
        parameters=params,
    )
    assert (await strategy.execute(context)).action is SignalAction.HOLD
