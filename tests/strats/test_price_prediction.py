from __future__ import annotations

import numpy as np
import pytest

from tradelab.core.models import PortfolioSnapshot
from tradelab.strats.base import SignalAction, StrategyContext
from tradelab.strats.model import (
    PricePredictor,
    SequenceScaler,
    create_price_sequences,
)
from tradelab.strats.price_prediction import PricePredictionStrategy

FAST = {"epochs": 100, "learningRate": 0.1, "buyThreshold": 0.55}


def _context(bars, idx, *, cash=100_000.0, shares=0.0, **overrides):
    params = PricePredictionStrategy().resolve_parameters({**FAST, **overrides})
    return StrategyContext(
        symbol="TEST",
        historical_data=tuple(bars),
        current_index=idx,
        portfolio=PortfolioSnapshot(cash, shares, cash, cash),
        parameters=params,
    )


def test_create_price_sequences_windows_and_targets():
    seqs, targets = create_price_sequences([1.0, 2.0, 1.5, 3.0, 2.0], 2, 1)

    assert seqs.shape == (3, 2)
    np.testing.assert_allclose(seqs[0], [1.0, 2.0])
    np.testing.assert_allclose(seqs[-1], [1.5, 3.0])
    # 2 -> 1.5 down, 1.5 -> 3 up, 3 -> 2 down
    np.testing.assert_array_equal(targets, [0.0, 1.0, 0.0])


def test_create_price_sequences_too_short():
    seqs, targets = create_price_sequences([1.0, 2.0], 3, 1)
    assert seqs.shape == (0, 3)
    assert targets.size == 0


def test_scaler_shares_one_range_across_positions():
    scaler = SequenceScaler().fit(np.array([[2.0, 4.0], [6.0, 10.0]]))
    np.testing.assert_allclose(
        scaler.transform(np.array([[2.0, 4.0], [6.0, 10.0]])),
        [[0.0, 0.25], [0.5, 1.0]],
    )
    np.testing.assert_allclose(scaler.transform(np.array([14.0, 6.0])), [[1.5, 0.5]])


def test_predictor_separates_up_and_down_windows():
    X = np.vstack([np.full((10, 4), 110.0), np.full((10, 4), 90.0)])
    y = np.array([1.0] * 10 + [0.0] * 10)
    model = PricePredictor(4, epochs=200, learning_rate=0.5).fit(X, y)

    assert model.trained and model.classifier is not None
    assert model.predict_proba(np.full(4, 110.0)) > 0.5
    assert model.predict_proba(np.full(4, 90.0)) < 0.5


def test_predictor_is_deterministic():
    rng = np.random.default_rng(3)
    X = 100.0 + rng.normal(size=(40, 5)).cumsum(axis=1)
    y = (rng.random(40) > 0.5).astype(float)

    first = PricePredictor(5, epochs=20, learning_rate=0.05).fit(X, y)
    second = PricePredictor(5, epochs=20, learning_rate=0.05).fit(X, y)
    assert first.predict_proba(X[0]) == second.predict_proba(X[0])


def test_predictor_with_one_direction_is_certain():
    X = np.full((20, 4), 50.0)
    ups = PricePredictor(4).fit(X, np.ones(20))
    downs = PricePredictor(4).fit(X, np.zeros(20))

    assert ups.classifier is None
    assert ups.predict_proba(X[0]) == 1.0
    assert downs.predict_proba(X[0]) == 0.0


def test_untrained_predictor_is_undecided():
    assert PricePredictor(3).predict_proba(np.ones(3)) == pytest.approx(0.5)


@pytest.mark.anyio
async def test_buys_on_learned_uptrend(make_bars):
    bars = make_bars([100.0 + i for i in range(100)])
    signal = await PricePredictionStrategy().execute(_context(bars, 99))

    assert signal.action is SignalAction.BUY
    assert signal.amount == 1


@pytest.mark.anyio
async def test_sells_on_learned_downtrend(make_bars):
    bars = make_bars([200.0 - i for i in range(100)])
    strategy = PricePredictionStrategy()

    assert (await strategy.execute(_context(bars, 50, shares=1.0))).action is (
        SignalAction.SELL
    )
    assert (await strategy.execute(_context(bars, 50))).action is SignalAction.HOLD


@pytest.mark.anyio
async def test_holds_inside_first_window(make_bars):
    bars = make_bars([100.0 + i for i in range(100)])
    signal = await PricePredictionStrategy().execute(_context(bars, 5))
    assert signal.action is SignalAction.HOLD


@pytest.mark.anyio
async def test_session_trains_once_and_resets_on_dispose(make_bars):
    bars = make_bars([100.0 + i for i in range(100)])
    session = PricePredictionStrategy().create_session()

    await session.execute(_context(bars, 80))
    model = session._model
    assert model is not None and model.trained

    await session.execute(_context(bars, 81))
    assert session._model is model

    session.dispose()
    assert session._model is None


@pytest.mark.anyio
async def test_insufficient_data_holds_for_whole_run(make_bars, caplog):
    bars = make_bars([100.0 + i for i in range(30)])
    session = PricePredictionStrategy().create_session()

    with caplog.at_level("WARNING"):
        signals = [await session.execute(_context(bars, i)) for i in range(30)]

    assert all(s.action is SignalAction.HOLD for s in signals)
    warnings = [r for r in caplog.records if "not enough data" in r.getMessage()]
    assert len(warnings) == 1
    session.dispose()
