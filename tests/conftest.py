from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest
from dotenv import load_dotenv

from tradelab.core.models import Bar
from tradelab.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def load_env():
    load_dotenv(override=False)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging(Path("tradelab-logs/"))
    yield


@pytest.fixture
def anyio_backend():
    """Force anyio-powered async tests to run under asyncio backend only."""
    return "asyncio"


def build_bars(
    closes: Sequence[float],
    *,
    symbol: str = "TEST",
    start: datetime = _EPOCH,
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
    source: str = "historical",
    interval: str = "1d",
) -> List[Bar]:
    bars = []
    for i, close in enumerate(closes):
        ts = int((start + timedelta(days=i)).timestamp())
        bars.append(
            Bar.from_timestamp(
                ts,
                open=close,
                high=highs[i] if highs is not None else close,
                low=lows[i] if lows is not None else close,
                close=close,
                volume=1_000.0,
                source=source,
                interval=interval,
                symbol=symbol,
            )
        )
    return bars


@pytest.fixture
def make_bars() -> Callable[..., List[Bar]]:
    """Daily bars starting 2024-01-01 UTC with open=high=low=close by default."""
    return build_bars
