from __future__ import annotations

import inspect
from datetime import date, datetime
from pathlib import Path
from typing import (
    Awaitable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

import pandas as pd
from loguru import logger

from tradelab.core.exceptions import DataValidationError
from tradelab.core.models import Bar

DateLike = Union[str, date, datetime, pd.Timestamp]

_PRICE_COLUMNS = ("open", "high", "low", "close")
_FRAME_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


@runtime_checkable
class BarSource(Protocol):
    """Anything that can hand the engine an ascending run of bars."""

    def fetch_bars(
        self,
        symbol: str,
        start: DateLike,
        end: DateLike,
        source: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> Union[Sequence[Bar], Awaitable[Sequence[Bar]]]: ...


def as_date(value: DateLike) -> date:
    """Coerce ISO strings, datetimes and pandas timestamps to a calendar date."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = pd.Timestamp(str(value))
    except (TypeError, ValueError) as exc:
        raise DataValidationError(f"unparsable date: {value!r}") from exc
    if pd.isna(parsed):
        raise DataValidationError(f"unparsable date: {value!r}")
    return parsed.date()


async def load_bars(
    bar_source: BarSource,
    symbol: str,
    start: DateLike,
    end: DateLike,
    source: Optional[str] = None,
    interval: Optional[str] = None,
) -> List[Bar]:
    """Fetch from ``bar_source``, awaiting the result when the source is async."""
    bars = bar_source.fetch_bars(symbol, start, end, source, interval)
    if inspect.isawaitable(bars):
        bars = await bars
    return list(bars or [])


def _in_range(bar: Bar, start: date, end: date) -> bool:
    return start <= bar.date.date() <= end


def _filter(
    bars: Iterable[Bar],
    start: DateLike,
    end: DateLike,
    source: Optional[str],
    interval: Optional[str],
) -> List[Bar]:
    lo, hi = as_date(start), as_date(end)
    out = [
        bar
        for bar in bars
        if _in_range(bar, lo, hi)
        and (source is None or bar.source == source)
        and (interval is None or bar.interval == interval)
    ]
    out.sort(key=lambda bar: bar.timestamp)
    return out


def _timestamps(df: pd.DataFrame) -> pd.Series:
    if "timestamp" in df.columns:
        raw = df["timestamp"]
        if pd.api.types.is_numeric_dtype(raw):
            return raw.astype("int64")
        parsed = pd.to_datetime(raw, utc=True)
    elif "date" in df.columns:
        parsed = pd.to_datetime(df["date"], utc=True)
    elif isinstance(df.index, pd.DatetimeIndex):
        idx = df.index
        idx = idx.tz_localize("UTC") if idx.tz is None else idx.tz_convert("UTC")
        parsed = pd.Series(idx, index=df.index)
    else:
        raise DataValidationError(
            "bar frame needs a 'timestamp' or 'date' column or a DatetimeIndex"
        )
    return pd.Series(
        [int(ts.timestamp()) for ts in parsed], index=df.index, dtype="int64"
    )


def bars_from_dataframe(
    df: pd.DataFrame,
    symbol: str = "",
    source: str = "historical",
    interval: str = "1d",
) -> List[Bar]:
    """
    Convert an OHLCV frame into ascending ``Bar`` objects.

    Column names are matched case-insensitively. ``volume`` is optional; rows with
    a missing price are dropped.

    Raises:
        DataValidationError: When a price column or the time column is missing.
    """
    if df is None or df.empty:
        return []
    frame = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    missing = [c for c in _PRICE_COLUMNS if c not in frame.columns]
    if missing:
        raise DataValidationError(f"bar frame missing columns: {', '.join(missing)}")

    stamps = _timestamps(frame)
    prices = frame[list(_PRICE_COLUMNS)].astype(float)
    volume = (
        frame["volume"].astype(float).fillna(0.0)
        if "volume" in frame.columns
        else pd.Series(0.0, index=frame.index)
    )
    valid = prices.notna().all(axis=1)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("[data] {}: dropped {} rows with missing prices", symbol, dropped)

    mask = valid.to_numpy()
    rows = zip(
        stamps.to_numpy()[mask],
        prices.to_numpy()[mask],
        volume.to_numpy()[mask],
    )
    bars = [
        Bar.from_timestamp(
            int(ts),
            open=o,
            high=h,
            low=l,
            close=c,
            volume=v,
            source=source,
            interval=interval,
            symbol=symbol,
        )
        for ts, (o, h, l, c), v in rows
    ]
    bars.sort(key=lambda bar: bar.timestamp)
    return bars


def bars_to_dataframe(bars: Sequence[Bar]) -> pd.DataFrame:
    """Bars as a frame indexed by UTC date."""
    if not bars:
        return pd.DataFrame(columns=_FRAME_COLUMNS)
    raw = [
        {
            "date": bar.date,
            "timestamp": bar.timestamp,
            "open": bar.open,
            "high": bar.high,
            "low": bar.low,
            "close": bar.close,
            "volume": bar.volume,
        }
        for bar in bars
    ]
    return pd.DataFrame(raw).set_index("date").sort_index()


class InMemoryBarSource:
    """Bars held in memory, keyed by symbol."""

    def __init__(self, bars: Optional[Mapping[str, Iterable[Bar]]] = None) -> None:
        self._bars: Dict[str, List[Bar]] = {}
        for symbol, series in (bars or {}).items():
            self.add(symbol, series)

    def add(self, symbol: str, bars: Iterable[Bar]) -> None:
        self._bars.setdefault(symbol, []).extend(bars)

    def symbols(self) -> List[str]:
        return list(self._bars)

    def fetch_bars(
        self,
        symbol: str,
        start: DateLike,
        end: DateLike,
        source: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> List[Bar]:
        return _filter(self._bars.get(symbol, ()), start, end, source, interval)


class CsvBarSource:
    """
    Reads ``<SYMBOL>.csv`` files from a directory.

    Files are parsed once and kept in memory. A missing file yields no bars.
    Each file holds one source and interval, so the ``source`` and ``interval``
    filters of ``fetch_bars`` are not applied.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        *,
        source: str = "historical",
        interval: str = "1d",
    ) -> None:
        self.directory = Path(directory)
        self.source = source
        self.interval = interval
        self._cache: Dict[str, List[Bar]] = {}

    def path_for(self, symbol: str) -> Path:
        return self.directory / f"{symbol}.csv"

    def _load(self, symbol: str) -> List[Bar]:
        if symbol in self._cache:
            return self._cache[symbol]
        path = self.path_for(symbol)
        if not path.exists():
            logger.warning("[data] no CSV for {} at {}", symbol, path)
            return []
        df = pd.read_csv(path)
        bars = bars_from_dataframe(
            df, symbol=symbol, source=self.source, interval=self.interval
        )
        logger.debug("[data] loaded {} bars for {} from {}", len(bars), symbol, path)
        self._cache[symbol] = bars
        return bars

    def fetch_bars(
        self,
        symbol: str,
        start: DateLike,
        end: DateLike,
        source: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> List[Bar]:
        return _filter(self._load(symbol), start, end, None, None)


__all__ = [
    "BarSource",
    "CsvBarSource",
    "InMemoryBarSource",
    "as_date",
    "load_bars",
    "bars_from_dataframe",
    "bars_to_dataframe",
]
