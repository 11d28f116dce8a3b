"""Price bar and price series schemas.

A ``PriceSeries`` is the single input type for analysis. Bars always carry
OHLCV slots; a caller that only has closes builds a reduced series with
``PriceSeries.from_closes`` and pattern detection simply finds no usable bars.
"""

import math
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union, overload

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import MalformedSeriesError

PRICE_FIELDS = ("open", "high", "low", "close", "volume")


def _to_float(value: Any) -> Optional[float]:
    """Coerce a raw value to float, mapping anything unusable to None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


class PriceBar(BaseModel):
    """Standardized OHLCV bar.

    Missing or non-numeric fields are stored as None instead of failing
    validation; such bars are reported through ``is_usable``.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: Optional[int] = Field(None, description="Bar open time (epoch ms)")
    open: Optional[float] = Field(None, description="Opening price")
    high: Optional[float] = Field(None, description="High price")
    low: Optional[float] = Field(None, description="Low price")
    close: Optional[float] = Field(None, description="Closing price")
    volume: Optional[float] = Field(None, description="Volume")

    @field_validator("open", "high", "low", "close", "volume", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[float]:
        """Map missing or non-numeric values to None."""
        return _to_float(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Optional[int]:
        """Accept epoch ms as int/float, or anything pandas can parse."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, np.integer)):
            return int(v)
        if isinstance(v, (float, np.floating)):
            return None if math.isnan(v) else int(v)
        try:
            ts = pd.Timestamp(v)
        except (TypeError, ValueError):
            return None
        if pd.isna(ts):
            return None
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")
        return int(ts.value // 1_000_000)

    @property
    def has_close(self) -> bool:
        """Whether the close is a finite number."""
        return self.close is not None and math.isfinite(self.close)

    @property
    def is_usable(self) -> bool:
        """Whether every OHLCV field is present, finite and consistent."""
        values = [getattr(self, name) for name in PRICE_FIELDS]
        if any(v is None or not math.isfinite(v) or v < 0 for v in values):
            return False
        return self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high


class PriceSeries(Sequence[PriceBar]):
    """Immutable, chronologically ordered sequence of price bars."""

    __slots__ = ("_bars",)

    def __init__(self, bars: Iterable[PriceBar] = ()) -> None:
        """Initialize series.

        Args:
            bars: Bars in chronological order.

        Raises:
            MalformedSeriesError: If present timestamps are not strictly increasing.
        """
        self._bars: Tuple[PriceBar, ...] = tuple(bars)

        last_ts: Optional[int] = None
        for i, bar in enumerate(self._bars):
            if bar.timestamp is None:
                continue
            if last_ts is not None and bar.timestamp <= last_ts:
                raise MalformedSeriesError(
                    f"Timestamps must be strictly increasing (bar {i}: {bar.timestamp} <= {last_ts})"
                )
            last_ts = bar.timestamp

    @classmethod
    def from_records(cls, records: Iterable[Union[Mapping[str, Any], Sequence[Any]]]) -> "PriceSeries":
        """Build a series from mappings or ``[ts, open, high, low, close, volume]`` rows.

        Rows shorter than six elements leave the trailing fields missing.
        """
        bars = []
        for record in records:
            if isinstance(record, Mapping):
                bars.append(PriceBar(**{k: record.get(k) for k in ("timestamp",) + PRICE_FIELDS}))
            else:
                row = list(record) + [None] * (6 - len(record))
                bars.append(
                    PriceBar(
                        timestamp=row[0],
                        open=row[1],
                        high=row[2],
                        low=row[3],
                        close=row[4],
                        volume=row[5],
                    )
                )
        return cls(bars)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "PriceSeries":
        """Build a series from a DataFrame with OHLCV columns.

        Timestamps come from a ``timestamp`` column if present, otherwise
        from a DatetimeIndex. Missing columns leave those fields empty.
        """
        if "timestamp" in df.columns:
            timestamps = list(df["timestamp"])
        elif isinstance(df.index, pd.DatetimeIndex):
            timestamps = list(df.index)
        else:
            timestamps = [None] * len(df)

        columns = {
            name: (list(df[name]) if name in df.columns else [None] * len(df))
            for name in PRICE_FIELDS
        }
        bars = [
            PriceBar(timestamp=timestamps[i], **{name: columns[name][i] for name in PRICE_FIELDS})
            for i in range(len(df))
        ]
        return cls(bars)

    @classmethod
    def from_closes(cls, closes: Iterable[float]) -> "PriceSeries":
        """Build a reduced close-only series indexed by position."""
        return cls(PriceBar(timestamp=i, close=c) for i, c in enumerate(closes))

    @overload
    def __getitem__(self, index: int) -> PriceBar: ...

    @overload
    def __getitem__(self, index: slice) -> "PriceSeries": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return PriceSeries(self._bars[index])
        return self._bars[index]

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[PriceBar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return f"PriceSeries({len(self._bars)} bars)"

    @property
    def closes(self) -> np.ndarray:
        """Finite closing prices, in order."""
        return np.array([bar.close for bar in self._bars if bar.has_close], dtype=np.float64)

    def usable_bars(self) -> List[Tuple[int, PriceBar]]:
        """Usable bars paired with their position in this series."""
        return [(i, bar) for i, bar in enumerate(self._bars) if bar.is_usable]

    def tail(self, n: int) -> "PriceSeries":
        """The most recent ``n`` bars as a new series."""
        if n <= 0:
            return PriceSeries()
        return PriceSeries(self._bars[-n:])

    def to_frame(self) -> pd.DataFrame:
        """Convert to a DataFrame with a ``timestamp`` column."""
        return pd.DataFrame(
            [bar.model_dump() for bar in self._bars],
            columns=["timestamp", *PRICE_FIELDS],
        )


def extract_closes(prices: Union[PriceSeries, Sequence[Union[PriceBar, float, None]]]) -> np.ndarray:
    """Closing prices from a series, a list of bars, or a list of floats.

    Bars without a finite close and non-finite floats are dropped.
    """
    if isinstance(prices, PriceSeries):
        return prices.closes

    closes = []
    for item in prices:
        if isinstance(item, PriceBar):
            if item.has_close:
                closes.append(item.close)
            continue
        value = _to_float(item)
        if value is not None and math.isfinite(value):
            closes.append(value)
    return np.array(closes, dtype=np.float64)
