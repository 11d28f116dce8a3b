"""Support and resistance trendline fitting.

Swing highs and swing lows are found with a strict local-extremum test, and
a line is fitted through each set with the Theil-Sen estimator. Theil-Sen
takes the median of pairwise slopes, so a few spurious pivots left by failed
breakout attempts do not tilt the line.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from scipy.signal import argrelextrema
from scipy.stats import theilslopes

from ..data.bars import PriceBar, PriceSeries

RESISTANCE = "resistance"
SUPPORT = "support"


@dataclass(frozen=True)
class TrendLine:
    """Fitted trendline ``price = slope * index + intercept``.

    Indices are bar positions in the analysed window.
    """

    kind: str
    slope: float
    intercept: float
    touch_indices: frozenset
    avg_deviation: float
    start_index: int

    def price_at(self, index: float) -> float:
        """Line value at a bar index."""
        return self.slope * index + self.intercept

    @property
    def touch_count(self) -> int:
        """Number of pivots within tolerance of the line."""
        return len(self.touch_indices)

    def relative_slope(self, reference_price: float) -> float:
        """Slope per bar as a fraction of ``reference_price``."""
        return self.slope / reference_price

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "kind": self.kind,
            "slope": self.slope,
            "intercept": self.intercept,
            "touch_indices": sorted(self.touch_indices),
            "avg_deviation": self.avg_deviation,
            "start_index": self.start_index,
        }


@dataclass(frozen=True)
class FittedTrendlines:
    """Result of fitting both sides of a window."""

    resistance: Optional[TrendLine]
    support: Optional[TrendLine]
    bar_count: int
    usable_count: int

    @property
    def complete(self) -> bool:
        """Whether both lines were accepted."""
        return self.resistance is not None and self.support is not None


def find_pivots(values: np.ndarray, order: int = 3, kind: str = RESISTANCE) -> np.ndarray:
    """Positions of strict local extrema.

    A swing high must be strictly greater than every value within ``order``
    positions on either side (swing low: strictly less). The first and last
    positions are never pivots.

    Args:
        values: Price values.
        order: Neighbours on each side to compare.
        kind: RESISTANCE for highs, SUPPORT for lows.

    Returns:
        Array of positions into ``values``.
    """
    if len(values) < 2:
        return np.empty(0, dtype=np.int64)

    comparator = np.greater if kind == RESISTANCE else np.less
    return argrelextrema(np.asarray(values, dtype=np.float64), comparator, order=order)[0]


def _touches(
    indices: np.ndarray,
    prices: np.ndarray,
    slope: float,
    intercept: float,
    tolerance: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Pivots within ``tolerance`` of a line, with their relative deviations."""
    line = slope * indices + intercept
    positive = line > 0
    deviation = np.full(len(indices), np.inf)
    deviation[positive] = np.abs(prices[positive] - line[positive]) / line[positive]
    mask = deviation <= tolerance
    return mask, deviation


def fit_line(
    indices: np.ndarray,
    prices: np.ndarray,
    kind: str,
    tolerance: float,
    min_touch_points: int,
) -> Optional[TrendLine]:
    """Fit one trendline through pivot points.

    Args:
        indices: Window indices of the pivots.
        prices: Pivot prices (highs for resistance, lows for support).
        kind: RESISTANCE or SUPPORT.
        tolerance: Maximum relative deviation for a touch.
        min_touch_points: Touches needed to accept the line.

    Returns:
        TrendLine, or None if fewer than ``min_touch_points`` pivots touch it.
    """
    if len(indices) < max(min_touch_points, 2):
        return None

    x = indices.astype(np.float64)
    slope, intercept, _, _ = theilslopes(prices, x)
    mask, deviation = _touches(x, prices, slope, intercept, tolerance)

    # Refit on the touching pivots only, keeping the refit if it holds as many touches
    if mask.sum() >= 2 and mask.sum() < len(x):
        r_slope, r_intercept, _, _ = theilslopes(prices[mask], x[mask])
        r_mask, r_deviation = _touches(x, prices, r_slope, r_intercept, tolerance)
        if r_mask.sum() >= mask.sum():
            slope, intercept, mask, deviation = r_slope, r_intercept, r_mask, r_deviation

    touch_count = int(mask.sum())
    if touch_count < min_touch_points:
        logger.debug(f"{kind} line rejected: {touch_count} touches < {min_touch_points}")
        return None

    touch_indices = indices[mask]

    return TrendLine(
        kind=kind,
        slope=float(slope),
        intercept=float(intercept),
        touch_indices=frozenset(int(i) for i in touch_indices),
        avg_deviation=float(np.mean(deviation[mask])),
        start_index=int(touch_indices.min()),
    )


def fit_trendlines(
    bars: Optional[Sequence[PriceBar]],
    tolerance: float = 0.02,
    min_touch_points: int = 3,
    min_bars: int = 20,
    extrema_order: int = 3,
) -> FittedTrendlines:
    """Fit resistance through swing highs and support through swing lows.

    Malformed bars are skipped; pivot indices still refer to positions in
    ``bars`` so gaps never shift the geometry.

    Args:
        bars: Price window, oldest first.
        tolerance: Maximum relative deviation for a touch.
        min_touch_points: Touches needed to accept each line.
        min_bars: Usable bars needed to attempt a fit.
        extrema_order: Neighbours on each side a pivot must exceed.

    Returns:
        FittedTrendlines; a side is None when it could not be fitted.
    """
    if not bars:
        return FittedTrendlines(resistance=None, support=None, bar_count=0, usable_count=0)

    series = bars if isinstance(bars, PriceSeries) else PriceSeries(bars)
    usable: List[Tuple[int, PriceBar]] = series.usable_bars()

    if len(usable) < min_bars:
        logger.debug(f"Trendline fit skipped: {len(usable)} usable bars < {min_bars}")
        return FittedTrendlines(
            resistance=None,
            support=None,
            bar_count=len(series),
            usable_count=len(usable),
        )

    positions = np.array([i for i, _ in usable], dtype=np.int64)
    highs = np.array([bar.high for _, bar in usable], dtype=np.float64)
    lows = np.array([bar.low for _, bar in usable], dtype=np.float64)

    peak_pos = find_pivots(highs, extrema_order, RESISTANCE)
    trough_pos = find_pivots(lows, extrema_order, SUPPORT)

    resistance = fit_line(positions[peak_pos], highs[peak_pos], RESISTANCE, tolerance, min_touch_points)
    support = fit_line(positions[trough_pos], lows[trough_pos], SUPPORT, tolerance, min_touch_points)

    return FittedTrendlines(
        resistance=resistance,
        support=support,
        bar_count=len(series),
        usable_count=len(usable),
    )
