"""EMA indicators and crossover trend signal.

The EMA is seeded with the simple average of the first ``period`` closes and
only emits values from that point on, so the output is shorter than the
input by ``period - 1``.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np
from loguru import logger
from numba import jit

from ..config import AnalysisConfig
from ..data.bars import PriceBar, PriceSeries, extract_closes

# Both EMA sequences need this many points before a crossover is trusted
MIN_EMA_POINTS = 5


class Signal(str, Enum):
    """Trading signal."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class EMAResult:
    """EMA crossover analysis result."""

    signal: Signal
    fast_ema: Optional[float]
    slow_ema: Optional[float]
    is_bull: bool
    is_bear: bool

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        data = asdict(self)
        data["signal"] = self.signal.value
        return data


@jit(nopython=True)
def _ema_kernel(values: np.ndarray, period: int) -> np.ndarray:
    """SMA-seeded EMA recursion.

    EMA(i) = (value(i) - EMA(i-1)) * k + EMA(i-1), k = 2 / (period + 1)

    Args:
        values: Input values (len >= period).
        period: Smoothing period.

    Returns:
        Array of len(values) - period + 1 EMA values.
    """
    n = len(values)
    k = 2.0 / (period + 1)
    out = np.empty(n - period + 1, dtype=np.float64)

    seed = 0.0
    for i in range(period):
        seed += values[i]
    out[0] = seed / period

    for i in range(period, n):
        j = i - period + 1
        out[j] = (values[i] - out[j - 1]) * k + out[j - 1]

    return out


def compute_ema(closes: Union[Sequence[float], np.ndarray], period: int) -> np.ndarray:
    """Compute an exponential moving average.

    Args:
        closes: Closing prices, oldest first.
        period: EMA period.

    Returns:
        Array of ``len(closes) - period + 1`` values, or an empty array when
        there are fewer than ``period`` closes.

    Raises:
        ValueError: If period < 1.

    Examples:
        >>> compute_ema([1.0, 2.0, 3.0], period=3).tolist()
        [2.0]
        >>> len(compute_ema([1.0, 2.0], period=3))
        0
    """
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")

    values = np.asarray(closes, dtype=np.float64)
    if len(values) < period:
        return np.empty(0, dtype=np.float64)

    return _ema_kernel(values, period)


def crossover_from_emas(fast: np.ndarray, slow: np.ndarray) -> Signal:
    """Classify the last step of two EMA sequences.

    BUY when fast moves from at-or-below slow to above it, SELL for the
    mirror move, HOLD otherwise (including fewer than two points).
    """
    if len(fast) < 2 or len(slow) < 2:
        return Signal.HOLD

    prev_fast, curr_fast = fast[-2], fast[-1]
    prev_slow, curr_slow = slow[-2], slow[-1]

    if prev_fast <= prev_slow and curr_fast > curr_slow:
        return Signal.BUY
    if prev_fast >= prev_slow and curr_fast < curr_slow:
        return Signal.SELL
    return Signal.HOLD


class TrendCrossoverDetector:
    """Fast/slow EMA crossover trend detector.

    Stateless: periods are read from the ``AnalysisConfig`` passed to each
    call, so one instance is safe to share across threads.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        """Initialize detector.

        Args:
            config: Default configuration when a call does not pass one.
        """
        self.config = config or AnalysisConfig()

    def crossover_signal(
        self,
        prices: Union[PriceSeries, Sequence[Union[PriceBar, float]]],
        config: Optional[AnalysisConfig] = None,
    ) -> EMAResult:
        """Compute the EMA crossover signal for a price window.

        Args:
            prices: PriceSeries, bars, or raw closing prices (oldest first).
            config: Periods to use; falls back to the instance config.

        Returns:
            EMAResult. HOLD with null EMAs when there are fewer than
            ``slow_period + 5`` closes.
        """
        config = config or self.config
        closes = extract_closes(prices)

        if len(closes) < config.slow_period + MIN_EMA_POINTS:
            logger.debug(
                f"Insufficient closes for EMA crossover: {len(closes)} "
                f"(need {config.slow_period + MIN_EMA_POINTS})"
            )
            return EMAResult(
                signal=Signal.HOLD,
                fast_ema=None,
                slow_ema=None,
                is_bull=False,
                is_bear=False,
            )

        fast = compute_ema(closes, config.fast_period)
        slow = compute_ema(closes, config.slow_period)

        if len(fast) < MIN_EMA_POINTS or len(slow) < MIN_EMA_POINTS:
            return EMAResult(
                signal=Signal.HOLD,
                fast_ema=float(fast[-1]) if len(fast) else None,
                slow_ema=float(slow[-1]) if len(slow) else None,
                is_bull=False,
                is_bear=False,
            )

        curr_fast = float(fast[-1])
        curr_slow = float(slow[-1])

        return EMAResult(
            signal=crossover_from_emas(fast, slow),
            fast_ema=curr_fast,
            slow_ema=curr_slow,
            is_bull=curr_fast > curr_slow,
            is_bear=curr_fast < curr_slow,
        )
