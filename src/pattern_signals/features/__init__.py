"""Feature engineering: EMA indicators and trendline fitting."""

from .indicators import EMAResult, Signal, TrendCrossoverDetector, compute_ema
from .trendlines import FittedTrendlines, TrendLine, fit_trendlines

__all__ = [
    "EMAResult",
    "Signal",
    "TrendCrossoverDetector",
    "compute_ema",
    "FittedTrendlines",
    "TrendLine",
    "fit_trendlines",
]
