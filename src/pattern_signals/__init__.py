"""Pattern Signals: EMA crossover and triangle pattern signal engine.

Turns a window of OHLCV price bars into a BUY/SELL/HOLD signal with a
confidence score and a readable rationale, fusing an EMA crossover trend
signal with converging-trendline (triangle) pattern analysis.
"""

__version__ = "0.1.0"

from .config import AnalysisConfig
from .data import PriceBar, PriceSeries
from .pipeline import AnalysisResult, analyze, analyze_many

__all__ = [
    "AnalysisConfig",
    "PriceBar",
    "PriceSeries",
    "AnalysisResult",
    "analyze",
    "analyze_many",
]
