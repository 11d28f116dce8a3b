"""Signal generation: triangle pattern classification and signal fusion."""

from .patterns import (
    BreakoutState,
    BreakoutStatus,
    Direction,
    PatternClassifier,
    PatternResult,
    PatternType,
    Reliability,
    TradingPlan,
)
from .fusion import AlertAction, FusedSignal, SignalFusionEngine, pattern_alert

__all__ = [
    "BreakoutState",
    "BreakoutStatus",
    "Direction",
    "PatternClassifier",
    "PatternResult",
    "PatternType",
    "Reliability",
    "TradingPlan",
    "AlertAction",
    "FusedSignal",
    "SignalFusionEngine",
    "pattern_alert",
]
