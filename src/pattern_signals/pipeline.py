"""Composed analysis entry points.

``analyze`` runs the EMA crossover detector and the triangle classifier on
one window and fuses their outputs. ``analyze_many`` scans several symbols
concurrently; every component is stateless so no locking is needed.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from loguru import logger

from .config import AnalysisConfig
from .data.bars import PriceSeries
from .features.indicators import EMAResult, TrendCrossoverDetector
from .signals.fusion import AlertAction, FusedSignal, SignalFusionEngine, pattern_alert
from .signals.patterns import PatternClassifier, PatternResult

_detector = TrendCrossoverDetector()
_classifier = PatternClassifier()
_fusion = SignalFusionEngine()


@dataclass(frozen=True)
class AnalysisResult:
    """Complete analysis of one price window."""

    ema: EMAResult
    pattern: Optional[PatternResult]
    fused: FusedSignal
    pattern_alert: AlertAction

    def to_dict(self) -> dict:
        """JSON-friendly representation consumed by notification layers."""
        return {
            "ema": self.ema.to_dict(),
            "pattern": self.pattern.to_dict() if self.pattern else None,
            "fused": self.fused.to_dict(),
            "pattern_alert": self.pattern_alert.value,
        }


def analyze(window: PriceSeries, config: Optional[AnalysisConfig] = None) -> AnalysisResult:
    """Analyze one price window.

    Args:
        window: Price bars, oldest first. Never mutated.
        config: Analysis parameters (defaults when omitted).

    Returns:
        AnalysisResult. ``pattern`` is None when pattern detection is
        disabled or the last ``max_bars`` bars hold no usable OHLCV bar.
    """
    config = config or AnalysisConfig()

    ema = _detector.crossover_signal(window, config)

    pattern = None
    if config.enable_patterns:
        pattern_window = window.tail(config.max_bars)
        if pattern_window.usable_bars():
            pattern = _classifier.classify(pattern_window, config=config)

    fused = _fusion.fuse(ema, pattern)

    return AnalysisResult(
        ema=ema,
        pattern=pattern,
        fused=fused,
        pattern_alert=pattern_alert(pattern),
    )


def analyze_many(
    windows: Mapping[str, PriceSeries],
    config: Optional[AnalysisConfig] = None,
    max_workers: Optional[int] = None,
) -> Dict[str, AnalysisResult]:
    """Analyze several symbols concurrently.

    A symbol whose analysis raises is logged and left out of the result;
    the remaining symbols still complete.

    Args:
        windows: Price window per symbol.
        config: Shared analysis parameters.
        max_workers: Thread pool size (executor default when None).

    Returns:
        Dict of symbol to AnalysisResult, in input order.
    """
    config = config or AnalysisConfig()
    results: Dict[str, AnalysisResult] = {}

    if not windows:
        return results

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(analyze, window, config): symbol for symbol, window in windows.items()}

        for future in as_completed(futures):
            symbol = futures[future]
            try:
                results[symbol] = future.result()
            except Exception as e:
                logger.error(f"Analysis failed for {symbol}: {e}")

    logger.info(f"Analyzed {len(results)}/{len(windows)} symbols")

    return {symbol: results[symbol] for symbol in windows if symbol in results}
