"""Fusion of the EMA crossover signal with triangle pattern analysis.

The EMA supplies the signal direction; a detected pattern only adjusts the
confidence and the reasoning, except that a volume-confirmed breakout
overrides the direction.

Confidence rules (base 60):

- breakout up/down: BUY/SELL at max(75, pattern confidence)
- pattern bias agrees with the EMA: min(90, 65 + pc * 0.3)
- pattern bias opposes the EMA: max(45, 60 - pc * 0.2)
- neutral pattern with EMA HOLD: min(75, 60 + pc * 0.15)
- approaching the level the EMA points at: +5, capped at 85
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from loguru import logger

from ..features.indicators import EMAResult, Signal
from .patterns import BreakoutStatus, Direction, PatternResult

BASE_CONFIDENCE = 60.0
BREAKOUT_FLOOR = 75.0
APPROACH_BONUS = 5.0
APPROACH_CAP = 85.0


class AlertAction(str, Enum):
    """Standalone pattern alert action."""

    BUY = "BUY"
    SELL = "SELL"
    WATCH = "WATCH"
    HOLD = "HOLD"


@dataclass(frozen=True)
class FusedSignal:
    """Final recommendation."""

    signal: Signal
    is_bull: bool
    is_bear: bool
    confidence: int
    reasoning: str

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "signal": self.signal.value,
            "is_bull": self.is_bull,
            "is_bear": self.is_bear,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up.

    Examples:
        >>> round_half_up(70.5)
        71
        >>> round_half_up(88.9)
        89
    """
    return int(math.floor(value + 0.5 + 1e-9))


class SignalFusionEngine:
    """Combines EMAResult and PatternResult into a FusedSignal."""

    def fuse(self, ema: EMAResult, pattern: Optional[PatternResult]) -> FusedSignal:
        """Fuse the EMA signal with pattern analysis.

        Args:
            ema: EMA crossover result.
            pattern: Pattern result, or None when pattern detection was skipped.

        Returns:
            FusedSignal with integer confidence.
        """
        if pattern is None or not pattern.detected:
            return FusedSignal(
                signal=ema.signal,
                is_bull=ema.is_bull,
                is_bear=ema.is_bear,
                confidence=int(BASE_CONFIDENCE),
                reasoning=f"EMA signal: {ema.signal.value}",
            )

        signal, is_bull, is_bear = ema.signal, ema.is_bull, ema.is_bear
        pc = pattern.confidence
        confidence = BASE_CONFIDENCE
        reasoning: List[str] = [
            f"EMA signal: {ema.signal.value}",
            f"Pattern: {pattern.pattern_type.display_name} ({pc:.0f}%)",
        ]
        status = pattern.breakout.status if pattern.breakout else BreakoutStatus.FORMING
        direction = pattern.direction

        if status == BreakoutStatus.BREAKOUT_UP:
            signal, is_bull, is_bear = Signal.BUY, True, False
            confidence = max(BREAKOUT_FLOOR, pc)
            reasoning.append("Bullish breakout confirmed")
        elif status == BreakoutStatus.BREAKOUT_DOWN:
            signal, is_bull, is_bear = Signal.SELL, False, True
            confidence = max(BREAKOUT_FLOOR, pc)
            reasoning.append("Bearish breakdown confirmed")
        elif (direction == Direction.BULLISH and ema.signal == Signal.BUY) or (
            direction == Direction.BEARISH and ema.signal == Signal.SELL
        ):
            confidence = min(90.0, 65 + pc * 0.3)
            bias = "bullish" if direction == Direction.BULLISH else "bearish"
            reasoning.append(f"Pattern supports {bias} EMA signal")
        elif (direction == Direction.BULLISH and ema.signal == Signal.SELL) or (
            direction == Direction.BEARISH and ema.signal == Signal.BUY
        ):
            confidence = max(45.0, 60 - pc * 0.2)
            reasoning.append("Pattern conflicts with EMA signal - reduced confidence")
        elif direction == Direction.NEUTRAL and ema.signal == Signal.HOLD:
            confidence = min(75.0, 60 + pc * 0.15)
            reasoning.append("Symmetrical triangle forming - await breakout direction")

        if status == BreakoutStatus.APPROACHING_RESISTANCE and ema.signal == Signal.BUY:
            confidence = max(confidence, min(confidence + APPROACH_BONUS, APPROACH_CAP))
            reasoning.append("Approaching resistance - potential breakout")
        elif status == BreakoutStatus.APPROACHING_SUPPORT and ema.signal == Signal.SELL:
            confidence = max(confidence, min(confidence + APPROACH_BONUS, APPROACH_CAP))
            reasoning.append("Approaching support - potential breakdown")

        fused = FusedSignal(
            signal=signal,
            is_bull=is_bull,
            is_bear=is_bear,
            confidence=round_half_up(confidence),
            reasoning=", ".join(reasoning),
        )
        logger.debug(f"Fused {fused.signal.value} at {fused.confidence}%: {fused.reasoning}")
        return fused


def pattern_alert(pattern: Optional[PatternResult]) -> AlertAction:
    """Standalone alert action for a pattern.

    A breakout in the pattern's expected direction (or either direction for
    a symmetrical triangle) is actionable; a breakout against the bias is a
    possible false breakout and only worth watching.
    """
    if pattern is None or not pattern.detected or pattern.breakout is None:
        return AlertAction.HOLD

    status = pattern.breakout.status
    direction = pattern.direction

    if status == BreakoutStatus.BREAKOUT_UP:
        if direction in (Direction.BULLISH, Direction.NEUTRAL):
            return AlertAction.BUY
        return AlertAction.WATCH
    if status == BreakoutStatus.BREAKOUT_DOWN:
        if direction in (Direction.BEARISH, Direction.NEUTRAL):
            return AlertAction.SELL
        return AlertAction.WATCH
    if status in (BreakoutStatus.APPROACHING_RESISTANCE, BreakoutStatus.APPROACHING_SUPPORT):
        return AlertAction.WATCH
    return AlertAction.HOLD
