"""Triangle pattern classification, scoring and breakout analysis.

Uses fitted support/resistance trendlines to classify ascending, descending
and symmetrical triangles, scores them on a 50-95 confidence scale, checks
the latest bar for a volume-confirmed breakout and derives a trading plan.

Confidence = min(50 + touch quality + convergence + volume + duration, 95):

- touch quality: (q_resistance + q_support) * 0.2, q = min(touches*15 + (1-avg_dev)*20, 40)
- convergence: min(max(0, 1 - gap_pct*10) * 30, 30) at the last bar
- volume: max(0, min(volume_decrease*100, 20)) * 0.2, first vs last third
- duration: 10 / 7 / 4 / 0 points for formations of 20-60 / 15-80 / 10-100 / other bars, * 0.1
"""

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from ..config import AnalysisConfig
from ..data.bars import PriceBar, PriceSeries
from ..exceptions import NumericDegeneracyError
from ..features.trendlines import FittedTrendlines, TrendLine, fit_trendlines

BASE_CONFIDENCE = 50.0
MAX_CONFIDENCE = 95.0
APPROACH_ALERT_PCT = 2.0

INSUFFICIENT_DATA = "Insufficient data"
ANALYSIS_ERROR = "Analysis error"
TOO_WIDE = "Triangle pattern too wide for reliable trading"


class PatternType(str, Enum):
    """Detected chart pattern."""

    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    SYMMETRICAL_TRIANGLE = "SYMMETRICAL_TRIANGLE"
    NONE = "NONE"

    @property
    def display_name(self) -> str:
        """Human-readable name, e.g. 'Ascending Triangle'."""
        return self.value.replace("_", " ").title()


class Direction(str, Enum):
    """Expected breakout bias of a pattern."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class BreakoutStatus(str, Enum):
    """Position of the latest close relative to the triangle."""

    FORMING = "FORMING"
    APPROACHING_RESISTANCE = "APPROACHING_RESISTANCE"
    APPROACHING_SUPPORT = "APPROACHING_SUPPORT"
    BREAKOUT_UP = "BREAKOUT_UP"
    BREAKOUT_DOWN = "BREAKOUT_DOWN"


class Reliability(str, Enum):
    """Coarse confidence bucket."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_PATTERN_DIRECTION = {
    PatternType.ASCENDING_TRIANGLE: Direction.BULLISH,
    PatternType.DESCENDING_TRIANGLE: Direction.BEARISH,
    PatternType.SYMMETRICAL_TRIANGLE: Direction.NEUTRAL,
    PatternType.NONE: Direction.NEUTRAL,
}


def _plain(value):
    """Convert enums inside asdict() output to their values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, frozenset):
        return sorted(value)
    return value


@dataclass(frozen=True)
class Alert:
    """Human-readable notice attached to a trading plan."""

    type: str
    message: str


@dataclass(frozen=True)
class TradeSetup:
    """Entry, stop and projected targets for one side of a breakout."""

    trigger: float
    stop_loss: float
    target1: float
    target2: float
    risk_reward: float


@dataclass(frozen=True)
class TradingPlan:
    """Entry levels and alerts derived from a pattern."""

    entry_long: float
    entry_short: float
    alerts: Tuple[Alert, ...]
    long_setup: TradeSetup
    short_setup: TradeSetup


@dataclass(frozen=True)
class BreakoutState:
    """Breakout classification of the latest bar."""

    status: BreakoutStatus
    upper_breakout: float
    lower_breakout: float
    current_price: float
    direction: Optional[Direction]
    resistance_price: float
    support_price: float
    distance_to_upper_pct: float
    distance_to_lower_pct: float
    volume_ratio: Optional[float]

    @property
    def is_breakout(self) -> bool:
        """Whether a volume-confirmed breakout occurred."""
        return self.status in (BreakoutStatus.BREAKOUT_UP, BreakoutStatus.BREAKOUT_DOWN)


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Per-component contributions to pattern confidence."""

    base: float
    touch_quality: float
    convergence: float
    volume: float
    duration: float
    total: float


@dataclass(frozen=True)
class PatternResult:
    """Outcome of pattern classification for one window."""

    pattern_type: PatternType
    direction: Direction
    confidence: float
    resistance: Optional[TrendLine] = None
    support: Optional[TrendLine] = None
    breakout: Optional[BreakoutState] = None
    trading_plan: Optional[TradingPlan] = None
    reason: Optional[str] = None
    reliability: Optional[Reliability] = None
    breakdown: Optional[ConfidenceBreakdown] = None
    error: Optional[str] = None

    @classmethod
    def none(cls, reason: str, error: Optional[str] = None) -> "PatternResult":
        """No-pattern result with zero confidence."""
        return cls(
            pattern_type=PatternType.NONE,
            direction=Direction.NEUTRAL,
            confidence=0.0,
            reason=reason,
            error=error,
        )

    @property
    def detected(self) -> bool:
        """Whether a triangle was found."""
        return self.pattern_type != PatternType.NONE

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        data = _plain(asdict(self))
        data["resistance"] = self.resistance.to_dict() if self.resistance else None
        data["support"] = self.support.to_dict() if self.support else None
        return data


@dataclass(frozen=True)
class PatternFailure:
    """Analysis could not complete; collapsed to a NONE result at the boundary."""

    reason: str
    detail: str


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def touch_quality(line: TrendLine) -> float:
    """Touch quality of one line, capped at 40.

    Examples:
        >>> line = TrendLine("support", 0.0, 100.0, frozenset({1, 5, 9}), 0.01, 1)
        >>> round(touch_quality(line), 1)
        40.0
    """
    if line.touch_count == 0:
        return 0.0
    return min(line.touch_count * 15 + (1 - line.avg_deviation) * 20, 40.0)


def convergence_score(resistance_price: float, support_price: float) -> float:
    """Convergence contribution (0-30) from the gap between the lines.

    Raises:
        NumericDegeneracyError: If the average of the two prices is not positive.
    """
    avg_price = (resistance_price + support_price) / 2
    if avg_price <= 0 or not math.isfinite(avg_price):
        raise NumericDegeneracyError(f"Non-positive average line price: {avg_price}")

    pct_distance = abs(resistance_price - support_price) / avg_price
    quality = max(0.0, 1 - pct_distance * 10)
    return min(quality * 30, 30.0)


def volume_decrease_score(volumes: Sequence[float]) -> float:
    """Volume dry-up score (0-20): early third vs recent third of the window."""
    volumes = np.asarray(volumes, dtype=np.float64)
    third = len(volumes) // 3
    if third == 0:
        return 0.0

    early = float(np.mean(volumes[:third]))
    recent = float(np.mean(volumes[-third:]))
    if early <= 0:
        return 0.0

    decrease = (early - recent) / early
    return max(0.0, min(decrease * 100, 20.0))


def time_score(duration: int) -> int:
    """Formation-length score; bar count stands in for days."""
    if 20 <= duration <= 60:
        return 10
    if 15 <= duration < 80:
        return 7
    if 10 <= duration < 100:
        return 4
    return 0


def score_confidence(
    resistance: TrendLine,
    support: TrendLine,
    resistance_price: float,
    support_price: float,
    volumes: Sequence[float],
    bar_count: int,
    volume_confirmation: bool = True,
) -> ConfidenceBreakdown:
    """Combine all confidence components.

    Args:
        resistance: Resistance line.
        support: Support line.
        resistance_price: Resistance at the last bar.
        support_price: Support at the last bar.
        volumes: Volumes of the usable bars in the window.
        bar_count: Bars in the window.
        volume_confirmation: Include the volume component.

    Returns:
        ConfidenceBreakdown with total capped at 95.
    """
    touch = (touch_quality(resistance) + touch_quality(support)) * 0.2
    convergence = convergence_score(resistance_price, support_price)
    volume = volume_decrease_score(volumes) * 0.2 if volume_confirmation else 0.0

    duration_bars = bar_count - min(resistance.start_index, support.start_index)
    duration = time_score(duration_bars) * 0.1

    total = min(BASE_CONFIDENCE + touch + convergence + volume + duration, MAX_CONFIDENCE)

    return ConfidenceBreakdown(
        base=BASE_CONFIDENCE,
        touch_quality=touch,
        convergence=convergence,
        volume=volume,
        duration=duration,
        total=round(total, 2),
    )


def reliability_for(confidence: float) -> Reliability:
    """Bucket a confidence score."""
    if confidence > 80:
        return Reliability.HIGH
    if confidence > 70:
        return Reliability.MEDIUM
    return Reliability.LOW


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def classify_shape(
    resistance: TrendLine,
    support: TrendLine,
    reference_price: float,
    flat_threshold: float,
) -> Tuple[PatternType, Optional[str]]:
    """Classify a line pair by slope sign.

    Returns:
        Tuple of (pattern_type, reason); reason is set for NONE.
    """
    r_slope = resistance.relative_slope(reference_price)
    s_slope = support.relative_slope(reference_price)

    r_flat = abs(r_slope) <= flat_threshold
    s_flat = abs(s_slope) <= flat_threshold
    r_rising, r_falling = r_slope > flat_threshold, r_slope < -flat_threshold
    s_rising, s_falling = s_slope > flat_threshold, s_slope < -flat_threshold

    if s_rising and r_flat:
        return PatternType.ASCENDING_TRIANGLE, None
    if r_falling and s_flat:
        return PatternType.DESCENDING_TRIANGLE, None
    if s_rising and r_falling:
        return PatternType.SYMMETRICAL_TRIANGLE, None

    if r_flat and s_flat:
        return PatternType.NONE, "Trendlines are flat (horizontal range, not a triangle)"
    if (r_rising and s_rising) or (r_falling and s_falling):
        return PatternType.NONE, "Trendlines slope the same way (channel or wedge, not a triangle)"
    return PatternType.NONE, "Trendlines are not converging"


def classify_breakout(
    usable: List[Tuple[int, PriceBar]],
    resistance_price: float,
    support_price: float,
    config: AnalysisConfig,
) -> BreakoutState:
    """Classify the latest usable bar against the triangle boundaries.

    A close beyond a breakout level only counts as a breakout when the bar's
    volume is at least ``volume_breakout_multiplier`` times the average of
    the preceding ``volume_lookback`` bars, and that average is positive;
    otherwise it stays APPROACHING.
    """
    threshold = config.breakout_threshold
    latest = usable[-1][1]
    current = latest.close
    if current <= 0:
        raise NumericDegeneracyError(f"Non-positive latest close: {current}")

    upper = resistance_price * (1 + threshold)
    lower = support_price * (1 - threshold)

    prior_volumes = [bar.volume for _, bar in usable[-(config.volume_lookback + 1):-1]]
    recent_avg = float(np.mean(prior_volumes)) if prior_volumes else 0.0
    volume_ratio = latest.volume / recent_avg if recent_avg > 0 else None
    # No volume history (zero-volume feeds) never confirms
    volume_confirmed = recent_avg > 0 and latest.volume >= config.volume_breakout_multiplier * recent_avg

    near_resistance = current >= resistance_price * (1 - threshold)
    near_support = current <= support_price * (1 + threshold)

    direction = None
    if current >= upper and volume_confirmed:
        status = BreakoutStatus.BREAKOUT_UP
        direction = Direction.BULLISH
    elif current <= lower and volume_confirmed:
        status = BreakoutStatus.BREAKOUT_DOWN
        direction = Direction.BEARISH
    elif near_resistance and near_support:
        # Near the apex both apply; report the closer boundary
        to_resistance = abs(current - resistance_price) / resistance_price
        to_support = abs(current - support_price) / support_price
        status = (
            BreakoutStatus.APPROACHING_RESISTANCE
            if to_resistance <= to_support
            else BreakoutStatus.APPROACHING_SUPPORT
        )
    elif near_resistance:
        status = BreakoutStatus.APPROACHING_RESISTANCE
    elif near_support:
        status = BreakoutStatus.APPROACHING_SUPPORT
    else:
        status = BreakoutStatus.FORMING

    return BreakoutState(
        status=status,
        upper_breakout=upper,
        lower_breakout=lower,
        current_price=current,
        direction=direction,
        resistance_price=resistance_price,
        support_price=support_price,
        distance_to_upper_pct=(upper - current) / current * 100,
        distance_to_lower_pct=(current - lower) / current * 100,
        volume_ratio=volume_ratio,
    )


def build_trading_plan(
    pattern_type: PatternType,
    breakout: BreakoutState,
    volume_multiplier: float,
) -> TradingPlan:
    """Derive entry levels, projected targets and alerts.

    Targets project 61.8% and 100% of the triangle height beyond the
    breakout level. Short targets are expressed as percentage moves capped
    at 50% and 70% so they never go negative.
    """
    upper = breakout.upper_breakout
    lower = breakout.lower_breakout
    height = abs(breakout.resistance_price - breakout.support_price)
    risk = upper - lower
    if risk <= 0 or lower <= 0:
        raise NumericDegeneracyError(f"Degenerate breakout levels: upper={upper}, lower={lower}")

    long_target1 = upper + height * 0.618
    long_setup = TradeSetup(
        trigger=upper,
        stop_loss=lower,
        target1=long_target1,
        target2=upper + height,
        risk_reward=(long_target1 - upper) / risk,
    )

    height_pct = height / lower
    short_target1 = lower * (1 - min(height_pct * 0.618, 0.5))
    short_setup = TradeSetup(
        trigger=lower,
        stop_loss=upper,
        target1=short_target1,
        target2=lower * (1 - min(height_pct, 0.7)),
        risk_reward=(lower - short_target1) / risk,
    )

    return TradingPlan(
        entry_long=upper,
        entry_short=lower,
        alerts=tuple(_plan_alerts(pattern_type, breakout, volume_multiplier)),
        long_setup=long_setup,
        short_setup=short_setup,
    )


def _plan_alerts(
    pattern_type: PatternType,
    breakout: BreakoutState,
    volume_multiplier: float,
) -> List[Alert]:
    """Bias, breakout and proximity alerts, in that order."""
    name = pattern_type.display_name
    upper = breakout.upper_breakout
    lower = breakout.lower_breakout
    alerts = []

    if pattern_type == PatternType.ASCENDING_TRIANGLE:
        alerts.append(Alert("BULLISH_BIAS", f"{name} forming - bullish bias. Watch for breakout above {upper:.4f}"))
    elif pattern_type == PatternType.DESCENDING_TRIANGLE:
        alerts.append(Alert("BEARISH_BIAS", f"{name} forming - bearish bias. Watch for breakdown below {lower:.4f}"))
    else:
        alerts.append(Alert("NEUTRAL_BIAS", f"{name} forming - awaiting breakout direction"))

    volume_text = f" on {breakout.volume_ratio:.1f}x volume" if breakout.volume_ratio else ""

    if breakout.status == BreakoutStatus.BREAKOUT_UP:
        alerts.append(Alert("BREAKOUT_CONFIRMED", f"Bullish breakout confirmed above {upper:.4f}{volume_text}"))
        return alerts
    if breakout.status == BreakoutStatus.BREAKOUT_DOWN:
        alerts.append(Alert("BREAKOUT_CONFIRMED", f"Bearish breakdown confirmed below {lower:.4f}{volume_text}"))
        return alerts

    current = breakout.current_price
    if current >= upper or current <= lower:
        alerts.append(
            Alert(
                "UNCONFIRMED_BREAKOUT",
                f"Price at {current:.4f} is beyond the triangle without volume confirmation "
                f"(needs {volume_multiplier:.1f}x average volume)",
            )
        )

    to_upper = breakout.distance_to_upper_pct
    to_lower = breakout.distance_to_lower_pct
    if breakout.status == BreakoutStatus.APPROACHING_RESISTANCE or 0 <= to_upper < APPROACH_ALERT_PCT:
        alerts.append(
            Alert("RESISTANCE_APPROACH", f"Price approaching triangle resistance at {upper:.4f} ({abs(to_upper):.1f}% away)")
        )
    if breakout.status == BreakoutStatus.APPROACHING_SUPPORT or 0 <= to_lower < APPROACH_ALERT_PCT:
        alerts.append(
            Alert("SUPPORT_APPROACH", f"Price approaching triangle support at {lower:.4f} ({abs(to_lower):.1f}% away)")
        )

    return alerts


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class PatternClassifier:
    """Triangle pattern classifier.

    Stateless apart from a default config; safe to share across threads.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        """Initialize classifier.

        Args:
            config: Default configuration when a call does not pass one.
        """
        self.config = config or AnalysisConfig()

    def classify(
        self,
        bars: Optional[Union[PriceSeries, Sequence[PriceBar]]],
        fitted: Optional[FittedTrendlines] = None,
        config: Optional[AnalysisConfig] = None,
    ) -> PatternResult:
        """Classify the triangle pattern in a price window.

        Never raises: analysis failures come back as a NONE result with
        ``reason="Analysis error"`` and the failure detail in ``error``.

        Args:
            bars: Price window, oldest first.
            fitted: Trendlines already fitted on ``bars`` trimmed to
                ``max_bars``; fitted here when omitted.
            config: Analysis parameters; falls back to the instance config.

        Returns:
            PatternResult.
        """
        outcome = self.analyze(bars, fitted, config)

        if isinstance(outcome, PatternFailure):
            logger.warning(f"Pattern analysis failed: {outcome.detail}")
            return PatternResult.none(outcome.reason, error=outcome.detail)

        return outcome

    def analyze(
        self,
        bars: Optional[Union[PriceSeries, Sequence[PriceBar]]],
        fitted: Optional[FittedTrendlines] = None,
        config: Optional[AnalysisConfig] = None,
    ) -> Union[PatternResult, PatternFailure]:
        """Like ``classify`` but returns a PatternFailure instead of collapsing it."""
        try:
            return self._analyze(bars, fitted, config or self.config)
        except (ArithmeticError, ValueError) as e:
            return PatternFailure(reason=ANALYSIS_ERROR, detail=f"{type(e).__name__}: {e}")

    def _analyze(
        self,
        bars: Optional[Union[PriceSeries, Sequence[PriceBar]]],
        fitted: Optional[FittedTrendlines],
        config: AnalysisConfig,
    ) -> PatternResult:
        if not bars:
            return PatternResult.none(INSUFFICIENT_DATA)

        series = bars if isinstance(bars, PriceSeries) else PriceSeries(bars)
        window = series.tail(config.max_bars)
        usable = window.usable_bars()

        if len(usable) < config.min_bars:
            return PatternResult.none(INSUFFICIENT_DATA)

        if fitted is None:
            fitted = fit_trendlines(
                window,
                tolerance=config.tolerance,
                min_touch_points=config.min_touch_points,
                min_bars=config.min_bars,
                extrema_order=config.extrema_order,
            )

        resistance, support = fitted.resistance, fitted.support
        if resistance is None:
            return PatternResult.none("No resistance trendline with enough touch points")
        if support is None:
            return PatternResult.none("No support trendline with enough touch points")

        reference_price = float(np.mean([bar.close for _, bar in usable]))
        if reference_price <= 0:
            raise NumericDegeneracyError(f"Non-positive reference price: {reference_price}")

        pattern_type, reason = classify_shape(
            resistance, support, reference_price, config.flat_slope_threshold
        )
        if pattern_type == PatternType.NONE:
            return PatternResult.none(reason)

        last_index = len(window) - 1
        resistance_price = resistance.price_at(last_index)
        support_price = support.price_at(last_index)

        if resistance_price <= support_price:
            return PatternResult.none("Trendlines crossed before the end of the window")
        if support_price <= 0:
            raise NumericDegeneracyError(f"Support projects to a non-positive price: {support_price}")

        height_pct = (resistance_price - support_price) / support_price
        if height_pct > config.max_height_pct:
            logger.debug(f"{pattern_type.value} rejected - triangle too wide ({height_pct:.1%} height)")
            return PatternResult.none(TOO_WIDE)

        breakdown = score_confidence(
            resistance,
            support,
            resistance_price,
            support_price,
            volumes=[bar.volume for _, bar in usable],
            bar_count=len(window),
            volume_confirmation=config.volume_confirmation,
        )
        breakout = classify_breakout(usable, resistance_price, support_price, config)
        plan = build_trading_plan(pattern_type, breakout, config.volume_breakout_multiplier)

        logger.debug(
            f"{pattern_type.display_name} detected ({breakdown.total:.1f}% confidence, "
            f"{breakout.status.value})"
        )

        return PatternResult(
            pattern_type=pattern_type,
            direction=_PATTERN_DIRECTION[pattern_type],
            confidence=breakdown.total,
            resistance=resistance,
            support=support,
            breakout=breakout,
            trading_plan=plan,
            reliability=reliability_for(breakdown.total),
            breakdown=breakdown,
        )
