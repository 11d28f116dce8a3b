"""Test triangle classification, scoring and breakout analysis."""

import pytest

from pattern_signals.config import AnalysisConfig
from pattern_signals.data import BreakoutSide, PriceBar, PriceSeries, SyntheticBarGenerator, TriangleShape
from pattern_signals.exceptions import NumericDegeneracyError
from pattern_signals.features.trendlines import RESISTANCE, SUPPORT, FittedTrendlines, TrendLine
from pattern_signals.signals.patterns import (
    ANALYSIS_ERROR,
    INSUFFICIENT_DATA,
    TOO_WIDE,
    BreakoutStatus,
    Direction,
    PatternClassifier,
    PatternFailure,
    PatternType,
    Reliability,
    build_trading_plan,
    classify_breakout,
    classify_shape,
    convergence_score,
    reliability_for,
    score_confidence,
    time_score,
    touch_quality,
    volume_decrease_score,
)


def make_bar(ts: int, close: float, volume: float = 1000.0, spread: float = 0.5) -> PriceBar:
    return PriceBar(timestamp=ts, open=close, high=close + spread, low=close - spread, close=close, volume=volume)


def line(kind: str, slope: float, intercept: float, touches=(3, 15, 27), avg_deviation: float = 0.0) -> TrendLine:
    return TrendLine(
        kind=kind,
        slope=slope,
        intercept=intercept,
        touch_indices=frozenset(touches),
        avg_deviation=avg_deviation,
        start_index=min(touches) if touches else 0,
    )


def fitted(resistance: TrendLine, support: TrendLine, bars: int = 60) -> FittedTrendlines:
    return FittedTrendlines(resistance=resistance, support=support, bar_count=bars, usable_count=bars)


# ============================================================================
# Scoring
# ============================================================================


def test_touch_quality():
    """Test touch quality formula and cap."""
    assert touch_quality(line(SUPPORT, 0, 100, touches=(1, 5, 9))) == pytest.approx(40.0)
    assert touch_quality(line(SUPPORT, 0, 100, touches=(1,), avg_deviation=0.01)) == pytest.approx(15 + 0.99 * 20)
    assert touch_quality(line(SUPPORT, 0, 100, touches=())) == 0.0


def test_convergence_score():
    """Test convergence contribution from the last-bar gap."""
    assert convergence_score(100.0, 100.0) == pytest.approx(30.0)
    assert convergence_score(120.0, 80.0) == 0.0

    # 8500 gap on a 109250 average
    expected = (1 - (8500 / 109250) * 10) * 30
    assert convergence_score(113500.0, 105000.0) == pytest.approx(expected)
    assert convergence_score(113500.0, 105000.0) == pytest.approx(6.66, abs=0.01)


def test_convergence_score_degenerate():
    """Test non-positive average price raises."""
    with pytest.raises(NumericDegeneracyError):
        convergence_score(-10.0, -20.0)

    with pytest.raises(ArithmeticError):
        convergence_score(0.0, 0.0)


def test_volume_decrease_score():
    """Test early vs recent thirds."""
    assert volume_decrease_score([100] * 3 + [100] * 3 + [90] * 3) == pytest.approx(10.0)
    assert volume_decrease_score([100] * 3 + [80] * 3 + [50] * 3) == pytest.approx(20.0)
    assert volume_decrease_score([50] * 3 + [80] * 3 + [100] * 3) == 0.0
    assert volume_decrease_score([0] * 3 + [80] * 3 + [100] * 3) == 0.0
    assert volume_decrease_score([100, 50]) == 0.0


@pytest.mark.parametrize(
    "duration,score",
    [(5, 0), (10, 4), (15, 7), (20, 10), (57, 10), (60, 10), (61, 7), (79, 7), (80, 4), (99, 4), (100, 0)],
)
def test_time_score(duration, score):
    """Test formation duration buckets."""
    assert time_score(duration) == score


def test_reliability_buckets():
    """Test reliability thresholds."""
    assert reliability_for(95) == Reliability.HIGH
    assert reliability_for(80.5) == Reliability.HIGH
    assert reliability_for(80) == Reliability.MEDIUM
    assert reliability_for(70.1) == Reliability.MEDIUM
    assert reliability_for(70) == Reliability.LOW


def test_score_confidence_components():
    """Test the total is base plus each weighted component."""
    resistance = line(RESISTANCE, 0.0, 110.0, touches=(3, 15, 27))
    support = line(SUPPORT, 0.1, 94.0, touches=(10,), avg_deviation=0.01)
    volumes = [1000.0] * 10 + [900.0] * 10 + [800.0] * 10

    breakdown = score_confidence(resistance, support, 110.0, 100.0, volumes, bar_count=60)

    expected_convergence = (1 - (10 / 105) * 10) * 30
    assert breakdown.base == 50.0
    assert breakdown.touch_quality == pytest.approx((40.0 + 34.8) * 0.2)
    assert breakdown.convergence == pytest.approx(expected_convergence)
    assert breakdown.volume == pytest.approx(4.0)
    # 57 bars since the first touch
    assert breakdown.duration == pytest.approx(1.0)
    assert breakdown.total == pytest.approx(50 + 14.96 + expected_convergence + 4.0 + 1.0, abs=0.01)


def test_score_confidence_cap_and_volume_switch():
    """Test the 95 cap and that disabling volume confirmation drops that component."""
    resistance = line(RESISTANCE, 0.0, 100.0, touches=(3, 15, 27))
    support = line(SUPPORT, 0.0, 100.0, touches=(9, 21, 33))
    declining = [1000.0] * 10 + [900.0] * 10 + [700.0] * 10

    with_volume = score_confidence(resistance, support, 100.0, 100.0, declining, bar_count=60)
    without_volume = score_confidence(
        resistance, support, 100.0, 100.0, declining, bar_count=60, volume_confirmation=False
    )

    assert with_volume.volume == pytest.approx(4.0)
    assert with_volume.total == 95.0
    assert without_volume.volume == 0.0
    assert without_volume.total == 95.0


def test_volume_confirmation_disabled_in_classifier(ascending_triangle):
    """Test the classifier omits the volume component when disabled."""
    enabled = PatternClassifier().classify(ascending_triangle)
    disabled = PatternClassifier(AnalysisConfig(volume_confirmation=False)).classify(ascending_triangle)

    assert enabled.breakdown.volume > 0
    assert disabled.pattern_type == PatternType.ASCENDING_TRIANGLE
    assert disabled.breakdown.volume == 0.0


# ============================================================================
# Geometry
# ============================================================================


def test_classify_shape():
    """Test slope-sign classification."""
    flat_r = line(RESISTANCE, 0.0, 100)
    falling_r = line(RESISTANCE, -0.2, 110)
    rising_r = line(RESISTANCE, 0.2, 100)
    flat_s = line(SUPPORT, 0.0, 90)
    rising_s = line(SUPPORT, 0.2, 90)
    falling_s = line(SUPPORT, -0.2, 90)

    assert classify_shape(flat_r, rising_s, 100, 0.0005) == (PatternType.ASCENDING_TRIANGLE, None)
    assert classify_shape(falling_r, flat_s, 100, 0.0005) == (PatternType.DESCENDING_TRIANGLE, None)
    assert classify_shape(falling_r, rising_s, 100, 0.0005) == (PatternType.SYMMETRICAL_TRIANGLE, None)

    pattern, reason = classify_shape(rising_r, falling_s, 100, 0.0005)
    assert pattern == PatternType.NONE
    assert reason == "Trendlines are not converging"

    pattern, reason = classify_shape(rising_r, rising_s, 100, 0.0005)
    assert pattern == PatternType.NONE
    assert "same way" in reason

    pattern, reason = classify_shape(flat_r, flat_s, 100, 0.0005)
    assert pattern == PatternType.NONE
    assert "flat" in reason


def _usable(closes, volumes):
    return [(i, make_bar(i, c, v)) for i, (c, v) in enumerate(zip(closes, volumes))]


def test_classify_breakout_requires_volume(config):
    """Test price beyond the level only breaks out on a volume surge."""
    closes = [97.0] * 20

    confirmed = classify_breakout(_usable(closes + [104.0], [1000] * 20 + [2000]), 100.0, 95.0, config)
    assert confirmed.status == BreakoutStatus.BREAKOUT_UP
    assert confirmed.direction == Direction.BULLISH
    assert confirmed.is_breakout
    assert confirmed.upper_breakout == pytest.approx(101.5)
    assert confirmed.lower_breakout == pytest.approx(93.575)
    assert confirmed.volume_ratio == pytest.approx(2.0)

    unconfirmed = classify_breakout(_usable(closes + [104.0], [1000] * 20 + [1400]), 100.0, 95.0, config)
    assert unconfirmed.status == BreakoutStatus.APPROACHING_RESISTANCE
    assert unconfirmed.direction is None
    assert not unconfirmed.is_breakout

    down = classify_breakout(_usable(closes + [90.0], [1000] * 20 + [1500]), 100.0, 95.0, config)
    assert down.status == BreakoutStatus.BREAKOUT_DOWN
    assert down.direction == Direction.BEARISH


def test_classify_breakout_zero_volume_is_not_confirmed(config):
    """Test a feed without volume never confirms a breakout."""
    closes = [97.0] * 20

    up = classify_breakout(_usable(closes + [104.0], [0.0] * 21), 100.0, 95.0, config)
    assert up.status == BreakoutStatus.APPROACHING_RESISTANCE
    assert up.direction is None
    assert up.volume_ratio is None

    down = classify_breakout(_usable(closes + [90.0], [0.0] * 21), 100.0, 95.0, config)
    assert down.status == BreakoutStatus.APPROACHING_SUPPORT
    assert not down.is_breakout


def test_classify_breakout_forming_and_nearest(config):
    """Test mid-range closes form, and the nearer boundary wins near the apex."""
    forming = classify_breakout(_usable([97.5] * 21, [1000] * 21), 100.0, 95.0, config)
    assert forming.status == BreakoutStatus.FORMING

    near_support = classify_breakout(_usable([99.2] * 21, [1000] * 21), 100.0, 99.0, config)
    assert near_support.status == BreakoutStatus.APPROACHING_SUPPORT

    near_resistance = classify_breakout(_usable([99.8] * 21, [1000] * 21), 100.0, 99.0, config)
    assert near_resistance.status == BreakoutStatus.APPROACHING_RESISTANCE


def test_classify_breakout_lookback():
    """Test only the configured lookback feeds the volume average."""
    config = AnalysisConfig(volume_lookback=5)
    volumes = [10_000] * 15 + [1000] * 5 + [1600]

    state = classify_breakout(_usable([97.0] * 20 + [104.0], volumes), 100.0, 95.0, config)

    assert state.volume_ratio == pytest.approx(1.6)
    assert state.status == BreakoutStatus.BREAKOUT_UP


def test_build_trading_plan(config):
    """Test entries, projected targets and stops."""
    state = classify_breakout(_usable([97.5] * 21, [1000] * 21), 100.0, 90.0, config)
    plan = build_trading_plan(PatternType.ASCENDING_TRIANGLE, state, config.volume_breakout_multiplier)

    upper, lower, height = 101.5, 88.65, 10.0
    assert plan.entry_long == pytest.approx(upper)
    assert plan.entry_short == pytest.approx(lower)

    assert plan.long_setup.stop_loss == pytest.approx(lower)
    assert plan.long_setup.target1 == pytest.approx(upper + 0.618 * height)
    assert plan.long_setup.target2 == pytest.approx(upper + height)
    assert plan.long_setup.risk_reward == pytest.approx(0.618 * height / (upper - lower))

    assert plan.short_setup.stop_loss == pytest.approx(upper)
    assert plan.short_setup.target1 == pytest.approx(lower * (1 - 0.618 * height / lower))
    assert plan.short_setup.target2 == pytest.approx(lower - height)

    assert plan.alerts[0].type == "BULLISH_BIAS"


def test_trading_plan_short_targets_capped(config):
    """Test short targets never project below the 50%/70% caps."""
    state = classify_breakout(_usable([80.0] * 21, [1000] * 21), 130.0, 40.0, config)
    plan = build_trading_plan(PatternType.DESCENDING_TRIANGLE, state, config.volume_breakout_multiplier)

    lower = 40.0 * (1 - config.breakout_threshold)
    assert plan.short_setup.target1 == pytest.approx(lower * 0.5)
    assert plan.short_setup.target2 == pytest.approx(lower * 0.3)
    assert plan.alerts[0].type == "BEARISH_BIAS"


# ============================================================================
# Classifier
# ============================================================================


@pytest.mark.parametrize("bars", [None, [], PriceSeries()])
def test_classify_empty_input(bars):
    """Test empty input is insufficient data, not an error."""
    result = PatternClassifier().classify(bars)

    assert result.pattern_type == PatternType.NONE
    assert result.confidence == 0
    assert result.reason == INSUFFICIENT_DATA
    assert result.error is None
    assert not result.detected


def test_classify_short_and_close_only_input(generator):
    """Test windows without enough usable bars."""
    classifier = PatternClassifier()

    short = generator.triangle(TriangleShape.ASCENDING, n_bars=15)
    assert classifier.classify(short).reason == INSUFFICIENT_DATA

    close_only = PriceSeries.from_closes([100.0 + i % 5 for i in range(60)])
    assert classifier.classify(close_only).reason == INSUFFICIENT_DATA


@pytest.mark.parametrize(
    "shape,pattern_type,direction",
    [
        (TriangleShape.ASCENDING, PatternType.ASCENDING_TRIANGLE, Direction.BULLISH),
        (TriangleShape.DESCENDING, PatternType.DESCENDING_TRIANGLE, Direction.BEARISH),
        (TriangleShape.SYMMETRICAL, PatternType.SYMMETRICAL_TRIANGLE, Direction.NEUTRAL),
    ],
)
def test_classify_synthetic_triangles(shape, pattern_type, direction):
    """Test each synthetic triangle is classified with its bias."""
    series = SyntheticBarGenerator(seed=42).triangle(shape)

    result = PatternClassifier().classify(series)

    assert result.pattern_type == pattern_type
    assert result.direction == direction
    assert 80 < result.confidence <= 95
    assert result.reliability == Reliability.HIGH
    assert result.breakdown.total == result.confidence
    assert result.breakdown.base == 50
    assert result.breakdown.duration == pytest.approx(1.0)
    assert result.resistance is not None and result.support is not None
    assert result.breakout is not None
    assert not result.breakout.is_breakout
    assert result.trading_plan is not None
    assert result.error is None


def test_symmetrical_alert_awaits_direction(symmetrical_triangle):
    """Test symmetrical bias alert text."""
    result = PatternClassifier().classify(symmetrical_triangle)
    bias = result.trading_plan.alerts[0]

    assert bias.type == "NEUTRAL_BIAS"
    assert "awaiting breakout direction" in bias.message


def test_confirmed_breakout_up(ascending_breakout):
    """Test volume-confirmed close above resistance."""
    result = PatternClassifier().classify(ascending_breakout)

    assert result.pattern_type == PatternType.ASCENDING_TRIANGLE
    assert result.breakout.status == BreakoutStatus.BREAKOUT_UP
    assert result.breakout.direction == Direction.BULLISH
    assert result.breakout.volume_ratio > 1.5
    assert [a.type for a in result.trading_plan.alerts][:2] == ["BULLISH_BIAS", "BREAKOUT_CONFIRMED"]


def test_unconfirmed_breakout_stays_approaching():
    """Test a close above resistance on ordinary volume is not a breakout."""
    series = SyntheticBarGenerator(seed=42).triangle(
        TriangleShape.ASCENDING, breakout=BreakoutSide.UP, confirm_volume=False
    )

    result = PatternClassifier().classify(series)

    assert result.pattern_type == PatternType.ASCENDING_TRIANGLE
    assert result.breakout.status == BreakoutStatus.APPROACHING_RESISTANCE
    alert_types = [a.type for a in result.trading_plan.alerts]
    assert "UNCONFIRMED_BREAKOUT" in alert_types
    assert "RESISTANCE_APPROACH" in alert_types
    assert "BREAKOUT_CONFIRMED" not in alert_types


def test_zero_volume_breakout_stays_approaching():
    """Test a zero-volume triangle closing above resistance is not confirmed."""
    series = SyntheticBarGenerator(seed=42).triangle(
        TriangleShape.ASCENDING, base_volume=0.0, breakout=BreakoutSide.UP
    )

    result = PatternClassifier().classify(series)

    assert result.pattern_type == PatternType.ASCENDING_TRIANGLE
    assert result.breakout.status == BreakoutStatus.APPROACHING_RESISTANCE
    assert result.breakout.volume_ratio is None
    assert "BREAKOUT_CONFIRMED" not in [a.type for a in result.trading_plan.alerts]


def test_confirmed_breakdown():
    """Test volume-confirmed close below descending triangle support."""
    series = SyntheticBarGenerator(seed=42).triangle(TriangleShape.DESCENDING, breakout=BreakoutSide.DOWN)

    result = PatternClassifier().classify(series)

    assert result.pattern_type == PatternType.DESCENDING_TRIANGLE
    assert result.breakout.status == BreakoutStatus.BREAKOUT_DOWN
    assert result.breakout.direction == Direction.BEARISH


def test_trend_is_not_a_triangle(generator):
    """Test a straight trend yields no pattern."""
    result = PatternClassifier().classify(generator.trend(n_bars=60))

    assert result.pattern_type == PatternType.NONE
    assert result.confidence == 0
    assert result.reason == "No resistance trendline with enough touch points"


def test_malformed_bars_are_tolerated(ascending_triangle):
    """Test malformed bars neither abort nor change the classification."""
    bars = list(ascending_triangle)
    bars[7] = PriceBar(timestamp=bars[7].timestamp, open=None, high="bad", low=None, close=None, volume=None)
    bars[31] = PriceBar(
        timestamp=bars[31].timestamp, open=100.0, high=99.0, low=101.0, close=100.0, volume=10.0
    )

    result = PatternClassifier().classify(PriceSeries(bars))

    assert result.pattern_type == PatternType.ASCENDING_TRIANGLE
    assert result.error is None


def test_window_is_trimmed_to_max_bars(generator):
    """Test only the most recent max_bars bars are analysed."""
    trend = list(generator.trend(n_bars=60, start_price=50.0, step=0.1))
    triangle = list(SyntheticBarGenerator(seed=42).triangle(TriangleShape.ASCENDING))
    offset = trend[-1].timestamp + 86_400_000 - triangle[0].timestamp
    shifted = [bar.model_copy(update={"timestamp": bar.timestamp + offset}) for bar in triangle]

    result = PatternClassifier(AnalysisConfig(max_bars=60)).classify(PriceSeries(trend + shifted))

    assert result.pattern_type == PatternType.ASCENDING_TRIANGLE


def test_crossed_lines(ascending_triangle):
    """Test lines that already crossed are not a triangle."""
    lines = fitted(line(RESISTANCE, 0.0, 100.0), line(SUPPORT, 0.5, 90.0, touches=(9, 21, 33)))

    result = PatternClassifier().classify(ascending_triangle, fitted=lines)

    assert result.pattern_type == PatternType.NONE
    assert result.reason == "Trendlines crossed before the end of the window"


def test_too_wide_pattern(ascending_triangle):
    """Test very tall triangles are rejected."""
    lines = fitted(line(RESISTANCE, 0.0, 100.0), line(SUPPORT, 0.1, 20.0, touches=(9, 21, 33)))

    result = PatternClassifier().classify(ascending_triangle, fitted=lines)

    assert result.pattern_type == PatternType.NONE
    assert result.reason == TOO_WIDE


def test_numeric_degeneracy_becomes_analysis_error(ascending_triangle):
    """Test degenerate geometry is reported, not raised."""
    lines = fitted(line(RESISTANCE, 0.0, 100.0), line(SUPPORT, 0.5, -100.0, touches=(9, 21, 33)))
    classifier = PatternClassifier()

    result = classifier.classify(ascending_triangle, fitted=lines)

    assert result.pattern_type == PatternType.NONE
    assert result.confidence == 0
    assert result.reason == ANALYSIS_ERROR
    assert "NumericDegeneracyError" in result.error

    outcome = classifier.analyze(ascending_triangle, fitted=lines)
    assert isinstance(outcome, PatternFailure)
    assert outcome.reason == ANALYSIS_ERROR


def test_missing_line_reasons(ascending_triangle):
    """Test reasons when one side could not be fitted."""
    classifier = PatternClassifier()

    no_resistance = FittedTrendlines(resistance=None, support=line(SUPPORT, 0.2, 90), bar_count=60, usable_count=60)
    assert classifier.classify(ascending_triangle, fitted=no_resistance).reason == (
        "No resistance trendline with enough touch points"
    )

    no_support = FittedTrendlines(resistance=line(RESISTANCE, 0.0, 100), support=None, bar_count=60, usable_count=60)
    assert classifier.classify(ascending_triangle, fitted=no_support).reason == (
        "No support trendline with enough touch points"
    )


def test_pattern_result_to_dict(ascending_breakout):
    """Test serialisable output."""
    data = PatternClassifier().classify(ascending_breakout).to_dict()

    assert data["pattern_type"] == "ASCENDING_TRIANGLE"
    assert data["direction"] == "BULLISH"
    assert data["breakout"]["status"] == "BREAKOUT_UP"
    assert data["reliability"] == "HIGH"
    assert isinstance(data["resistance"]["touch_indices"], list)
    assert isinstance(data["trading_plan"]["alerts"], list)
    assert data["trading_plan"]["alerts"][0]["type"] == "BULLISH_BIAS"
