"""Pydantic configuration schemas for signal analysis.

``AnalysisConfig`` is an immutable value passed into every analysis call, so
one instance can be shared by any number of concurrent analyses. YAML
configs for the command-line scanner deserialize into ``ScannerConfig``.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from ruamel.yaml import YAML


class AnalysisConfig(BaseModel):
    """Parameters for EMA crossover, triangle detection and breakout checks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # EMA crossover
    fast_period: int = Field(12, ge=1, le=200, description="Fast EMA period")
    slow_period: int = Field(26, ge=2, le=400, description="Slow EMA period")

    # Triangle window
    min_bars: int = Field(20, ge=5, description="Minimum bars to attempt pattern detection")
    max_bars: int = Field(100, ge=5, description="Maximum bars in the pattern window")
    tolerance: float = Field(
        0.02, gt=0.0, lt=0.5, description="Relative distance for a trendline touch"
    )
    min_touch_points: int = Field(3, ge=2, le=20, description="Touches required per trendline")
    volume_confirmation: bool = Field(True, description="Score declining volume in the formation")

    # Breakout
    breakout_threshold: float = Field(
        0.015, ge=0.0, lt=0.5, description="Relative distance beyond a line for a breakout"
    )
    volume_breakout_multiplier: float = Field(
        1.5, ge=0.0, description="Latest volume vs recent average needed to confirm a breakout"
    )
    volume_lookback: int = Field(20, ge=1, le=500, description="Bars in the breakout volume average")

    enable_patterns: bool = Field(True, description="Run triangle pattern detection")

    # Trendline geometry
    flat_slope_threshold: float = Field(
        0.0005, ge=0.0, description="Per-bar slope, relative to price, treated as flat"
    )
    extrema_order: int = Field(3, ge=1, le=20, description="Neighbours on each side a pivot must exceed")
    max_height_pct: float = Field(
        0.40, gt=0.0, description="Reject triangles taller than this fraction of support"
    )

    @model_validator(mode="after")
    def validate_periods(self) -> "AnalysisConfig":
        """Ensure EMA periods and window bounds are sensible."""
        if self.fast_period >= self.slow_period:
            raise ValueError("fast_period must be < slow_period")
        if self.min_bars > self.max_bars:
            raise ValueError("min_bars must be <= max_bars")
        return self


class ScannerConfig(BaseModel):
    """Root configuration for the command-line scanner."""

    name: str = Field("pattern_signals", description="Scanner name")
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Logging level"
    )
    log_to_file: bool = Field(False, description="Write logs to file")
    log_dir: Path = Field(Path("logs"), description="Directory for log files")
    log_serialize: bool = Field(False, description="Write the log file as JSON lines")


def load_config(path: Path | str) -> ScannerConfig:
    """Load and validate scanner configuration from YAML.

    Args:
        path: Path to YAML configuration file.

    Returns:
        Validated ScannerConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config validation fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    yaml = YAML(typ="safe")
    with path.open("r") as f:
        raw_config = yaml.load(f) or {}

    try:
        config = ScannerConfig(**raw_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}") from e

    return config
