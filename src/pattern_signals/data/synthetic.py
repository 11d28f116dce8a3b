"""Synthetic bar generator for testing and demos.

Produces reproducible triangle formations, trends and sideways markets with
realistic OHLCV structure so detectors can be exercised without market data.
"""

from enum import Enum
from typing import Optional

import numpy as np
from loguru import logger

from .bars import PriceBar, PriceSeries

DAY_MS = 86_400_000
START_MS = 1_700_000_000_000


class TriangleShape(str, Enum):
    """Triangle formation types."""

    ASCENDING = "ascending"
    DESCENDING = "descending"
    SYMMETRICAL = "symmetrical"


class BreakoutSide(str, Enum):
    """Direction of an appended breakout bar."""

    UP = "up"
    DOWN = "down"


class SyntheticBarGenerator:
    """Synthetic OHLCV generator for controlled scenarios.

    Triangles oscillate between an upper and a lower boundary with a fixed
    cycle, so every cycle leaves exactly one swing high near the upper line
    and one swing low near the lower line.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        """Initialize generator.

        Args:
            seed: Random seed for reproducibility.
        """
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def triangle(
        self,
        shape: TriangleShape | str,
        n_bars: int = 60,
        base_price: float = 100.0,
        cycle: int = 12,
        start_width_pct: float = 0.12,
        end_width_pct: float = 0.015,
        noise: float = 0.0002,
        base_volume: float = 10_000.0,
        volume_decay: float = 0.4,
        breakout: Optional[BreakoutSide | str] = None,
        confirm_volume: bool = True,
    ) -> PriceSeries:
        """Generate a converging triangle formation.

        Args:
            shape: Triangle type.
            n_bars: Bars in the formation (before any breakout bar).
            base_price: Level of the flat side, or the midline for symmetrical.
            cycle: Bars per swing cycle.
            start_width_pct: Boundary gap at the first bar, as a fraction of base_price.
            end_width_pct: Boundary gap at the last formation bar.
            noise: Standard deviation of multiplicative close noise.
            base_volume: Volume level at the start of the formation.
            volume_decay: Fractional volume decline across the formation.
            breakout: Append one breakout bar in this direction.
            confirm_volume: Give the breakout bar a volume surge.

        Returns:
            PriceSeries of the formation.
        """
        shape = TriangleShape(shape)
        if n_bars < cycle:
            raise ValueError(f"n_bars ({n_bars}) must be >= cycle ({cycle})")

        idx = np.arange(n_bars, dtype=np.float64)
        width = base_price * (
            start_width_pct + (end_width_pct - start_width_pct) * idx / max(n_bars - 1, 1)
        )

        if shape == TriangleShape.ASCENDING:
            upper = np.full(n_bars, base_price)
            lower = upper - width
        elif shape == TriangleShape.DESCENDING:
            lower = np.full(n_bars, base_price)
            upper = lower + width
        else:
            upper = base_price + width / 2
            lower = base_price - width / 2

        # Peaks at i % cycle == cycle / 4, troughs three quarters through
        position = (1 + np.sin(2 * np.pi * idx / cycle)) / 2
        closes = (lower + width * position) * (1 + self._rng.normal(0, noise, n_bars))
        volume = (
            base_volume
            * np.linspace(1.0, 1.0 - volume_decay, n_bars)
            * self._rng.lognormal(0.0, 0.1, n_bars)
        )

        bars = self._bars_from_closes(closes, volume, pad=0.03 * width)

        if breakout is not None:
            bars.append(self._breakout_bar(bars, BreakoutSide(breakout), base_volume, confirm_volume))

        logger.debug(f"Generated {shape.value} triangle with {len(bars)} bars")

        return PriceSeries(bars)

    def trend(
        self,
        n_bars: int = 60,
        start_price: float = 100.0,
        step: float = 0.5,
        base_volume: float = 10_000.0,
    ) -> PriceSeries:
        """Generate a straight-line trend (positive step rises, negative falls)."""
        closes = start_price + step * np.arange(n_bars, dtype=np.float64)
        volume = np.full(n_bars, base_volume)
        return PriceSeries(self._bars_from_closes(closes, volume, pad=np.full(n_bars, abs(step) / 2)))

    def reversal(
        self,
        decline_bars: int = 30,
        rise_bars: int = 20,
        start_price: float = 130.0,
        down_step: float = 1.0,
        up_step: float = 3.0,
        base_volume: float = 10_000.0,
    ) -> PriceSeries:
        """Generate a steady decline followed by a steep rally."""
        down = start_price - down_step * np.arange(decline_bars, dtype=np.float64)
        bottom = down[-1] if decline_bars else start_price
        up = bottom + up_step * np.arange(1, rise_bars + 1, dtype=np.float64)
        closes = np.concatenate([down, up])
        volume = np.full(len(closes), base_volume)
        return PriceSeries(self._bars_from_closes(closes, volume, pad=np.full(len(closes), 0.25)))

    def sideways(
        self,
        n_bars: int = 60,
        base_price: float = 100.0,
        volatility: float = 0.005,
        base_volume: float = 10_000.0,
    ) -> PriceSeries:
        """Generate a random walk that stays around ``base_price``."""
        closes = base_price * (1 + self._rng.normal(0, volatility, n_bars))
        volume = self._rng.lognormal(np.log(base_volume), 0.3, n_bars)
        return PriceSeries(self._bars_from_closes(closes, volume, pad=base_price * volatility * np.ones(n_bars)))

    def _bars_from_closes(
        self,
        closes: np.ndarray,
        volume: np.ndarray,
        pad: np.ndarray,
    ) -> list[PriceBar]:
        """Build consistent OHLCV bars around a close path.

        Open sits halfway between the previous and current close; high and
        low extend ``pad`` beyond the candle body.
        """
        opens = np.concatenate([[closes[0]], (closes[:-1] + closes[1:]) / 2])
        highs = np.maximum(opens, closes) + pad
        lows = np.maximum(np.minimum(opens, closes) - pad, 0.0)

        return [
            PriceBar(
                timestamp=START_MS + i * DAY_MS,
                open=float(opens[i]),
                high=float(highs[i]),
                low=float(lows[i]),
                close=float(closes[i]),
                volume=float(volume[i]),
            )
            for i in range(len(closes))
        ]

    def _breakout_bar(
        self,
        bars: list[PriceBar],
        side: BreakoutSide,
        base_volume: float,
        confirm_volume: bool,
    ) -> PriceBar:
        """Bar that closes 4% beyond the formation's extreme."""
        prev_close = bars[-1].close
        recent_volume = float(np.mean([b.volume for b in bars[-20:]]))
        volume = base_volume * 3.0 if confirm_volume else recent_volume

        if side == BreakoutSide.UP:
            close = max(b.high for b in bars) * 1.04
            high = close * 1.002
            low = prev_close * 0.998
        else:
            close = min(b.low for b in bars) * 0.96
            low = close * 0.998
            high = prev_close * 1.002

        return PriceBar(
            timestamp=bars[-1].timestamp + DAY_MS,
            open=prev_close,
            high=high,
            low=low,
            close=close,
            volume=volume,
        )
