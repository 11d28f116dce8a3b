"""Price data layer.

Bar and series schemas, file loading and synthetic scenario generation.
"""

from .bars import PriceBar, PriceSeries, extract_closes
from .loader import load_bars
from .synthetic import BreakoutSide, SyntheticBarGenerator, TriangleShape

__all__ = [
    "PriceBar",
    "PriceSeries",
    "extract_closes",
    "load_bars",
    "SyntheticBarGenerator",
    "TriangleShape",
    "BreakoutSide",
]
