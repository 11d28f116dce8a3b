"""Pytest configuration and fixtures."""

import pytest
from loguru import logger

from pattern_signals.config import AnalysisConfig
from pattern_signals.data import BreakoutSide, SyntheticBarGenerator, TriangleShape


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop sinks added during a test (e.g. by the CLI)."""
    yield
    logger.remove()


@pytest.fixture
def config():
    """Default analysis configuration."""
    return AnalysisConfig()


@pytest.fixture
def generator():
    """Seeded synthetic bar generator."""
    return SyntheticBarGenerator(seed=42)


@pytest.fixture
def ascending_triangle():
    """60-bar ascending triangle without breakout."""
    return SyntheticBarGenerator(seed=42).triangle(TriangleShape.ASCENDING)


@pytest.fixture
def descending_triangle():
    """60-bar descending triangle without breakout."""
    return SyntheticBarGenerator(seed=42).triangle(TriangleShape.DESCENDING)


@pytest.fixture
def symmetrical_triangle():
    """60-bar symmetrical triangle without breakout."""
    return SyntheticBarGenerator(seed=42).triangle(TriangleShape.SYMMETRICAL)


@pytest.fixture
def ascending_breakout():
    """Ascending triangle closing above resistance on a volume surge."""
    return SyntheticBarGenerator(seed=42).triangle(TriangleShape.ASCENDING, breakout=BreakoutSide.UP)

