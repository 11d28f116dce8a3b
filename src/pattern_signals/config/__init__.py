"""Configuration schemas and validation."""

from .schema import AnalysisConfig, ScannerConfig, load_config

__all__ = [
    "AnalysisConfig",
    "ScannerConfig",
    "load_config",
]
