"""Utility functions and helpers."""

from .logging import log_file_name, setup_logger

__all__ = ["log_file_name", "setup_logger"]
