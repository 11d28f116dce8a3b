"""Logging configuration using loguru.

Library modules only emit records through ``loguru.logger``; sinks are
installed here by applications (the CLI, notebooks, services). Every record
carries a ``run_id`` extra, the symbol being scanned for CLI runs.
"""

import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_NAME = "pattern_signals"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[run_id]}</magenta> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run_id]} | {name}:{function}:{line} - {message}"


def log_file_name(run_id: Optional[str] = None) -> str:
    """Log file name for a run.

    Symbols such as ``BTC/USDT`` are made path-safe.

    Examples:
        >>> log_file_name("BTC/USDT")
        'pattern_signals_BTC-USDT.log'
        >>> log_file_name()
        'pattern_signals.log'
    """
    safe = re.sub(r"[^A-Za-z0-9._-]+", "-", run_id or "").strip("-.")
    return f"{LOG_NAME}_{safe}.log" if safe else f"{LOG_NAME}.log"


def setup_logger(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_dir: Path = Path("logs"),
    run_id: Optional[str] = None,
    serialize: bool = False,
) -> Optional[Path]:
    """Install console and optional file sinks.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_to_file: Whether to also write a rotating log file.
        log_dir: Directory for log files.
        run_id: Run label bound to every record and used in the file name.
        serialize: Write the file sink as JSON lines.

    Returns:
        Path of the log file, or None when logging to console only.
    """
    logger.remove()
    logger.configure(extra={"run_id": run_id or "-"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if not log_to_file:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file_name(run_id)

    logger.add(
        log_path,
        format=FILE_FORMAT,
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        serialize=serialize,
    )
    logger.debug(f"Logging to {log_path}")
    return log_path
