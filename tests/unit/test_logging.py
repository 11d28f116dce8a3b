"""Test loguru sink setup."""

import json
from pathlib import Path

from loguru import logger

from pattern_signals.utils import log_file_name, setup_logger


def test_log_file_name():
    """Test run ids become path-safe file names."""
    assert log_file_name() == "pattern_signals.log"
    assert log_file_name("ETH") == "pattern_signals_ETH.log"
    assert log_file_name("BTC/USDT") == "pattern_signals_BTC-USDT.log"
    assert log_file_name("../") == "pattern_signals.log"


def test_console_only(tmp_path: Path):
    """Test no file sink or directory without log_to_file."""
    log_dir = tmp_path / "logs"

    assert setup_logger(log_dir=log_dir) is None
    assert not log_dir.exists()


def test_file_sink_binds_run_id(tmp_path: Path):
    """Test the file sink is named after the run and tags each record."""
    log_path = setup_logger(log_level="INFO", log_to_file=True, log_dir=tmp_path, run_id="SOL/USD")
    logger.info("scan started")

    assert log_path == tmp_path / "pattern_signals_SOL-USD.log"
    line = log_path.read_text().splitlines()[-1]
    assert "| SOL/USD |" in line
    assert line.endswith("scan started")


def test_file_sink_serialized(tmp_path: Path):
    """Test JSON-lines output."""
    log_path = setup_logger(log_to_file=True, log_dir=tmp_path, run_id="ETH", serialize=True)
    logger.warning("volume missing")

    record = json.loads(log_path.read_text().splitlines()[-1])["record"]

    assert record["message"] == "volume missing"
    assert record["level"]["name"] == "WARNING"
    assert record["extra"]["run_id"] == "ETH"
