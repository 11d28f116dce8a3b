"""Load price bars from local files.

Reads CSV, JSON or Parquet exports of OHLCV data into a ``PriceSeries``.
Live exchange retrieval is the job of the market-data collaborator; this
loader covers offline files and cached downloads.
"""

from pathlib import Path

import pandas as pd
from loguru import logger

from .bars import PriceSeries

_TIME_ALIASES = ("timestamp", "time", "date", "datetime")
_COLUMN_ALIASES = {
    "o": "open",
    "h": "high",
    "l": "low",
    "c": "close",
    "v": "volume",
    "vol": "volume",
}


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case column names, map short aliases and pick a timestamp column.

    Args:
        df: Raw DataFrame.

    Returns:
        New DataFrame with canonical ``timestamp/open/high/low/close/volume`` names.
    """
    renamed = df.rename(columns=lambda c: str(c).strip().lower())
    renamed = renamed.rename(columns=_COLUMN_ALIASES)

    if "timestamp" not in renamed.columns:
        for alias in _TIME_ALIASES[1:]:
            if alias in renamed.columns:
                renamed = renamed.rename(columns={alias: "timestamp"})
                break

    return renamed


def load_bars(path: Path | str) -> PriceSeries:
    """Load a bar file into a PriceSeries.

    Args:
        path: CSV, JSON or Parquet file.

    Returns:
        PriceSeries sorted by timestamp.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file format is unsupported.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Bar file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix == ".json":
        df = pd.read_json(path)
    elif suffix in (".parquet", ".pq"):
        df = pd.read_parquet(path)
    else:
        raise ValueError(f"Unsupported bar file format: {suffix}")

    df = normalize_columns(df)

    if "timestamp" in df.columns:
        df = df.sort_values("timestamp", kind="stable").drop_duplicates("timestamp", keep="last")

    logger.info(f"Loaded {len(df)} bars from {path}")

    return PriceSeries.from_frame(df.reset_index(drop=True))
