"""Command-line interface for analysing a price window."""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import ScannerConfig, load_config
from .data import BreakoutSide, PriceSeries, SyntheticBarGenerator, TriangleShape, load_bars
from .pipeline import AnalysisResult, analyze
from .utils import setup_logger

DEMO_CHOICES = ("ascending", "descending", "symmetrical", "uptrend")


def build_demo_series(name: str, seed: int = 42) -> PriceSeries:
    """Synthetic window for ``--demo``.

    Ascending and descending triangles end with a volume-confirmed breakout
    in their bias direction; the symmetrical triangle is still forming.
    """
    generator = SyntheticBarGenerator(seed=seed)

    if name == "ascending":
        return generator.triangle(TriangleShape.ASCENDING, breakout=BreakoutSide.UP)
    if name == "descending":
        return generator.triangle(TriangleShape.DESCENDING, breakout=BreakoutSide.DOWN)
    if name == "symmetrical":
        return generator.triangle(TriangleShape.SYMMETRICAL)
    if name == "uptrend":
        return generator.reversal()
    raise ValueError(f"Unknown demo: {name}")


def print_summary(symbol: str, result: AnalysisResult) -> None:
    """Print a fixed-width summary block."""
    ema = result.ema
    pattern = result.pattern
    fused = result.fused

    def fmt(value: Optional[float]) -> str:
        return f"{value:.4f}" if value is not None else "n/a"

    print("\n" + "=" * 60)
    print(f"SIGNAL SUMMARY: {symbol}")
    print("=" * 60)
    print(f"Signal:           {fused.signal.value}")
    print(f"Confidence:       {fused.confidence}%")
    print(f"Reasoning:        {fused.reasoning}")
    print("-" * 60)
    print(f"EMA Signal:       {ema.signal.value}")
    print(f"Fast EMA:         {fmt(ema.fast_ema)}")
    print(f"Slow EMA:         {fmt(ema.slow_ema)}")

    if pattern is None:
        print("Pattern:          skipped")
    elif not pattern.detected:
        print(f"Pattern:          none ({pattern.reason})")
    else:
        print(f"Pattern:          {pattern.pattern_type.display_name} ({pattern.direction.value})")
        print(f"Pattern Conf:     {pattern.confidence:.1f}% ({pattern.reliability.value})")
        print(f"Breakout:         {pattern.breakout.status.value}")
        print(f"Entry Long:       {pattern.trading_plan.entry_long:.4f}")
        print(f"Entry Short:      {pattern.trading_plan.entry_short:.4f}")
        print(f"Pattern Alert:    {result.pattern_alert.value}")
        for alert in pattern.trading_plan.alerts:
            print(f"  [{alert.type}] {alert.message}")

    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``).

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(
        description="EMA crossover and triangle pattern signal analyser"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--bars",
        "-b",
        type=Path,
        help="Price bar file (CSV, JSON or Parquet)",
    )
    source.add_argument(
        "--demo",
        choices=DEMO_CHOICES,
        help="Analyse a synthetic scenario instead of a file",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to scanner configuration YAML file",
    )

    parser.add_argument(
        "--symbol",
        "-s",
        default=None,
        help="Symbol label for the output",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for --demo",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else ScannerConfig()

        if args.bars:
            symbol = args.symbol or args.bars.stem
        else:
            symbol = args.symbol or f"DEMO-{args.demo.upper()}"

        setup_logger(
            log_level=config.log_level,
            log_to_file=config.log_to_file,
            log_dir=config.log_dir,
            run_id=symbol,
            serialize=config.log_serialize,
        )

        if args.bars:
            window = load_bars(args.bars)
        else:
            window = build_demo_series(args.demo, seed=args.seed)

        logger.info(f"Analysing {symbol} ({len(window)} bars)")

        result = analyze(window, config.analysis)

        if args.json:
            print(json.dumps({"symbol": symbol, **result.to_dict()}, indent=2, default=str))
        else:
            print_summary(symbol, result)

        return 0

    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
