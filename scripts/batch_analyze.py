"""
Batch field analysis: CSV of points in, CSV of summaries out.

Usage:
    python scripts/batch_analyze.py --input fields.csv --output field_summary.csv

Input columns: lat, lon, crop_code [, acres, county]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.data.batch import analyze_points
from src.location.analysis import FieldAnalysisClient


def main():
    parser = argparse.ArgumentParser(description="Run field analysis for a CSV of points")
    parser.add_argument("--input", required=True, help="CSV with lat, lon, crop_code columns")
    parser.add_argument("--output", default="field_summary.csv", help="Summary CSV path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    print("=" * 60)
    print("BATCH FIELD ANALYSIS")
    print("=" * 60)

    df = pd.read_csv(args.input)
    print(f"[1/2] Loaded {len(df)} points from {args.input}")

    try:
        summary = asyncio.run(analyze_points(df, FieldAnalysisClient()))
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    summary.to_csv(args.output, index=False)
    n_failed = int(summary["error"].notna().sum())
    print(f"[2/2] Wrote {len(summary)} rows to {args.output} ({n_failed} failed)")
    print("=" * 60)


if __name__ == "__main__":
    main()
