"""
CLI entry point for a single field analysis.

Usage:
    python scripts/field_analysis.py --lat 42.0308 --lon -93.6319 --crop-code 1
    python scripts/field_analysis.py --lat 42.0308 --lon -93.6319 --crop-code 5 --acres 78.4 --county 169
    python scripts/field_analysis.py --address "Ames, Iowa" --mode locate
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.location.session import SessionState, STATUS_FAILED


async def run(args) -> int:
    session = SessionState()

    if args.address:
        centred = await session.start(initial_address=args.address)
        if not centred:
            print(f"ERROR: Could not locate address '{args.address}'", file=sys.stderr)
            return 1
        lat, lon = session.map.center
        if args.mode == "locate":
            print(json.dumps({"address": args.address, "lat": lat, "lon": lon}, indent=2))
            return 0
    else:
        await session.start()
        lat, lon = args.lat, args.lon

    properties = {"CROP_TYPE": args.crop_code, "CNTY": args.county, "CSBACRES": args.acres}
    try:
        selection = session.handle_click({"properties": properties}, (lat, lon))
        outcome, _ = await session.run_analysis(selection)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if outcome == STATUS_FAILED:
        print(f"ERROR: {session.error}", file=sys.stderr)
        return 2

    print(json.dumps(session.snapshot()["result"], indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Analyse the soil of a crop field from its coordinates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/field_analysis.py --lat 42.0308 --lon -93.6319 --crop-code 1
  python scripts/field_analysis.py --address 50011
  python scripts/field_analysis.py --address "Ames, Iowa" --mode locate
        """,
    )
    location = parser.add_mutually_exclusive_group(required=True)
    location.add_argument("--lat", type=float, help="Field latitude")
    location.add_argument(
        "--address",
        help="Address, 5-digit ZIP code or 'lat,lon' to locate the field",
    )
    parser.add_argument("--lon", type=float, help="Field longitude (with --lat)")
    parser.add_argument(
        "--crop-code", type=int, default=None,
        help="USDA CDL crop code of the field (e.g., 1 = Corn)",
    )
    parser.add_argument("--acres", type=float, default=None, help="Field acreage")
    parser.add_argument("--county", default=None, help="County identifier")
    parser.add_argument(
        "--mode", default="analyze",
        choices=["analyze", "locate"],
        help="Run mode (default: analyze)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()
    if args.lat is not None and args.lon is None:
        parser.error("--lon is required with --lat")

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
