"""Validate a proficiency band table and print the resulting ranges."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from proficiency_bands import BandConfigError, BandRegistry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="JSON band table (default: the built-in table)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        registry = BandRegistry(args.path)
    except (BandConfigError, FileNotFoundError) as exc:
        print(f"Invalid band table: {exc}")
        return 1

    bands = registry.bands
    for band, upper in zip(bands, [b.min_score for b in bands[1:]] + [1.0]):
        print(f"{band.level}. {band.name:<16} [{band.min_score:.2f}, {upper:.2f})  {band.description}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
