"""Push logged score documents that never reached the remote score store."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import db
import score_log


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Remote document endpoint (default: SCORES_REMOTE_URL)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of documents to forward (default: 100)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    db.init()
    pending = len(db.list_unforwarded_session_scores(limit=max(1, args.limit)))
    if not pending:
        print("No pending score documents.")
        return 0

    forwarded = score_log.forward_pending(limit=max(1, args.limit), remote_url=args.url)
    print(f"Forwarded {forwarded} of {pending} pending score documents.")
    return 0 if forwarded == pending else 1


if __name__ == "__main__":
    raise SystemExit(main())
