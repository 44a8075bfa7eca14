#!/usr/bin/env python3
"""Terminal view of the loader dispatch log.

Minimal, monospace, green/amber. Use it to spot loaders that batch poorly
(mean size near 1 means resolvers are not sharing a pass) or fail often.

Set ``BATCHLOADER_DISPATCH_LOG=.dispatch_log.jsonl`` before starting the
app to record batches.

Usage:
    python scripts/dispatch_dashboard.py --tail 30
    python scripts/dispatch_dashboard.py --loader authors
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from batchloader.dispatch_log import get_log_path, load_recent_batches, summarize  # noqa: E402

# ANSI (strip if not TTY for pipes)
G = "\033[92m"  # green
Y = "\033[33m"  # amber
R = "\033[91m"  # red
D = "\033[90m"  # dim
B = "\033[1m"  # bold
X = "\033[0m"  # reset


def _t(s: str) -> str:
    """Shorten timestamp to local time."""
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        return dt.strftime("%m/%d %H:%M:%S")
    except ValueError:
        return s[:19]


def _fmt_dur(s: float) -> str:
    if s >= 1:
        return f"{s:.2f}s"
    return f"{s * 1000:.1f}ms"


def main() -> int:
    parser = argparse.ArgumentParser(description="View the loader dispatch log.")
    parser.add_argument(
        "--tail",
        "-n",
        type=int,
        default=20,
        help="Number of recent batches to show (default: 20).",
    )
    parser.add_argument(
        "--loader",
        type=str,
        default=None,
        help="Filter by loader name (e.g. authors, reviews_by_book).",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color.",
    )
    args = parser.parse_args()

    use_color = not args.no_color and sys.stdout.isatty()
    if not use_color:
        global G, Y, R, D, B, X
        G = Y = R = D = B = X = ""

    path = get_log_path()
    if not path.exists():
        print(f"{D}Dispatch log empty or missing: {path}{X}")
        print(f"{D}Set BATCHLOADER_DISPATCH_LOG and send some GraphQL queries.{X}")
        return 0

    batches = load_recent_batches(n=args.tail, loader=args.loader, log_path=path)
    if not batches:
        print(f"{D}No batches found (loader={args.loader or 'any'}).{X}")
        return 0

    print(f"{B}{G}── DISPATCH LOG  tail={len(batches)}  {args.loader or ''} ──{X}")
    print()
    for rec in batches:
        status_color = {"ok": G, "partial": Y}.get(rec.status, R)
        line = (
            f"  {D}{_t(rec.started_at)}{X}  {Y}{rec.loader:16}{X}  "
            f"{rec.size:>4} keys  {_fmt_dur(rec.duration_s):>8}  "
            f"{status_color}{rec.status}{X}"
        )
        if rec.failed_keys:
            line += f"  {D}{rec.failed_keys} failed{X}"
        print(line)
        if rec.error:
            print(f"       {D}└ {rec.error}{X}")
    print()

    print(f"{B}{G}── Per loader ──{X}")
    for name, s in summarize(batches).items():
        print(
            f"  {Y}{name:16}{X}  {s.batches} batches, mean {s.mean_size:.1f} keys, "
            f"{_fmt_dur(s.total_s)} total, {s.failed_batches} with failures"
        )
    print(f"{D}Log file: {path}{X}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
