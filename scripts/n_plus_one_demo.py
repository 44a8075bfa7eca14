#!/usr/bin/env python3
"""Show the N+1 problem and what the loaders do about it.

Resolves "every book with its author and reviews" three ways against a
seeded catalog with simulated query latency:

    1. Naive: one author query and one review query per book (N+1)
    2. Batched: request-scoped loaders, cache on
    3. Batched with max_batch_size (several smaller batches)

Usage:
    python scripts/n_plus_one_demo.py
    python scripts/n_plus_one_demo.py --authors 50 --latency-ms 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from rich.console import Console
from rich.table import Table

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from batchloader.dispatch_log import DispatchLog, summarize  # noqa: E402
from batchloader.loaders import create_loaders  # noqa: E402
from batchloader.store import Catalog, seed_catalog  # noqa: E402

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s %(levelname)-8s %(message)s",
    datefmt="%H:%M:%S",
)

console = Console()


async def _naive(catalog: Catalog) -> int:
    books = await catalog.list_books()
    rows = 0
    for book in books:
        authors = await catalog.fetch_authors([book.author_id])
        reviews = await catalog.fetch_reviews_by_book_ids([book.id])
        rows += len(authors) + len(reviews)
    return rows


async def _batched(catalog: Catalog, log: DispatchLog, **options) -> int:  # type: ignore[no-untyped-def]
    loaders = create_loaders(catalog, on_dispatch=log, **options)
    books = await catalog.list_books()

    async def resolve(book) -> int:  # type: ignore[no-untyped-def]
        _author, reviews = await asyncio.gather(
            loaders.authors.load(book.author_id),
            loaders.reviews_by_book.load(book.id),
        )
        return 1 + len(reviews)

    return sum(await asyncio.gather(*(resolve(b) for b in books)))


async def _run(args: argparse.Namespace) -> None:
    catalog = seed_catalog(
        args.authors,
        args.books,
        args.reviews,
        latency_s=args.latency_ms / 1000,
    )
    table = Table(
        title=f"{len(catalog.books)} books, {args.latency_ms}ms per query",
        show_lines=True,
    )
    table.add_column("Strategy", style="bold")
    table.add_column("Queries", justify="right")
    table.add_column("Rows", justify="right")
    table.add_column("Elapsed", justify="right")

    strategies = [
        ("naive (N+1)", None),
        ("loaders", {}),
        (f"loaders, max_batch_size={args.max_batch}", {"max_batch_size": args.max_batch}),
    ]
    log = DispatchLog()
    for label, options in strategies:
        catalog.reset_query_log()
        t0 = time.perf_counter()
        if options is None:
            rows = await _naive(catalog)
        else:
            rows = await _batched(catalog, log, **options)
        elapsed = time.perf_counter() - t0
        table.add_row(label, str(catalog.query_count), f"{rows:,}", f"{elapsed:.2f}s")

    console.print(table)

    per_loader = Table(title="Dispatched batches (both loader runs)")
    per_loader.add_column("Loader", style="bold")
    per_loader.add_column("Batches", justify="right")
    per_loader.add_column("Keys", justify="right")
    per_loader.add_column("Mean size", justify="right")
    for name, s in summarize(log.records).items():
        per_loader.add_row(name, str(s.batches), str(s.keys), f"{s.mean_size:.1f}")
    console.print(per_loader)


def main() -> int:
    parser = argparse.ArgumentParser(description="Compare naive vs batched catalog lookups.")
    parser.add_argument("--authors", type=int, default=25, help="Authors to seed (default: 25).")
    parser.add_argument("--books", type=int, default=4, help="Books per author (default: 4).")
    parser.add_argument("--reviews", type=int, default=3, help="Reviews per book (default: 3).")
    parser.add_argument(
        "--latency-ms",
        type=float,
        default=2.0,
        help="Simulated latency per catalog query (default: 2).",
    )
    parser.add_argument(
        "--max-batch",
        type=int,
        default=16,
        help="max_batch_size for the capped run (default: 16).",
    )
    args = parser.parse_args()
    asyncio.run(_run(args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
