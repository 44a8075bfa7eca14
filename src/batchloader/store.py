"""In-memory catalog standing in for a database.

Each public coroutine counts as one round trip and is appended to
``query_log``, so callers (and tests) can see how many queries a GraphQL
request cost. Bulk fetches behave like ``SELECT ... WHERE id IN (...)``:
rows come back in storage order, missing ids are simply absent.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass

from .models import Author, Book, Review

LOGGER = logging.getLogger(__name__)


@dataclass
class QueryRecord:
    table: str
    kind: str  # "scan" | "in" | "write"
    keys: int = 0
    rows: int = 0


class Catalog:
    def __init__(self, latency_s: float = 0.0) -> None:
        self.latency_s = latency_s
        self.authors: dict[str, Author] = {}
        self.books: dict[str, Book] = {}
        self.reviews: dict[str, Review] = {}
        self.query_log: list[QueryRecord] = []
        self._next_book_id = 1

    # ── Bookkeeping ──────────────────────────────────────────────────────────

    @property
    def query_count(self) -> int:
        return len(self.query_log)

    def reset_query_log(self) -> None:
        self.query_log.clear()

    async def _round_trip(self, record: QueryRecord) -> None:
        self.query_log.append(record)
        if self.latency_s > 0:
            await asyncio.sleep(self.latency_s)

    def add_author(self, author: Author) -> None:
        self.authors[author.id] = author

    def add_review(self, review: Review) -> None:
        self.reviews[review.id] = review

    def insert_book(self, book: Book) -> None:
        self.books[book.id] = book
        suffix = book.id[1:]
        if suffix.isdigit():
            self._next_book_id = max(self._next_book_id, int(suffix) + 1)

    # ── Queries ──────────────────────────────────────────────────────────────

    async def list_authors(self) -> list[Author]:
        rows = list(self.authors.values())
        await self._round_trip(QueryRecord("authors", "scan", rows=len(rows)))
        return rows

    async def list_books(self) -> list[Book]:
        rows = list(self.books.values())
        await self._round_trip(QueryRecord("books", "scan", rows=len(rows)))
        return rows

    async def fetch_authors(self, ids: Iterable[str]) -> list[Author]:
        wanted = set(ids)
        rows = [a for a in self.authors.values() if a.id in wanted]
        await self._round_trip(QueryRecord("authors", "in", keys=len(wanted), rows=len(rows)))
        return rows

    async def fetch_books(self, ids: Iterable[str]) -> list[Book]:
        wanted = set(ids)
        rows = [b for b in self.books.values() if b.id in wanted]
        await self._round_trip(QueryRecord("books", "in", keys=len(wanted), rows=len(rows)))
        return rows

    async def fetch_books_by_author_ids(self, author_ids: Iterable[str]) -> list[Book]:
        wanted = set(author_ids)
        rows = [b for b in self.books.values() if b.author_id in wanted]
        await self._round_trip(QueryRecord("books", "in", keys=len(wanted), rows=len(rows)))
        return rows

    async def fetch_reviews_by_book_ids(self, book_ids: Iterable[str]) -> list[Review]:
        wanted = set(book_ids)
        rows = [r for r in self.reviews.values() if r.book_id in wanted]
        await self._round_trip(QueryRecord("reviews", "in", keys=len(wanted), rows=len(rows)))
        return rows

    # ── Writes ───────────────────────────────────────────────────────────────

    async def add_book(
        self, title: str, author_id: str, published_year: int, genre: str = ""
    ) -> Book:
        if author_id not in self.authors:
            raise KeyError(f"Unknown author {author_id!r}")
        book = Book(
            id=f"b{self._next_book_id}",
            title=title,
            author_id=author_id,
            published_year=published_year,
            genre=genre,
        )
        self.insert_book(book)
        await self._round_trip(QueryRecord("books", "write", keys=1, rows=1))
        return book

    async def rename_author(self, author_id: str, name: str) -> None:
        author = self.authors.get(author_id)
        if author is None:
            raise KeyError(f"Unknown author {author_id!r}")
        author.name = name
        await self._round_trip(QueryRecord("authors", "write", keys=1, rows=1))


# ── Seed data ────────────────────────────────────────────────────────────────

_FIRST = ["Ada", "Jorge", "Octavia", "Italo", "Ursula", "Naguib", "Wislawa", "Chinua", "Yoko"]
_LAST = ["Lovelace", "Borges", "Butler", "Calvino", "Le Guin", "Mahfouz", "Szymborska", "Achebe"]
_COUNTRIES = ["UK", "Argentina", "USA", "Italy", "Egypt", "Poland", "Nigeria", "Japan"]
_GENRES = ["fiction", "poetry", "science fiction", "essays", "history"]
_WORDS = ["Labyrinth", "River", "Garden", "Mirror", "Harbor", "Library", "Winter", "Engine"]


def seed_catalog(
    n_authors: int = 25,
    books_per_author: int = 4,
    reviews_per_book: int = 3,
    *,
    latency_s: float = 0.0,
    seed: int = 7,
) -> Catalog:
    """Build a deterministic catalog (same *seed* → same rows)."""
    rng = random.Random(seed)
    catalog = Catalog(latency_s=latency_s)
    book_n = 0
    review_n = 0
    for i in range(1, n_authors + 1):
        author = Author(
            id=f"a{i}",
            name=f"{rng.choice(_FIRST)} {rng.choice(_LAST)}",
            country=rng.choice(_COUNTRIES),
            born=rng.randint(1850, 1990),
        )
        catalog.add_author(author)
        for _ in range(books_per_author):
            book_n += 1
            book = Book(
                id=f"b{book_n}",
                title=f"The {rng.choice(_WORDS)} of {rng.choice(_WORDS)}s",
                author_id=author.id,
                published_year=(author.born or 1900) + rng.randint(20, 60),
                genre=rng.choice(_GENRES),
            )
            catalog.insert_book(book)
            for _ in range(reviews_per_book):
                review_n += 1
                catalog.add_review(
                    Review(
                        id=f"r{review_n}",
                        book_id=book.id,
                        rating=rng.randint(1, 5),
                        body="",
                    )
                )
    LOGGER.info(
        "Seeded catalog: %d authors, %d books, %d reviews",
        len(catalog.authors),
        len(catalog.books),
        len(catalog.reviews),
    )
    return catalog
