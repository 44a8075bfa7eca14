from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from batchloader.models import Author, Book, Review
from batchloader.store import Catalog, seed_catalog

# ── Batch function doubles ────────────────────────────────────────────────────


class RecordingBatchFn:
    """Async batch function that records every call it receives.

    By default echoes the keys back; pass *fn* to map keys to results.
    """

    def __init__(self, fn: Callable[[list[Any]], Sequence[Any]] | None = None) -> None:
        self.calls: list[list[Any]] = []
        self._fn = fn or (lambda keys: list(keys))

    async def __call__(self, keys: list[Any]) -> Sequence[Any]:
        self.calls.append(list(keys))
        return self._fn(keys)


@pytest.fixture
def make_batch_fn() -> type[RecordingBatchFn]:
    return RecordingBatchFn


@pytest.fixture
def echo() -> RecordingBatchFn:
    return RecordingBatchFn()


@pytest.fixture
def letters() -> RecordingBatchFn:
    """1 -> 'a', 2 -> 'b', 3 -> 'c' ..."""
    return RecordingBatchFn(lambda keys: [chr(ord("a") + k - 1) for k in keys])


# ── Catalog fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def small_catalog() -> Catalog:
    """3 authors, 2 books each, 2 reviews per book."""
    return seed_catalog(3, 2, 2)


@pytest.fixture
def hand_catalog() -> Catalog:
    """Hand-built catalog with one author who has no books."""
    catalog = Catalog()
    catalog.add_author(Author(id="a1", name="Jorge Borges", country="Argentina", born=1899))
    catalog.add_author(Author(id="a2", name="Octavia Butler", country="USA", born=1947))
    catalog.add_author(Author(id="a3", name="Italo Calvino", country="Italy", born=1923))
    catalog.insert_book(Book(id="b1", title="Ficciones", author_id="a1", published_year=1944))
    catalog.insert_book(Book(id="b2", title="Kindred", author_id="a2", published_year=1979))
    catalog.insert_book(Book(id="b3", title="The Aleph", author_id="a1", published_year=1949))
    catalog.add_review(Review(id="r1", book_id="b1", rating=5))
    catalog.add_review(Review(id="r2", book_id="b1", rating=4))
    catalog.add_review(Review(id="r3", book_id="b2", rating=3))
    return catalog
