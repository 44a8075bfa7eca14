"""Request-scoped batch loaders for GraphQL resolvers.

Wraps the catalog's bulk fetches in batch functions for authors, books,
books-by-author and reviews-by-book so resolvers can ask for one key at a
time while the catalog sees one query per batch instead of N lookups.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .dispatch_log import BatchRecord
from .errors import EntityNotFoundError
from .loader import DataLoader
from .models import Author, Book, Review
from .store import Catalog


class CatalogBatchFunctions:
    """Batch functions for one catalog; each returns results in key order."""

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def authors(self, ids: list[str]) -> list[Author | Exception]:
        rows = await self._catalog.fetch_authors(ids)
        by_id = {a.id: a for a in rows}
        return [by_id.get(i) or EntityNotFoundError("Author", i) for i in ids]

    async def books(self, ids: list[str]) -> list[Book | Exception]:
        rows = await self._catalog.fetch_books(ids)
        by_id = {b.id: b for b in rows}
        return [by_id.get(i) or EntityNotFoundError("Book", i) for i in ids]

    async def books_by_author(self, author_ids: list[str]) -> list[list[Book]]:
        grouped: dict[str, list[Book]] = defaultdict(list)
        for book in await self._catalog.fetch_books_by_author_ids(author_ids):
            grouped[book.author_id].append(book)
        return [grouped.get(aid, []) for aid in author_ids]

    async def reviews_by_book(self, book_ids: list[str]) -> list[list[Review]]:
        grouped: dict[str, list[Review]] = defaultdict(list)
        for review in await self._catalog.fetch_reviews_by_book_ids(book_ids):
            grouped[review.book_id].append(review)
        return [grouped.get(bid, []) for bid in book_ids]


@dataclass
class CatalogLoaders:
    """One instance per GraphQL request.

    Usage in resolver::

        loaders = info.context["loaders"]
        author = await loaders.authors.load(book.author_id)
    """

    authors: DataLoader[str, Author]
    books: DataLoader[str, Book]
    books_by_author: DataLoader[str, list[Book]]
    reviews_by_book: DataLoader[str, list[Review]]

    def all(self) -> list[DataLoader]:
        return [self.authors, self.books, self.books_by_author, self.reviews_by_book]

    @property
    def batches(self) -> int:
        return sum(loader.stats.batches for loader in self.all())


def create_loaders(
    catalog: Catalog,
    *,
    on_dispatch: Callable[[BatchRecord], None] | None = None,
    **options: Any,
) -> CatalogLoaders:
    """Create request-scoped loaders over *catalog*.

    *options* are passed to every :class:`DataLoader` (``max_batch_size``,
    ``cache``, ``schedule_fn`` ...).
    """
    fns = CatalogBatchFunctions(catalog)

    def make(name: str, fn: Any) -> DataLoader:
        return DataLoader(fn, name=name, on_dispatch=on_dispatch, **options)

    return CatalogLoaders(
        authors=make("authors", fns.authors),
        books=make("books", fns.books),
        books_by_author=make("books_by_author", fns.books_by_author),
        reviews_by_book=make("reviews_by_book", fns.reviews_by_book),
    )
