from __future__ import annotations

from enum import Enum

import strawberry
from strawberry.types import Info

from .loaders import CatalogLoaders
from .models import Author as AuthorModel
from .models import Book as BookModel
from .models import Review as ReviewModel

# ── Enums ─────────────────────────────────────────────────────────────────────


@strawberry.enum
class BookSortField(Enum):
    TITLE = "title"
    PUBLISHED_YEAR = "published_year"


@strawberry.enum
class AuthorSortField(Enum):
    NAME = "name"
    BORN = "born"


@strawberry.enum
class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


def _loaders(info: Info) -> CatalogLoaders:
    return info.context["loaders"]


# ── Pagination ────────────────────────────────────────────────────────────────


@strawberry.type
class PageInfo:
    """Pagination metadata returned with every paginated query."""

    total_count: int = strawberry.field(
        description="Total number of items matching the query (before pagination).",
    )
    has_next_page: bool = strawberry.field(
        description="True when more items exist beyond the current page.",
    )
    has_previous_page: bool = strawberry.field(
        description="True when items exist before the current page.",
    )


def paginate(items: list, offset: int, limit: int) -> tuple[list, PageInfo]:
    """Apply offset/limit pagination and build PageInfo.

    When *limit* is 0 the full list is returned (no cap).
    """
    offset = max(offset, 0)
    total = len(items)
    if limit > 0:
        page = items[offset : offset + limit]
    else:
        page = items[offset:]
    has_next = limit > 0 and (offset + limit) < total
    has_prev = offset > 0
    return page, PageInfo(
        total_count=total,
        has_next_page=has_next,
        has_previous_page=has_prev,
    )


# ── Catalog types ─────────────────────────────────────────────────────────────


@strawberry.type
class ReviewType:
    id: str
    rating: int
    body: str = ""

    @classmethod
    def from_model(cls, r: ReviewModel) -> ReviewType:
        return cls(id=r.id, rating=r.rating, body=r.body)


@strawberry.type
class BookType:
    id: str
    title: str
    published_year: int
    genre: str = ""
    author_id: strawberry.Private[str] = ""

    @classmethod
    def from_model(cls, b: BookModel) -> BookType:
        return cls(
            id=b.id,
            title=b.title,
            published_year=b.published_year,
            genre=b.genre,
            author_id=b.author_id,
        )

    @strawberry.field(
        description="Author of the book. Null with a field error when the author row is missing.",
    )
    async def author(self, info: Info) -> AuthorType | None:
        author = await _loaders(info).authors.load(self.author_id)
        return AuthorType.from_model(author)

    @strawberry.field(description="Reviews for this book.")
    async def reviews(self, info: Info) -> list[ReviewType]:
        reviews = await _loaders(info).reviews_by_book.load(self.id)
        return [ReviewType.from_model(r) for r in reviews]

    @strawberry.field(description="Mean review rating, or null when unreviewed.")
    async def average_rating(self, info: Info) -> float | None:
        reviews = await _loaders(info).reviews_by_book.load(self.id)
        if not reviews:
            return None
        return round(sum(r.rating for r in reviews) / len(reviews), 2)


@strawberry.type
class AuthorType:
    id: str
    name: str
    country: str = ""
    born: int | None = None

    @classmethod
    def from_model(cls, a: AuthorModel) -> AuthorType:
        return cls(id=a.id, name=a.name, country=a.country, born=a.born)

    @strawberry.field(description="Books by this author, oldest first.")
    async def books(self, info: Info) -> list[BookType]:
        books = await _loaders(info).books_by_author.load(self.id)
        return [
            BookType.from_model(b) for b in sorted(books, key=lambda b: b.published_year)
        ]

    @strawberry.field
    async def book_count(self, info: Info) -> int:
        return len(await _loaders(info).books_by_author.load(self.id))


@strawberry.type
class AuthorConnection:
    """Paginated list of authors."""

    items: list[AuthorType]
    page_info: PageInfo


@strawberry.type
class BookConnection:
    """Paginated list of books."""

    items: list[BookType]
    page_info: PageInfo
