from __future__ import annotations

import logging
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import strawberry
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from strawberry.extensions import QueryDepthLimiter
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from . import config
from .dispatch_log import DispatchLog, summarize
from .errors import EntityNotFoundError
from .loaders import create_loaders
from .models import Author, Book
from .schema import (
    AuthorConnection,
    AuthorSortField,
    AuthorType,
    BookConnection,
    BookSortField,
    BookType,
    SortOrder,
    _loaders,
    paginate,
)
from .store import Catalog, seed_catalog

# ── Configure logging ────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(levelname)s:     %(message)s",
    stream=sys.stderr,
    force=True,
)
LOGGER = logging.getLogger(__name__)


# ── App state container ──────────────────────────────────────────────────────


class AppState:
    def __init__(self) -> None:
        self.catalog: Catalog = Catalog()
        self.dispatch_log: DispatchLog = DispatchLog(config.DISPATCH_LOG_PATH)


state = AppState()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    t0 = time.perf_counter()
    state.catalog = seed_catalog(
        config.SEED_AUTHORS,
        config.BOOKS_PER_AUTHOR,
        config.REVIEWS_PER_BOOK,
        latency_s=config.QUERY_LATENCY_MS / 1000,
    )
    opts = config.loader_options()
    LOGGER.info(
        "Startup complete in %.2fs (profile=%s, max_batch_size=%s, cache=%s)",
        time.perf_counter() - t0,
        config.PROFILE,
        opts["max_batch_size"] or "unlimited",
        "on" if opts["cache"] else "off",
    )
    yield
    for name, s in summarize(state.dispatch_log.records).items():
        LOGGER.info(
            "Loader %s: %d batches, %d keys (mean %.1f), %d with failures",
            name,
            s.batches,
            s.keys,
            s.mean_size,
            s.failed_batches,
        )


async def get_context() -> dict[str, Any]:
    """Fresh loaders for every GraphQL request; caches never cross requests."""
    return {
        "loaders": create_loaders(
            state.catalog,
            on_dispatch=state.dispatch_log,
            **config.loader_options(),
        ),
    }


def _sort_books(books: list[Book], sort_by: BookSortField | None, order: SortOrder | None) -> None:
    if sort_by is None:
        return
    reverse = order == SortOrder.DESC
    if sort_by == BookSortField.TITLE:
        books.sort(key=lambda b: b.title, reverse=reverse)
    elif sort_by == BookSortField.PUBLISHED_YEAR:
        books.sort(key=lambda b: b.published_year, reverse=reverse)


def _sort_authors(
    authors: list[Author], sort_by: AuthorSortField | None, order: SortOrder | None
) -> None:
    if sort_by is None:
        return
    reverse = order == SortOrder.DESC
    if sort_by == AuthorSortField.NAME:
        authors.sort(key=lambda a: a.name, reverse=reverse)
    elif sort_by == AuthorSortField.BORN:
        authors.sort(key=lambda a: a.born or 0, reverse=reverse)


@strawberry.type
class Query:
    @strawberry.field(description="Look up a single author by id.")
    async def author(self, info: Info, id: str) -> AuthorType | None:
        try:
            model = await _loaders(info).authors.load(id)
        except EntityNotFoundError:
            return None
        return AuthorType.from_model(model)

    @strawberry.field(description="Look up a single book by id.")
    async def book(self, info: Info, id: str) -> BookType | None:
        try:
            model = await _loaders(info).books.load(id)
        except EntityNotFoundError:
            return None
        return BookType.from_model(model)

    @strawberry.field(description="Paginated list of authors with optional sorting.")
    async def authors(
        self,
        info: Info,
        sort_by: AuthorSortField | None = None,
        sort_order: SortOrder | None = None,
        offset: int = 0,
        limit: int = 0,
    ) -> AuthorConnection:
        result = await state.catalog.list_authors()
        _sort_authors(result, sort_by, sort_order)
        page, page_info = paginate(result, offset, limit)
        # Later lookups of these authors (e.g. via book.author) skip the batch.
        loaders = _loaders(info)
        for a in page:
            loaders.authors.prime(a.id, a)
        return AuthorConnection(
            items=[AuthorType.from_model(a) for a in page],
            page_info=page_info,
        )

    @strawberry.field(
        description="Paginated list of books with optional genre filter and sorting.",
    )
    async def books(
        self,
        genre: str | None = None,
        sort_by: BookSortField | None = None,
        sort_order: SortOrder | None = None,
        offset: int = 0,
        limit: int = 0,
    ) -> BookConnection:
        result = await state.catalog.list_books()
        if genre is not None:
            result = [b for b in result if b.genre.lower() == genre.lower()]
        _sort_books(result, sort_by, sort_order)
        page, page_info = paginate(result, offset, limit)
        return BookConnection(
            items=[BookType.from_model(b) for b in page],
            page_info=page_info,
        )


@strawberry.type
class Mutation:
    @strawberry.mutation(description="Add a book; the new row is primed into this request's cache.")
    async def add_book(
        self,
        info: Info,
        title: str,
        author_id: str,
        published_year: int,
        genre: str = "",
    ) -> BookType:
        try:
            book = await state.catalog.add_book(title, author_id, published_year, genre)
        except KeyError as e:
            raise ValueError(e.args[0]) from e
        loaders = _loaders(info)
        loaders.books.prime(book.id, book)
        loaders.books_by_author.clear(book.author_id)
        return BookType.from_model(book)

    @strawberry.mutation(description="Rename an author and return the re-fetched row.")
    async def rename_author(self, info: Info, id: str, name: str) -> AuthorType:
        try:
            await state.catalog.rename_author(id, name)
        except KeyError as e:
            raise ValueError(e.args[0]) from e
        loaders = _loaders(info)
        author = await loaders.authors.clear(id).load(id)
        return AuthorType.from_model(author)


class DepthLimit(QueryDepthLimiter):
    """Depth limit from config, built fresh for each operation."""

    def __init__(self, **_kwargs: Any) -> None:
        super().__init__(max_depth=config.QUERY_DEPTH)


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
    extensions=[DepthLimit],
)
graphql_app = GraphQLRouter(schema, context_getter=get_context)

app = FastAPI(title="batchloader catalog", lifespan=lifespan)

# ── CORS middleware ──────────────────────────────────────────────────────────
_cors_origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API key authentication middleware ────────────────────────────────────────
@app.middleware("http")
async def _api_key_middleware(request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
    """Require ``X-API-Key`` header when ``BATCHLOADER_API_KEY`` is set.

    Skips auth for the health endpoint and for OPTIONS (CORS preflight).
    """
    if config.API_KEY:
        exempt = {"/health", "/docs", "/openapi.json", "/redoc"}
        if request.url.path not in exempt and request.method != "OPTIONS":
            provided = request.headers.get("X-API-Key", "")
            if provided != config.API_KEY:
                return JSONResponse(
                    status_code=401,
                    content={"detail": "Invalid or missing API key"},
                )
    return await call_next(request)


# ── Request logging middleware ───────────────────────────────────────────────
@app.middleware("http")
async def _request_logging_middleware(request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
    """Log every request with method, path, and response time."""
    t0 = time.perf_counter()
    response: Response = await call_next(request)
    elapsed_ms = (time.perf_counter() - t0) * 1000
    LOGGER.info(
        "%s %s %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


# ── Health endpoint ──────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict:
    """Service health check with catalog counts and batching totals."""
    return {
        "status": "ok",
        "ready": len(state.catalog.authors) > 0,
        "authors": len(state.catalog.authors),
        "books": len(state.catalog.books),
        "reviews": len(state.catalog.reviews),
        "queries": state.catalog.query_count,
        "batches_dispatched": state.dispatch_log.total,
    }


app.include_router(graphql_app, prefix="/graphql")
