"""Integration tests for the FastAPI / GraphQL API.

Uses FastAPI's TestClient (backed by httpx) to exercise the health endpoint,
CORS headers, API key auth, and GraphQL queries against a small seeded
catalog.  Entering the client runs the lifespan, which seeds the catalog
from config.
"""

from __future__ import annotations

import importlib
import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import batchloader.config as _cfg_mod
import batchloader.main as _main_mod

_SMALL = {
    "BATCHLOADER_SEED_AUTHORS": "3",
    "BATCHLOADER_BOOKS_PER_AUTHOR": "2",
    "BATCHLOADER_REVIEWS_PER_BOOK": "1",
    "BATCHLOADER_QUERY_LATENCY_MS": "0",
    "BATCHLOADER_DISPATCH_LOG": "",
}

BOOKS_WITH_AUTHORS = "{ books { items { title author { name } reviews { rating } } } }"
AUTHORS_PAGE = "{ authors(limit: 2) { items { id } pageInfo { totalCount hasNextPage } } }"

# ── Helpers ───────────────────────────────────────────────────────────────────


def _make_client(**env_overrides: str) -> TestClient:
    """Build a fresh TestClient, optionally with env var overrides.

    We reimport ``config`` then ``main`` each time to pick up changed
    env vars for API_KEY, CORS_ORIGINS, etc.
    """
    with patch.dict(os.environ, {**_SMALL, **env_overrides}):
        importlib.reload(_cfg_mod)
        importlib.reload(_main_mod)
        return TestClient(_main_mod.app, raise_server_exceptions=False)


@pytest.fixture(autouse=True, scope="module")
def _restore_modules() -> Iterator[None]:
    yield
    importlib.reload(_cfg_mod)
    importlib.reload(_main_mod)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """TestClient with default env (no API key required)."""
    with _make_client(BATCHLOADER_API_KEY="") as c:
        yield c


@pytest.fixture()
def secured() -> Iterator[TestClient]:
    with _make_client(BATCHLOADER_API_KEY="secret-key-123") as c:
        yield c


# ── Health endpoint ───────────────────────────────────────────────────────────


class TestHealthEndpoint:
    def test_returns_counts(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["ready"] is True
        assert body["authors"] == 3
        assert body["books"] == 6
        assert body["reviews"] == 6
        assert body["queries"] == 0
        assert body["batches_dispatched"] == 0

    def test_not_ready_without_lifespan(self) -> None:
        resp = _make_client(BATCHLOADER_API_KEY="").get("/health")
        assert resp.json()["ready"] is False


# ── CORS headers ──────────────────────────────────────────────────────────────


class TestCORS:
    def test_cors_headers_present(self, client: TestClient) -> None:
        resp = client.options(
            "/graphql",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert "access-control-allow-origin" in resp.headers

    def test_no_cors_when_origins_empty(self) -> None:
        with _make_client(BATCHLOADER_API_KEY="", BATCHLOADER_CORS_ORIGINS="") as c:
            resp = c.get("/health", headers={"Origin": "http://evil.example"})
        assert "access-control-allow-origin" not in resp.headers


# ── API key authentication ────────────────────────────────────────────────────


class TestAPIKeyAuth:
    def test_graphql_accessible_without_key(self, client: TestClient) -> None:
        resp = client.post("/graphql", json={"query": "{ __typename }"})
        assert resp.status_code == 200

    def test_rejects_without_key(self, secured: TestClient) -> None:
        resp = secured.post("/graphql", json={"query": "{ __typename }"})
        assert resp.status_code == 401
        assert "Invalid or missing API key" in resp.json()["detail"]

    def test_accepts_correct_key(self, secured: TestClient) -> None:
        resp = secured.post(
            "/graphql",
            json={"query": "{ __typename }"},
            headers={"X-API-Key": "secret-key-123"},
        )
        assert resp.status_code == 200

    def test_rejects_wrong_key(self, secured: TestClient) -> None:
        resp = secured.post(
            "/graphql",
            json={"query": "{ __typename }"},
            headers={"X-API-Key": "wrong-key"},
        )
        assert resp.status_code == 401

    def test_health_exempt_from_auth(self, secured: TestClient) -> None:
        assert secured.get("/health").status_code == 200


# ── GraphQL queries ───────────────────────────────────────────────────────────


class TestGraphQLQueries:
    def test_books_with_authors_are_batched(self, client: TestClient) -> None:
        resp = client.post("/graphql", json={"query": BOOKS_WITH_AUTHORS})
        assert resp.status_code == 200
        body = resp.json()
        assert "errors" not in body
        items = body["data"]["books"]["items"]
        assert len(items) == 6
        assert all(b["author"]["name"] for b in items)
        assert all(len(b["reviews"]) == 1 for b in items)

        health = client.get("/health").json()
        # list_books, one authors batch, one reviews batch
        assert health["queries"] == 3
        assert health["batches_dispatched"] == 2

    def test_loaders_are_per_request(self, client: TestClient) -> None:
        client.post("/graphql", json={"query": BOOKS_WITH_AUTHORS})
        client.post("/graphql", json={"query": BOOKS_WITH_AUTHORS})
        assert client.get("/health").json()["queries"] == 6

    def test_max_batch_size_from_env(self) -> None:
        with _make_client(BATCHLOADER_API_KEY="", BATCHLOADER_MAX_BATCH_SIZE="1") as c:
            c.post("/graphql", json={"query": "{ books { items { author { name } } } }"})
            health = c.get("/health").json()
        # three distinct authors, one batch each
        assert health["batches_dispatched"] == 3

    def test_author_not_found(self, client: TestClient) -> None:
        resp = client.post("/graphql", json={"query": '{ author(id: "nope") { name } }'})
        assert resp.json()["data"]["author"] is None

    def test_authors_pagination(self, client: TestClient) -> None:
        resp = client.post(
            "/graphql",
            json={"query": AUTHORS_PAGE},
        )
        data = resp.json()["data"]["authors"]
        assert [a["id"] for a in data["items"]] == ["a1", "a2"]
        assert data["pageInfo"] == {"totalCount": 3, "hasNextPage": True}

    def test_add_book_mutation(self, client: TestClient) -> None:
        resp = client.post(
            "/graphql",
            json={
                "query": 'mutation { addBook(title: "New", authorId: "a1", publishedYear: 2020)'
                " { id author { id } } }"
            },
        )
        book = resp.json()["data"]["addBook"]
        assert book["id"] == "b7"
        assert book["author"]["id"] == "a1"
        assert client.get("/health").json()["books"] == 7
