"""Batching, per-request caching key loader for asyncio GraphQL resolvers.

Collapses the N lookups a resolver tree issues for related rows into one
bulk call per loader per event-loop pass:

- **DataLoader**: ``load`` / ``load_many`` / ``clear`` / ``clear_all`` / ``prime``
- **Cache stores**: any ``get/set/delete/clear`` object; dict and LRU included
- **Dispatch log**: one record per batch, optionally appended to JSONL

The ``batchloader.main`` app serves a small catalog over GraphQL with one
loader bundle per request.
"""

from .cache import CacheMap, InMemoryCacheMap, LRUCacheMap
from .dispatch_log import BatchRecord, DispatchLog
from .errors import (
    BatchFunctionContractError,
    EntityNotFoundError,
    InvalidKeyError,
    LoaderError,
)
from .loader import DataLoader, LoaderStats

__all__ = [
    "BatchFunctionContractError",
    "BatchRecord",
    "CacheMap",
    "DataLoader",
    "DispatchLog",
    "EntityNotFoundError",
    "InMemoryCacheMap",
    "InvalidKeyError",
    "LRUCacheMap",
    "LoaderError",
    "LoaderStats",
]
