"""Centralized configuration for the batchloader catalog service.

All settings live here so they can be overridden by environment variables or a
``.env`` file without touching source code.

**Profile system:** Set ``BATCHLOADER_PROFILE=dev`` (default) or
``BATCHLOADER_PROFILE=prod`` to get sensible defaults for each environment.
Any individual ``BATCHLOADER_*`` var still overrides the profile value.

Usage::

    from batchloader.config import loader_options

    loaders = create_loaders(catalog, **loader_options())
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load .env from current working directory (project root when running uvicorn)
load_dotenv()

LOGGER = logging.getLogger(__name__)

# ── Profile: one knob for the whole environment ──────────────────────────────
# "dev" = verbose local mode, "prod" = production-ready defaults.
# Individual vars always override the profile.

PROFILE: str = os.getenv("BATCHLOADER_PROFILE", "dev").lower().strip()

_PROFILE_DEFAULTS: dict[str, dict[str, str]] = {
    "dev": {
        "BATCHLOADER_MAX_BATCH_SIZE": "0",
        "BATCHLOADER_CACHE": "1",
        "BATCHLOADER_LOG_LEVEL": "DEBUG",
        "BATCHLOADER_CORS_ORIGINS": "*",
        "BATCHLOADER_QUERY_LATENCY_MS": "0",
    },
    "prod": {
        "BATCHLOADER_MAX_BATCH_SIZE": "100",
        "BATCHLOADER_CACHE": "1",
        "BATCHLOADER_LOG_LEVEL": "INFO",
        "BATCHLOADER_CORS_ORIGINS": "",  # empty → must be explicitly set
        "BATCHLOADER_QUERY_LATENCY_MS": "5",
    },
}

if PROFILE not in _PROFILE_DEFAULTS:
    LOGGER.warning("Unknown BATCHLOADER_PROFILE=%r, falling back to 'dev'.", PROFILE)
    PROFILE = "dev"

_defaults = _PROFILE_DEFAULTS[PROFILE]


def _env(key: str, fallback: str = "") -> str:
    """Read an env var, falling back to profile default then *fallback*."""
    return os.getenv(key, _defaults.get(key, fallback))


# ── Loader behaviour ─────────────────────────────────────────────────────────
# 0 = no cap on distinct keys per batch.
MAX_BATCH_SIZE: int = int(_env("BATCHLOADER_MAX_BATCH_SIZE", "0"))
CACHE_ENABLED: bool = _env("BATCHLOADER_CACHE", "1") == "1"

# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL: str = _env("BATCHLOADER_LOG_LEVEL", "INFO").upper().strip() or "INFO"
_dispatch_log = _env("BATCHLOADER_DISPATCH_LOG").strip()
DISPATCH_LOG_PATH: Path | None = Path(_dispatch_log) if _dispatch_log else None

# ── Demo catalog ─────────────────────────────────────────────────────────────
SEED_AUTHORS: int = int(_env("BATCHLOADER_SEED_AUTHORS", "25"))
BOOKS_PER_AUTHOR: int = int(_env("BATCHLOADER_BOOKS_PER_AUTHOR", "4"))
REVIEWS_PER_BOOK: int = int(_env("BATCHLOADER_REVIEWS_PER_BOOK", "3"))
# Simulated round-trip per catalog query; makes the N+1 cost visible.
QUERY_LATENCY_MS: float = float(_env("BATCHLOADER_QUERY_LATENCY_MS", "0"))

# ── GraphQL ──────────────────────────────────────────────────────────────────
QUERY_DEPTH: int = int(_env("BATCHLOADER_QUERY_DEPTH", "10"))

# ── Security / network ──────────────────────────────────────────────────────
CORS_ORIGINS: str = _env("BATCHLOADER_CORS_ORIGINS").strip()
API_KEY: str = _env("BATCHLOADER_API_KEY").strip()

# ── Production guard: warn if CORS is wide-open or API_KEY is missing ────────
if PROFILE == "prod":
    if CORS_ORIGINS in ("*", ""):
        LOGGER.warning(
            "BATCHLOADER_PROFILE=prod but BATCHLOADER_CORS_ORIGINS=%r. "
            "Set it to your front-end origin(s) for security.",
            CORS_ORIGINS,
        )
    if not API_KEY:
        LOGGER.warning(
            "BATCHLOADER_PROFILE=prod but BATCHLOADER_API_KEY is empty. "
            "GraphQL endpoint is unprotected."
        )


def loader_options() -> dict[str, Any]:
    """Keyword arguments applied to every request-scoped loader."""
    return {
        "max_batch_size": MAX_BATCH_SIZE or None,
        "cache": CACHE_ENABLED,
    }
