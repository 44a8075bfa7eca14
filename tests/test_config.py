"""Tests for profile defaults and env overrides in ``batchloader.config``."""

from __future__ import annotations

import importlib
import logging
import os
from collections.abc import Iterator
from types import ModuleType
from unittest.mock import patch

import pytest

import batchloader.config as _cfg_mod


@pytest.fixture(autouse=True)
def _restore_config() -> Iterator[None]:
    yield
    importlib.reload(_cfg_mod)


def _load(**env: str) -> ModuleType:
    clean = {k: v for k, v in os.environ.items() if not k.startswith("BATCHLOADER_")}
    # load_dotenv must not leak a developer's .env into these checks
    with patch.dict(os.environ, {**clean, **env}, clear=True), patch("dotenv.load_dotenv"):
        return importlib.reload(_cfg_mod)


class TestProfiles:
    def test_dev_defaults(self) -> None:
        cfg = _load()
        assert cfg.PROFILE == "dev"
        assert cfg.MAX_BATCH_SIZE == 0
        assert cfg.CACHE_ENABLED is True
        assert cfg.LOG_LEVEL == "DEBUG"
        assert cfg.CORS_ORIGINS == "*"
        assert cfg.DISPATCH_LOG_PATH is None

    def test_prod_defaults(self) -> None:
        cfg = _load(BATCHLOADER_PROFILE="prod")
        assert cfg.MAX_BATCH_SIZE == 100
        assert cfg.LOG_LEVEL == "INFO"
        assert cfg.QUERY_LATENCY_MS == 5.0

    def test_prod_warns_on_open_cors_and_missing_key(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="batchloader.config"):
            _load(BATCHLOADER_PROFILE="prod")
        assert "CORS_ORIGINS" in caplog.text
        assert "API_KEY is empty" in caplog.text

    def test_unknown_profile_falls_back_to_dev(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="batchloader.config"):
            cfg = _load(BATCHLOADER_PROFILE="staging")
        assert cfg.PROFILE == "dev"
        assert "staging" in caplog.text


class TestOverrides:
    def test_env_beats_profile(self) -> None:
        cfg = _load(BATCHLOADER_PROFILE="prod", BATCHLOADER_MAX_BATCH_SIZE="25")
        assert cfg.MAX_BATCH_SIZE == 25

    def test_cache_off(self) -> None:
        assert _load(BATCHLOADER_CACHE="0").CACHE_ENABLED is False

    def test_dispatch_log_path(self) -> None:
        cfg = _load(BATCHLOADER_DISPATCH_LOG="/tmp/batches.jsonl")
        assert str(cfg.DISPATCH_LOG_PATH) == "/tmp/batches.jsonl"


class TestLoaderOptions:
    def test_zero_means_unlimited(self) -> None:
        assert _load().loader_options() == {"max_batch_size": None, "cache": True}

    def test_capped(self) -> None:
        opts = _load(BATCHLOADER_MAX_BATCH_SIZE="50", BATCHLOADER_CACHE="0").loader_options()
        assert opts == {"max_batch_size": 50, "cache": False}
