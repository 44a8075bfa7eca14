"""Dispatch log for batch loaders.

One record per dispatched batch: which loader, how many keys, how long the
batch function took, and whether any key failed. Records are kept in memory
and, when a path is configured, appended to a JSONL file that
``scripts/dispatch_dashboard.py`` reads to spot loaders that batch poorly.

Usage:
    from batchloader.dispatch_log import DispatchLog

    log = DispatchLog(Path(".dispatch_log.jsonl"))
    loader = DataLoader(load_authors, name="authors", on_dispatch=log)
    ...
    for rec in log.records:
        print(rec.loader, rec.size, rec.duration_s)
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path(".dispatch_log.jsonl")


@dataclass
class BatchRecord:
    """One line in the dispatch log."""

    loader: str
    batch_id: int
    size: int
    started_at: str  # ISO
    duration_s: float
    status: str = "ok"  # ok | partial | error
    failed_keys: int = 0
    error: str | None = None

    def to_json_line(self) -> str:
        return json.dumps(
            {
                "loader": self.loader,
                "batch_id": self.batch_id,
                "size": self.size,
                "started_at": self.started_at,
                "duration_s": self.duration_s,
                "status": self.status,
                "failed_keys": self.failed_keys,
                "error": self.error,
            }
        )

    @classmethod
    def from_json_line(cls, line: str) -> BatchRecord | None:
        line = line.strip()
        if not line:
            return None
        try:
            d = json.loads(line)
            return cls(
                loader=d.get("loader", ""),
                batch_id=int(d.get("batch_id", 0)),
                size=int(d.get("size", 0)),
                started_at=d.get("started_at", ""),
                duration_s=float(d.get("duration_s", 0.0)),
                status=d.get("status", "ok"),
                failed_keys=int(d.get("failed_keys", 0)),
                error=d.get("error"),
            )
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            return None


class DispatchLog:
    """Callable sink for ``on_dispatch``; keeps the last *keep* records."""

    def __init__(self, log_path: Path | None = None, *, keep: int = 500) -> None:
        self.log_path = log_path
        self.records: deque[BatchRecord] = deque(maxlen=keep)
        self.total = 0

    def __call__(self, record: BatchRecord) -> None:
        self.records.append(record)
        self.total += 1
        if self.log_path is None:
            return
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(record.to_json_line() + "\n")
        except OSError as e:
            LOGGER.warning("Dispatch log append failed: %s", e)


@dataclass
class LoaderSummary:
    loader: str
    batches: int = 0
    keys: int = 0
    failed_batches: int = 0
    total_s: float = 0.0

    @property
    def mean_size(self) -> float:
        return self.keys / self.batches if self.batches else 0.0


def summarize(records) -> dict[str, LoaderSummary]:  # type: ignore[no-untyped-def]
    """Aggregate records per loader name."""
    out: dict[str, LoaderSummary] = {}
    for rec in records:
        s = out.setdefault(rec.loader, LoaderSummary(loader=rec.loader))
        s.batches += 1
        s.keys += rec.size
        s.total_s += rec.duration_s
        if rec.status != "ok":
            s.failed_batches += 1
    return out


def load_recent_batches(
    n: int = 100,
    *,
    loader: str | None = None,
    log_path: Path | None = None,
) -> list[BatchRecord]:
    """Load the last n batch records (newest first). Optionally filter by loader."""
    path = log_path or get_log_path()
    if not path.exists():
        return []
    records: list[BatchRecord] = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            rec = BatchRecord.from_json_line(line)
            if rec is None:
                continue
            if loader is None or rec.loader == loader:
                records.append(rec)
    return records[-n:][::-1]


def get_log_path() -> Path:
    """Path to the dispatch log file (for dashboard and CLI)."""
    return Path(os.environ.get("BATCHLOADER_DISPATCH_LOG") or str(DEFAULT_LOG_PATH))
