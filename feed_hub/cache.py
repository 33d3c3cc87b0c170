"""
Best-effort refresh records ("feed X refreshed at time T").

The cache is a diagnostic side channel. Every operation reports failure
through CacheResult instead of raising, and callers must behave the same
whether or not a record was written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
import threading

from .config import CacheConfig


@dataclass
class CacheResult:
    """Outcome of a cache write.

    Attributes:
        ok: True if the record was stored
        error: Description of the failure when ok is False
    """
    ok: bool
    error: str | None = None


class RefreshCache(ABC):
    """Key/value side channel recording the last refresh of each feed."""

    @abstractmethod
    def record_refresh(self, feed_id: int, at: datetime) -> CacheResult:
        raise NotImplementedError

    @abstractmethod
    def last_refresh(self, feed_id: int) -> datetime | None:
        raise NotImplementedError


class NullRefreshCache(RefreshCache):
    """Cache that stores nothing."""

    def record_refresh(self, feed_id: int, at: datetime) -> CacheResult:
        return CacheResult(ok=True)

    def last_refresh(self, feed_id: int) -> datetime | None:
        return None


class MemoryRefreshCache(RefreshCache):
    """Process-local cache whose records expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._records: dict[int, datetime] = {}

    def record_refresh(self, feed_id: int, at: datetime) -> CacheResult:
        with self._lock:
            self._records[feed_id] = at
        return CacheResult(ok=True)

    def last_refresh(self, feed_id: int, now: datetime | None = None) -> datetime | None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            at = self._records.get(feed_id)
            if at is None:
                return None
            if now - at > self.ttl:
                del self._records[feed_id]
                return None
            return at


class JsonlRefreshCache(RefreshCache):
    """Tracks refreshes in an append-only JSONL index file.

    Each refresh is logged as a JSON line with the feed id and timestamp;
    the latest line for a feed wins on lookup.

    Attributes:
        path: Full path to the index file
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def record_refresh(self, feed_id: int, at: datetime) -> CacheResult:
        payload = {"feed_id": feed_id, "refreshed_at": at.isoformat()}
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(payload, ensure_ascii=True))
                    handle.write("\n")
        except OSError as exc:
            return CacheResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        return CacheResult(ok=True)

    def last_refresh(self, feed_id: int) -> datetime | None:
        latest: datetime | None = None
        try:
            with self._lock, self.path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    try:
                        payload = json.loads(line)
                        if payload.get("feed_id") != feed_id:
                            continue
                        latest = datetime.fromisoformat(payload["refreshed_at"])
                    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError):
                        continue
        except OSError:
            return None
        return latest


def build_cache(cfg: CacheConfig) -> RefreshCache:
    """Build the refresh cache selected by ``cfg.backend``."""
    backend = cfg.backend.lower().strip()
    if backend == "memory":
        return MemoryRefreshCache(cfg.ttl_seconds)
    if backend == "jsonl":
        return JsonlRefreshCache(Path(cfg.path))
    if backend == "none":
        return NullRefreshCache()
    raise ValueError(f"Unsupported cache backend: {cfg.backend}. Supported: memory, jsonl, none")
