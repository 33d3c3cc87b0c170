"""Tests for repository backends and the refresh cache."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from feed_hub.cache import JsonlRefreshCache, MemoryRefreshCache, NullRefreshCache, build_cache
from feed_hub.config import CacheConfig, StorageConfig
from feed_hub.core.errors import NotFound, UniqueConstraintViolation
from feed_hub.core.types import CandidateEntry
from feed_hub.storage import InMemoryRepository, SqliteRepository, build_repository


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryRepository()
    return SqliteRepository(tmp_path / "feeds.db")


def _entry(guid, url="https://example.com/a"):
    return CandidateEntry(
        guid=guid,
        title="A",
        url=url,
        published_at=datetime(2026, 10, 1, 6, 30, tzinfo=timezone.utc),
        author="Ann",
        summary="s",
        content="c",
    )


def test_feed_url_is_unique(repo):
    repo.create_feed("https://example.com/feed")

    with pytest.raises(UniqueConstraintViolation) as excinfo:
        repo.create_feed("https://example.com/feed")

    assert excinfo.value.constraint == "feed_url"


def test_article_round_trip(repo):
    feed = repo.create_feed("https://example.com/feed")
    created = repo.create_article(feed.id, _entry("g1"), "fp1")

    loaded = repo.get_article(created.id)

    assert loaded.guid == "g1"
    assert loaded.published_at == datetime(2026, 10, 1, 6, 30, tzinfo=timezone.utc)
    assert repo.find_article_by_fingerprint("fp1").id == created.id
    assert repo.find_article_by_fingerprint("missing") is None


def test_article_unique_constraints(repo):
    feed = repo.create_feed("https://example.com/feed")
    other = repo.create_feed("https://other.example/feed")
    repo.create_article(feed.id, _entry("g1"), "fp1")

    with pytest.raises(UniqueConstraintViolation) as by_fp:
        repo.create_article(other.id, _entry("g9"), "fp1")
    with pytest.raises(UniqueConstraintViolation) as by_guid:
        repo.create_article(feed.id, _entry("g1"), "fp2")

    assert by_fp.value.constraint == "fingerprint"
    assert by_guid.value.constraint == "feed_guid"
    # Same guid in a different feed is a different identity.
    repo.create_article(other.id, _entry("g1"), "fp3")


def test_update_missing_feed_raises(repo):
    with pytest.raises(NotFound):
        repo.update_feed_metadata(42, "t", "s", datetime.now(timezone.utc))


def test_find_due_feeds_skips_orphans(repo):
    now = datetime(2026, 10, 15, tzinfo=timezone.utc)
    subscribed = repo.create_feed("https://a.example/feed")
    repo.create_feed("https://orphan.example/feed")
    repo.create_subscription(subscribed.id, team_id=7)

    assert repo.find_due_feeds(now) == [subscribed.id]
    assert repo.find_due_feeds(now, lambda sub: sub.subscriber_id == "team:7") == [subscribed.id]
    assert repo.find_due_feeds(now, lambda sub: False) == []


def test_list_subscriptions_per_feed(repo):
    feed = repo.create_feed("https://a.example/feed")
    other = repo.create_feed("https://b.example/feed")
    repo.create_subscription(feed.id, user_id="alice", category="news")
    repo.create_subscription(feed.id, team_id=7)
    repo.create_subscription(other.id, user_id="bob")

    subscriptions = sorted(repo.list_subscriptions(feed.id), key=lambda sub: sub.id)

    assert [sub.subscriber_id for sub in subscriptions] == ["alice", "team:7"]
    assert subscriptions[0].category == "news"
    assert repo.list_subscriptions(999) == []


def test_credit_increment_respects_ceiling(repo):
    now = datetime(2026, 10, 15, tzinfo=timezone.utc)
    start, end = datetime(2026, 10, 1, tzinfo=timezone.utc), datetime(2026, 11, 1, tzinfo=timezone.utc)
    repo.find_or_create_credit_cycle("alice", now, start, end)

    assert repo.increment_credit_usage("alice", now, ceiling=2) == 1
    assert repo.increment_credit_usage("alice", now, ceiling=2) == 2
    assert repo.increment_credit_usage("alice", now, ceiling=2) is None
    # Outside every cycle there is nothing to increment.
    assert repo.increment_credit_usage("alice", end + timedelta(days=1), ceiling=2) is None


def test_newest_cycle_wins(repo):
    now = datetime(2026, 10, 15, tzinfo=timezone.utc)
    month = (datetime(2026, 10, 1, tzinfo=timezone.utc), datetime(2026, 11, 1, tzinfo=timezone.utc))
    repo.find_or_create_credit_cycle("alice", now, *month)
    repo.increment_credit_usage("alice", now, ceiling=180)
    repo.create_credit_cycle("alice", datetime(2026, 10, 14, tzinfo=timezone.utc), month[1])

    cycle = repo.find_or_create_credit_cycle("alice", now, *month)

    assert cycle.used == 0
    assert cycle.cycle_start == datetime(2026, 10, 14, tzinfo=timezone.utc)


def test_read_marker_upsert_keeps_first(repo):
    feed = repo.create_feed("https://example.com/feed")
    article = repo.create_article(feed.id, _entry("g1"), "fp1")
    first = datetime(2026, 10, 15, tzinfo=timezone.utc)

    repo.upsert_read_marker(article.id, "alice", first)
    again = repo.upsert_read_marker(article.id, "alice", first + timedelta(hours=1))

    assert again.read_at == first


def test_build_repository_rejects_unknown_backend(tmp_path):
    assert isinstance(build_repository(StorageConfig(backend="memory")), InMemoryRepository)
    assert isinstance(
        build_repository(StorageConfig(backend="sqlite", path=str(tmp_path / "x.db"))),
        SqliteRepository,
    )
    with pytest.raises(ValueError, match="Unsupported storage backend"):
        build_repository(StorageConfig(backend="postgres"))


def test_memory_cache_expires_entries():
    cache = MemoryRefreshCache(ttl_seconds=60)
    at = datetime(2026, 10, 15, tzinfo=timezone.utc)

    assert cache.record_refresh(1, at).ok
    assert cache.last_refresh(1, now=at + timedelta(seconds=30)) == at
    assert cache.last_refresh(1, now=at + timedelta(seconds=61)) is None


def test_jsonl_cache_latest_line_wins(tmp_path):
    cache = JsonlRefreshCache(tmp_path / "cache" / "index.jsonl")
    first = datetime(2026, 10, 15, tzinfo=timezone.utc)

    cache.record_refresh(1, first)
    cache.record_refresh(2, first)
    cache.record_refresh(1, first + timedelta(hours=1))

    assert cache.last_refresh(1) == first + timedelta(hours=1)
    assert cache.last_refresh(3) is None


def test_jsonl_cache_skips_malformed_lines(tmp_path):
    path = tmp_path / "index.jsonl"
    good = datetime(2026, 10, 15, tzinfo=timezone.utc)
    path.write_text(
        "\n".join(
            [
                json.dumps({"feed_id": 1, "refreshed_at": good.isoformat()}),
                json.dumps({"feed_id": 1}),
                json.dumps({"feed_id": 1, "refreshed_at": "yesterday"}),
                json.dumps({"feed_id": 1, "refreshed_at": 17}),
                json.dumps([1, 2]),
                "{not json",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    assert JsonlRefreshCache(path).last_refresh(1) == good


def test_jsonl_cache_write_failure_is_returned(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    cache = JsonlRefreshCache(blocker / "index.jsonl")

    result = cache.record_refresh(1, datetime(2026, 10, 15, tzinfo=timezone.utc))

    assert result.ok is False
    assert result.error


def test_build_cache_backends(tmp_path):
    assert isinstance(build_cache(CacheConfig(backend="none")), NullRefreshCache)
    assert isinstance(build_cache(CacheConfig(backend="memory")), MemoryRefreshCache)
    assert isinstance(build_cache(CacheConfig(backend="jsonl", path=str(tmp_path / "i.jsonl"))), JsonlRefreshCache)
