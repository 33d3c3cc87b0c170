"""Tests for single-feed ingestion and tiered refresh passes."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import build_rss, numbered_items
from feed_hub.billing import StaticBillingDirectory
from feed_hub.cache import CacheResult, MemoryRefreshCache, RefreshCache
from feed_hub.config import ScheduleConfig
from feed_hub.core.errors import FetchError, NotFound
from feed_hub.core.types import CandidateEntry, ParsedFeed, PaymentRecord, Plan
from feed_hub.fetch.fetcher import FeedFetcher
from feed_hub.fetch.parser import parse_feed
from feed_hub.pipeline import IngestionPipeline
from feed_hub.scheduler import RefreshScheduler
from feed_hub.storage.memory import InMemoryRepository
from feed_hub.storage.sqlite import SqliteRepository


FEED_URL = "https://example.com/feed.xml"


class _FailingCache(RefreshCache):
    def record_refresh(self, feed_id, at):
        return CacheResult(ok=False, error="disk full")

    def last_refresh(self, feed_id):
        return None


class _ScriptedFetcher:
    """Fetcher stub returning canned ParsedFeeds or raising per URL."""

    def __init__(self, results):
        self.results = results
        self.calls = []

    def fetch(self, url, now=None):
        self.calls.append(url)
        outcome = self.results[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _pipeline(stub_server, now, cache=None):
    repo = InMemoryRepository()
    fetcher = FeedFetcher(client=stub_server.client())
    return repo, IngestionPipeline(repo, fetcher, cache=cache, clock=lambda: now)


def test_refresh_is_idempotent(stub_server, now):
    stub_server.add(FEED_URL, build_rss(numbered_items(10)))
    repo, pipeline = _pipeline(stub_server, now)
    feed = repo.create_feed(FEED_URL)

    first = pipeline.refresh(feed.id)
    second = pipeline.refresh(feed.id)

    assert first.articles_added == 10
    assert second.articles_added == 0
    assert len(repo.list_articles(feed.id)) == 10
    refreshed = repo.get_feed(feed.id)
    assert refreshed.title == "Example Feed"
    assert refreshed.last_fetched_at == now


def test_refresh_missing_feed_raises(stub_server, now):
    _, pipeline = _pipeline(stub_server, now)

    with pytest.raises(NotFound):
        pipeline.refresh(999)


def test_failed_refresh_leaves_feed_untouched(stub_server, now):
    stub_server.add(FEED_URL, b"", status=503)
    repo, pipeline = _pipeline(stub_server, now)
    earlier = now - timedelta(days=1)
    feed = repo.create_feed(FEED_URL, title="Old title", last_fetched_at=earlier)

    with pytest.raises(FetchError) as excinfo:
        pipeline.refresh(feed.id)

    assert excinfo.value.kind == FetchError.NETWORK
    stored = repo.get_feed(feed.id)
    assert stored.title == "Old title"
    assert stored.last_fetched_at == earlier


def test_refresh_records_to_cache(stub_server, now):
    stub_server.add(FEED_URL, build_rss(numbered_items(2)))
    cache = MemoryRefreshCache()
    repo, pipeline = _pipeline(stub_server, now, cache=cache)
    feed = repo.create_feed(FEED_URL)

    pipeline.refresh(feed.id)

    assert cache.last_refresh(feed.id, now=now) == now


def test_cache_failure_does_not_fail_refresh(stub_server, now):
    stub_server.add(FEED_URL, build_rss(numbered_items(2)))
    repo, pipeline = _pipeline(stub_server, now, cache=_FailingCache())
    feed = repo.create_feed(FEED_URL)

    assert pipeline.refresh(feed.id).articles_added == 2


def test_get_or_create_feed_fetches_once(stub_server, now):
    stub_server.add(FEED_URL, build_rss(numbered_items(3)))
    repo, pipeline = _pipeline(stub_server, now)

    feed = pipeline.get_or_create_feed(FEED_URL)
    again = pipeline.get_or_create_feed(FEED_URL)

    assert again.id == feed.id
    assert feed.last_fetched_at == now
    assert len(repo.list_articles(feed.id)) == 3
    assert len(stub_server.requests) == 1


def test_get_or_create_feed_rejects_unreachable_url(stub_server, now):
    repo, pipeline = _pipeline(stub_server, now)

    with pytest.raises(FetchError):
        pipeline.get_or_create_feed("https://example.com/missing.xml")

    assert repo.list_feeds() == []


def _scheduler(repo, fetcher, now, billing=None, cfg=None):
    pipeline = IngestionPipeline(repo, fetcher, clock=lambda: now)
    return RefreshScheduler(repo, pipeline, cfg or ScheduleConfig(), billing=billing, clock=lambda: now)


def test_feeds_due_uses_plan_interval(now):
    repo = InMemoryRepository()
    two_hours = repo.create_feed("https://a.example/feed", last_fetched_at=now - timedelta(hours=2))
    fresh = repo.create_feed("https://b.example/feed", last_fetched_at=now - timedelta(minutes=30))
    stale = repo.create_feed("https://c.example/feed", last_fetched_at=now - timedelta(hours=7))
    never = repo.create_feed("https://d.example/feed")
    orphan = repo.create_feed("https://e.example/feed")
    for feed in (two_hours, fresh, stale, never):
        repo.create_subscription(feed.id, user_id="alice")

    scheduler = _scheduler(repo, _ScriptedFetcher({}), now)

    assert scheduler.feeds_due(Plan.FREE) == [stale.id, never.id]
    assert scheduler.feeds_due(Plan.PRO) == [two_hours.id, stale.id, never.id]
    assert orphan.id not in scheduler.feeds_due(Plan.POWER)


def test_feed_exactly_at_cutoff_is_not_due(now):
    repo = InMemoryRepository()
    feed = repo.create_feed("https://a.example/feed", last_fetched_at=now - timedelta(minutes=60))
    repo.create_subscription(feed.id, user_id="alice")

    scheduler = _scheduler(repo, _ScriptedFetcher({}), now)

    assert scheduler.feeds_due(Plan.PRO) == []
    assert scheduler.feeds_due(Plan.PRO, now=now + timedelta(seconds=1)) == [feed.id]


def test_feeds_due_filters_by_subscriber_plan(now):
    repo = InMemoryRepository()
    free_feed = repo.create_feed("https://free.example/feed")
    pro_feed = repo.create_feed("https://pro.example/feed")
    repo.create_subscription(free_feed.id, user_id="bob")
    repo.create_subscription(pro_feed.id, user_id="alice")
    billing = StaticBillingDirectory({"alice": PaymentRecord(plan=Plan.PRO)})

    scheduler = _scheduler(repo, _ScriptedFetcher({}), now, billing=billing)

    assert scheduler.feeds_due(Plan.FREE) == [free_feed.id]
    assert scheduler.feeds_due(Plan.PRO) == [pro_feed.id]
    assert scheduler.feeds_due(Plan.POWER) == []


def test_run_pass_isolates_failures(now):
    repo = InMemoryRepository()
    good = repo.create_feed("https://good.example/feed")
    bad = repo.create_feed("https://bad.example/feed")
    crashing = repo.create_feed("https://crash.example/feed")
    for feed in (good, bad, crashing):
        repo.create_subscription(feed.id, user_id="alice")

    fetcher = _ScriptedFetcher(
        {
            good.url: parse_feed(build_rss(numbered_items(4)), good.url, now=now),
            bad.url: FetchError(bad.url, FetchError.NETWORK, "HTTP 500"),
            crashing.url: RuntimeError("boom"),
        }
    )
    scheduler = _scheduler(repo, fetcher, now, cfg=ScheduleConfig(max_workers=2))

    report = scheduler.run_pass(Plan.FREE)

    assert report.due == 3
    assert report.succeeded == 1
    assert report.failed == 2
    assert report.articles_added == 4
    assert set(report.errors) == {bad.id, crashing.id}
    assert "RuntimeError" in report.errors[crashing.id]
    # Only the successful feed moves out of the due set.
    assert scheduler.feeds_due(Plan.FREE) == [bad.id, crashing.id]


def test_run_pass_with_nothing_due(now):
    repo = InMemoryRepository()
    fetcher = _ScriptedFetcher({})

    report = _scheduler(repo, fetcher, now).run_pass(Plan.PRO)

    assert report.due == 0
    assert fetcher.calls == []


def test_scraped_feed_refresh_adds_nothing_for_unchanged_page(now):
    repo = InMemoryRepository()
    feed = repo.create_feed("https://page.example/post")
    repo.create_subscription(feed.id, user_id="alice")

    def scraped(guid):
        entry = CandidateEntry(guid=guid, title="Post", url=feed.url, published_at=now, content="<p>Same</p>")
        return ParsedFeed(title="Post", site_url=feed.url, entries=[entry], scraped=True)

    fetcher = _ScriptedFetcher({feed.url: scraped("first")})
    pipeline = IngestionPipeline(repo, fetcher, clock=lambda: now)
    assert pipeline.refresh(feed.id).articles_added == 1

    fetcher.results[feed.url] = scraped("second")
    assert pipeline.refresh(feed.id).articles_added == 0


@pytest.mark.parametrize("backend", ["memory", "sqlite"])
def test_concurrent_refreshes_of_one_feed_add_each_entry_once(backend, tmp_path, now):
    repo = InMemoryRepository() if backend == "memory" else SqliteRepository(tmp_path / "feeds.db")
    feed = repo.create_feed(FEED_URL)
    fetcher = _ScriptedFetcher({FEED_URL: parse_feed(build_rss(numbered_items(30)), FEED_URL, now=now)})
    pipeline = IngestionPipeline(repo, fetcher, clock=lambda: now)
    barrier = threading.Barrier(8)

    def refresh_together():
        barrier.wait()
        return pipeline.refresh(feed.id).articles_added

    with ThreadPoolExecutor(max_workers=8) as executor:
        added = list(executor.map(lambda _: refresh_together(), range(8)))

    assert sum(added) == 30
    assert len(repo.list_articles(feed.id)) == 30
