"""Process-local repository backed by dictionaries and a single lock."""

from __future__ import annotations

from datetime import datetime
import itertools
import threading

from ..core.errors import NotFound, UniqueConstraintViolation
from ..core.types import (
    Article,
    CandidateEntry,
    CreditCycle,
    Feed,
    ReadMarker,
    Subscription,
    utcnow,
)
from .base import Repository, SubscriptionFilter


class InMemoryRepository(Repository):
    """Thread-safe in-memory implementation of :class:`Repository`.

    Unique indexes mirror the ones the SQLite backend declares, so conflict
    handling behaves the same under concurrent refreshes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._feed_ids = itertools.count(1)
        self._article_ids = itertools.count(1)
        self._subscription_ids = itertools.count(1)
        self._feeds: dict[int, Feed] = {}
        self._feeds_by_url: dict[str, int] = {}
        self._articles: dict[int, Article] = {}
        self._by_fingerprint: dict[str, int] = {}
        self._by_guid: dict[tuple[int, str], int] = {}
        self._subscriptions: dict[int, Subscription] = {}
        self._cycles: list[CreditCycle] = []
        self._read_markers: dict[tuple[int, str], ReadMarker] = {}

    def get_feed(self, feed_id: int) -> Feed | None:
        with self._lock:
            return self._feeds.get(feed_id)

    def find_feed_by_url(self, url: str) -> Feed | None:
        with self._lock:
            feed_id = self._feeds_by_url.get(url)
            return self._feeds.get(feed_id) if feed_id is not None else None

    def create_feed(
        self,
        url: str,
        title: str | None = None,
        site_url: str | None = None,
        last_fetched_at: datetime | None = None,
    ) -> Feed:
        with self._lock:
            if url in self._feeds_by_url:
                raise UniqueConstraintViolation("feed_url")
            feed = Feed(
                id=next(self._feed_ids),
                url=url,
                title=title,
                site_url=site_url,
                last_fetched_at=last_fetched_at,
            )
            self._feeds[feed.id] = feed
            self._feeds_by_url[url] = feed.id
            return feed

    def update_feed_metadata(
        self,
        feed_id: int,
        title: str | None,
        site_url: str | None,
        last_fetched_at: datetime,
    ) -> None:
        with self._lock:
            feed = self._feeds.get(feed_id)
            if feed is None:
                raise NotFound(f"Feed {feed_id} not found")
            feed.title = title
            feed.site_url = site_url
            feed.last_fetched_at = last_fetched_at

    def list_feeds(self) -> list[Feed]:
        with self._lock:
            return [self._feeds[key] for key in sorted(self._feeds)]

    def find_article_by_fingerprint(self, fingerprint: str) -> Article | None:
        with self._lock:
            article_id = self._by_fingerprint.get(fingerprint)
            return self._articles.get(article_id) if article_id is not None else None

    def get_article(self, article_id: int) -> Article | None:
        with self._lock:
            return self._articles.get(article_id)

    def create_article(self, feed_id: int, entry: CandidateEntry, fingerprint: str) -> Article:
        with self._lock:
            if fingerprint in self._by_fingerprint:
                raise UniqueConstraintViolation("fingerprint")
            if (feed_id, entry.guid) in self._by_guid:
                raise UniqueConstraintViolation("feed_guid")
            article = Article(
                id=next(self._article_ids),
                feed_id=feed_id,
                guid=entry.guid,
                title=entry.title,
                url=entry.url,
                published_at=entry.published_at,
                author=entry.author,
                summary=entry.summary,
                content=entry.content,
                fingerprint=fingerprint,
            )
            self._articles[article.id] = article
            self._by_fingerprint[fingerprint] = article.id
            self._by_guid[(feed_id, entry.guid)] = article.id
            return article

    def list_articles(self, feed_id: int | None = None) -> list[Article]:
        with self._lock:
            return [
                article
                for _, article in sorted(self._articles.items())
                if feed_id is None or article.feed_id == feed_id
            ]

    def create_subscription(
        self,
        feed_id: int,
        user_id: str | None = None,
        team_id: int | None = None,
        category: str | None = None,
    ) -> Subscription:
        with self._lock:
            if feed_id not in self._feeds:
                raise NotFound(f"Feed {feed_id} not found")
            subscription = Subscription(
                id=next(self._subscription_ids),
                feed_id=feed_id,
                user_id=user_id,
                team_id=team_id,
                category=category,
            )
            self._subscriptions[subscription.id] = subscription
            return subscription

    def list_subscriptions(self, feed_id: int) -> list[Subscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.feed_id == feed_id]

    def find_due_feeds(
        self,
        cutoff: datetime,
        plan_filter: SubscriptionFilter | None = None,
    ) -> list[int]:
        with self._lock:
            feeds = list(self._feeds.values())
            subscriptions = list(self._subscriptions.values())

        due: list[int] = []
        for feed in feeds:
            if feed.last_fetched_at is not None and feed.last_fetched_at >= cutoff:
                continue
            subs = [s for s in subscriptions if s.feed_id == feed.id]
            if not subs:
                continue
            # Filter runs outside the lock; it may call out to billing.
            if plan_filter is not None and not any(plan_filter(s) for s in subs):
                continue
            due.append(feed.id)
        return sorted(due)

    def find_or_create_credit_cycle(
        self,
        subscriber_id: str,
        now: datetime,
        cycle_start: datetime,
        cycle_end: datetime,
    ) -> CreditCycle:
        with self._lock:
            cycle = self._active_cycle(subscriber_id, now)
            if cycle is None:
                cycle = CreditCycle(subscriber_id, cycle_start, cycle_end, used=0)
                self._cycles.append(cycle)
            return CreditCycle(cycle.subscriber_id, cycle.cycle_start, cycle.cycle_end, cycle.used)

    def create_credit_cycle(
        self, subscriber_id: str, cycle_start: datetime, cycle_end: datetime
    ) -> CreditCycle:
        with self._lock:
            cycle = CreditCycle(subscriber_id, cycle_start, cycle_end, used=0)
            self._cycles.append(cycle)
            return CreditCycle(subscriber_id, cycle_start, cycle_end, 0)

    def increment_credit_usage(self, subscriber_id: str, now: datetime, ceiling: int) -> int | None:
        with self._lock:
            cycle = self._active_cycle(subscriber_id, now)
            if cycle is None or cycle.used >= ceiling:
                return None
            cycle.used += 1
            return cycle.used

    def upsert_read_marker(
        self, article_id: int, subscriber_id: str, read_at: datetime | None = None
    ) -> ReadMarker:
        with self._lock:
            key = (article_id, subscriber_id)
            marker = self._read_markers.get(key)
            if marker is None:
                marker = ReadMarker(article_id, subscriber_id, read_at or utcnow())
                self._read_markers[key] = marker
            return marker

    def _active_cycle(self, subscriber_id: str, now: datetime) -> CreditCycle | None:
        # Caller holds the lock. Latest-started covering cycle wins; ties go to the newest row.
        best: CreditCycle | None = None
        for cycle in self._cycles:
            if cycle.subscriber_id != subscriber_id or not cycle.covers(now):
                continue
            if best is None or cycle.cycle_start >= best.cycle_start:
                best = cycle
        return best
