"""
Ingestion of a single feed.

IngestionPipeline coordinates FeedFetcher → Deduplicator → repository for
one feed at a time. Refreshes of different feeds share no state beyond the
repository's unique indexes, so they can run concurrently.
"""

from __future__ import annotations

from datetime import datetime
import logging

from .cache import NullRefreshCache, RefreshCache
from .core.dedup import Deduplicator
from .core.errors import FetchError, NotFound, UniqueConstraintViolation
from .core.types import Feed, RefreshResult, utcnow
from .fetch.fetcher import FeedFetcher
from .logging_utils import get_logger, log_event
from .storage.base import Repository


logger = get_logger("pipeline")


class IngestionPipeline:
    """Fetch, deduplicate and store entries for a feed.

    Args:
        repository: Persistence boundary
        fetcher: Source fetcher (parse with scrape fallback)
        deduplicator: Deduplicator bound to the same repository
        cache: Best-effort refresh side channel
        clock: Callable returning the current UTC time
    """

    def __init__(
        self,
        repository: Repository,
        fetcher: FeedFetcher,
        deduplicator: Deduplicator | None = None,
        cache: RefreshCache | None = None,
        clock=utcnow,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.deduplicator = deduplicator or Deduplicator(repository)
        self.cache = cache or NullRefreshCache()
        self.clock = clock

    def refresh(self, feed_id: int) -> RefreshResult:
        """Refresh one feed.

        On success the feed's title, site URL and ``last_fetched_at`` are
        updated and every new entry is stored. On fetch failure the feed is
        left untouched and the error propagates to the caller.

        Raises:
            NotFound: If the feed does not exist
            FetchError: If the source could neither be parsed nor scraped
        """
        feed = self.repository.get_feed(feed_id)
        if feed is None:
            raise NotFound(f"Feed {feed_id} not found")

        now = self.clock()
        try:
            parsed = self.fetcher.fetch(feed.url, now=now)
        except FetchError as exc:
            log_event(
                logger,
                "Failed to refresh feed",
                level=logging.ERROR,
                event="refresh_failed",
                feed_id=feed_id,
                url=feed.url,
                kind=exc.kind,
                error=str(exc),
            )
            raise

        self.repository.update_feed_metadata(feed_id, parsed.title, parsed.site_url, now)
        stats = self.deduplicator.ingest(feed_id, parsed.entries)
        self._record_refresh(feed_id, now)

        log_event(
            logger,
            "Refreshed feed",
            event="refresh_ok",
            feed_id=feed_id,
            url=feed.url,
            entries=len(parsed.entries),
            added=stats.added,
            duplicate_content=stats.duplicate_content,
            duplicate_identity=stats.duplicate_identity,
            scraped=parsed.scraped,
        )
        return RefreshResult(feed_id=feed_id, articles_added=stats.added)

    def get_or_create_feed(self, url: str) -> Feed:
        """Return the feed for ``url``, fetching and storing it on first use.

        A new feed is only created after its source was fetched successfully,
        so an unreachable or unparseable URL never produces a Feed row.

        Raises:
            FetchError: If the source could neither be parsed nor scraped
        """
        existing = self.repository.find_feed_by_url(url)
        if existing is not None:
            return existing

        now = self.clock()
        parsed = self.fetcher.fetch(url, now=now)
        try:
            feed = self.repository.create_feed(
                url,
                title=parsed.title,
                site_url=parsed.site_url,
                last_fetched_at=now,
            )
        except UniqueConstraintViolation:
            # Another caller created it between our lookup and insert.
            feed = self.repository.find_feed_by_url(url)
            if feed is None:
                raise
            return feed

        stats = self.deduplicator.ingest(feed.id, parsed.entries)
        self._record_refresh(feed.id, now)
        log_event(
            logger,
            "Created feed",
            event="feed_created",
            feed_id=feed.id,
            url=url,
            added=stats.added,
        )
        return feed

    def _record_refresh(self, feed_id: int, at: datetime) -> None:
        result = self.cache.record_refresh(feed_id, at)
        if not result.ok:
            log_event(
                logger,
                "Refresh cache write failed",
                level=logging.WARNING,
                event="cache_write_failed",
                feed_id=feed_id,
                error=result.error,
            )
