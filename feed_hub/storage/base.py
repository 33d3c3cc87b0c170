"""Abstract repository interface for feeds, articles, subscriptions and credits."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable

from ..core.types import (
    Article,
    CandidateEntry,
    CreditCycle,
    Feed,
    ReadMarker,
    Subscription,
)


SubscriptionFilter = Callable[[Subscription], bool]


class Repository(ABC):
    """Persistence boundary used by the core.

    Every operation is individually atomic. Uniqueness of feed URLs, article
    fingerprints and ``(feed_id, guid)`` pairs is enforced here and reported
    as ``UniqueConstraintViolation``.
    """

    @abstractmethod
    def get_feed(self, feed_id: int) -> Feed | None:
        raise NotImplementedError

    @abstractmethod
    def find_feed_by_url(self, url: str) -> Feed | None:
        raise NotImplementedError

    @abstractmethod
    def create_feed(
        self,
        url: str,
        title: str | None = None,
        site_url: str | None = None,
        last_fetched_at: datetime | None = None,
    ) -> Feed:
        """Insert a feed. Raises UniqueConstraintViolation("feed_url") on a duplicate URL."""
        raise NotImplementedError

    @abstractmethod
    def update_feed_metadata(
        self,
        feed_id: int,
        title: str | None,
        site_url: str | None,
        last_fetched_at: datetime,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_feeds(self) -> list[Feed]:
        raise NotImplementedError

    @abstractmethod
    def find_article_by_fingerprint(self, fingerprint: str) -> Article | None:
        raise NotImplementedError

    @abstractmethod
    def get_article(self, article_id: int) -> Article | None:
        raise NotImplementedError

    @abstractmethod
    def create_article(self, feed_id: int, entry: CandidateEntry, fingerprint: str) -> Article:
        """Insert an article.

        Raises:
            UniqueConstraintViolation: "fingerprint" or "feed_guid" collision
        """
        raise NotImplementedError

    @abstractmethod
    def list_articles(self, feed_id: int | None = None) -> list[Article]:
        raise NotImplementedError

    @abstractmethod
    def create_subscription(
        self,
        feed_id: int,
        user_id: str | None = None,
        team_id: int | None = None,
        category: str | None = None,
    ) -> Subscription:
        raise NotImplementedError

    @abstractmethod
    def list_subscriptions(self, feed_id: int) -> list[Subscription]:
        raise NotImplementedError

    @abstractmethod
    def find_due_feeds(
        self,
        cutoff: datetime,
        plan_filter: SubscriptionFilter | None = None,
    ) -> list[int]:
        """Return ids of subscribed feeds never fetched or last fetched before cutoff.

        Args:
            cutoff: Feeds fetched at or after this instant are not due
            plan_filter: When given, at least one of the feed's subscriptions
                must satisfy it

        Returns:
            Feed ids in ascending order
        """
        raise NotImplementedError

    @abstractmethod
    def find_or_create_credit_cycle(
        self,
        subscriber_id: str,
        now: datetime,
        cycle_start: datetime,
        cycle_end: datetime,
    ) -> CreditCycle:
        """Return the cycle covering ``now``, creating ``[cycle_start, cycle_end)`` if none does.

        When several cycles cover ``now`` the one that started last wins.
        """
        raise NotImplementedError

    @abstractmethod
    def create_credit_cycle(
        self, subscriber_id: str, cycle_start: datetime, cycle_end: datetime
    ) -> CreditCycle:
        raise NotImplementedError

    @abstractmethod
    def increment_credit_usage(self, subscriber_id: str, now: datetime, ceiling: int) -> int | None:
        """Atomically add one credit to the cycle covering ``now``.

        The increment only applies while ``used < ceiling``.

        Returns:
            The new ``used`` value, or None when no cycle covers ``now`` or
            the ceiling was already reached
        """
        raise NotImplementedError

    @abstractmethod
    def upsert_read_marker(
        self, article_id: int, subscriber_id: str, read_at: datetime | None = None
    ) -> ReadMarker:
        raise NotImplementedError
