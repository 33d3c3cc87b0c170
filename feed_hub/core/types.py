"""
Core data types for feed ingestion and AI enrichment.

This module defines the fundamental data structures used throughout the core:
- Feed, Article, Subscription, ReadMarker, CreditCycle: persisted records
- CandidateEntry, ParsedFeed: normalized output of fetching a source
- RefreshResult, DedupStats, PassReport: outcomes of ingestion work
- Plan, PaymentRecord, CreditStatus, ConsumeResult: credit accounting
- ArticleContent, SentimentResult, EnrichmentResult: enrichment payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Plan(str, Enum):
    """Subscriber service tier."""

    FREE = "free"
    PRO = "pro"
    POWER = "power"

    @property
    def is_paid(self) -> bool:
        return self is not Plan.FREE


@dataclass
class Feed:
    """A syndication source, identified by its canonical URL.

    Attributes:
        id: Repository-assigned identifier
        url: Canonical source URL, unique across feeds
        title: Display title reported by the source
        site_url: Home page of the site behind the feed
        last_fetched_at: Time of the last successful refresh, or None if never fetched
        created_at: Time the feed was first subscribed
    """
    id: int
    url: str
    title: str | None = None
    site_url: str | None = None
    last_fetched_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Article:
    """A stored entry. Immutable once inserted.

    Attributes:
        id: Repository-assigned identifier
        feed_id: Owning feed
        guid: Feed-local identity token
        title: Entry headline
        url: Canonical URL of the entry
        published_at: Publish time reported by the source (or ingestion time)
        author: Optional author or byline
        summary: Short summary/excerpt HTML
        content: Full content HTML
        fingerprint: Globally unique content fingerprint
        created_at: Insertion time
    """
    id: int
    feed_id: int
    guid: str
    title: str
    url: str
    published_at: datetime
    author: str | None
    summary: str
    content: str
    fingerprint: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Subscription:
    """Links a subscriber (user or team) to a feed."""
    id: int
    feed_id: int
    user_id: str | None = None
    team_id: int | None = None
    category: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def subscriber_id(self) -> str:
        if self.user_id is not None:
            return self.user_id
        return f"team:{self.team_id}"


@dataclass
class ReadMarker:
    article_id: int
    subscriber_id: str
    read_at: datetime = field(default_factory=utcnow)


@dataclass
class CreditCycle:
    """A subscriber's credit-accounting window ``[cycle_start, cycle_end)``.

    Attributes:
        subscriber_id: Owner of the cycle
        cycle_start: Inclusive start of the window
        cycle_end: Exclusive end of the window
        used: Credits consumed so far; only ever increases
    """
    subscriber_id: str
    cycle_start: datetime
    cycle_end: datetime
    used: int = 0

    def covers(self, moment: datetime) -> bool:
        return self.cycle_start <= moment < self.cycle_end


@dataclass
class PaymentRecord:
    """External billing record used to resolve a subscriber's plan.

    Attributes:
        plan: Paid tier this record grants
        status: Billing status ("active", "canceled", "past_due", "trial")
        current_period_start: Start of the billing period, if known
        current_period_end: End of the billing period, if known
    """
    plan: Plan
    status: str = "active"
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None

    def __post_init__(self):
        self.current_period_start = ensure_utc(self.current_period_start)
        self.current_period_end = ensure_utc(self.current_period_end)


@dataclass
class CandidateEntry:
    """A normalized entry produced by parsing or scraping a source.

    Attributes:
        guid: Feed-supplied or synthesized identity token
        title: Entry headline
        url: Link to the entry
        published_at: Publish time, defaulted to ingestion time when absent
        author: Optional author name
        summary: Short summary or excerpt
        content: Full content, used for fingerprinting
    """
    guid: str
    title: str
    url: str
    published_at: datetime
    author: str | None = None
    summary: str = ""
    content: str = ""


@dataclass
class ParsedFeed:
    """Normalized result of fetching a feed source.

    Attributes:
        title: Feed display title
        site_url: Site home page (defaults to the source URL)
        entries: Candidate entries in document order
        scraped: True when produced by the website-scraping fallback
    """
    title: str
    site_url: str
    entries: list[CandidateEntry] = field(default_factory=list)
    scraped: bool = False


@dataclass
class DedupStats:
    """Counts collected while deduplicating one batch of entries."""
    added: int = 0
    duplicate_content: int = 0
    duplicate_identity: int = 0


@dataclass
class RefreshResult:
    """Outcome of refreshing a single feed.

    Attributes:
        feed_id: The feed that was refreshed
        articles_added: Number of new articles stored
        error: Error message if the refresh failed, None on success
    """
    feed_id: int
    articles_added: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PassReport:
    """Statistics for one scheduler pass over a plan tier.

    Attributes:
        plan: Tier the pass selected feeds for
        due: Number of feeds selected
        succeeded: Refreshes that completed
        failed: Refreshes that raised
        articles_added: New articles across all successful refreshes
        errors: Error message per failed feed id
    """
    plan: Plan
    due: int = 0
    succeeded: int = 0
    failed: int = 0
    articles_added: int = 0
    errors: dict[int, str] = field(default_factory=dict)


@dataclass
class CreditStatus:
    """Snapshot of a subscriber's current credit cycle."""
    used: int
    limit: int
    cycle_start: datetime
    cycle_end: datetime
    plan: Plan = Plan.FREE

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


@dataclass
class ConsumeResult:
    """Outcome of consuming one credit.

    Attributes:
        ok: Whether the credit was consumed
        used: Usage count after the call
        warning: One-time soft-limit notice, set only on the crossing call
        error: Refusal message when the hard ceiling is reached
    """
    ok: bool
    used: int
    warning: str | None = None
    error: str | None = None


@dataclass
class ArticleContent:
    title: str
    content: str
    url: str | None = None


@dataclass
class SentimentResult:
    """Structured sentiment reply; neutral with zero confidence on parse failure."""
    sentiment: str = "neutral"
    confidence: float = 0.0
    emotions: list[str] = field(default_factory=list)


@dataclass
class EnrichmentResult:
    """Result returned to the boundary layer for a metered enrichment call."""
    text: str
    warning: str | None = None
    credits_used: int = 0
