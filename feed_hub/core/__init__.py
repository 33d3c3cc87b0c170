"""
Core domain models and business logic.

This package contains data types, errors, fingerprinting and deduplication
that are independent of how sources are fetched or stored.
"""

from .dedup import Deduplicator
from .errors import (
    ExtractionFailed,
    FeatureNotAvailable,
    FeedHubError,
    FeedParseError,
    FetchError,
    InvalidSubscriber,
    LimitExceeded,
    NotFound,
    UniqueConstraintViolation,
    UpstreamError,
    UpstreamTimeout,
)
from .fingerprint import ContentFingerprinter, fingerprint
from .types import (
    Article,
    ArticleContent,
    CandidateEntry,
    ConsumeResult,
    CreditCycle,
    CreditStatus,
    DedupStats,
    EnrichmentResult,
    Feed,
    ParsedFeed,
    PassReport,
    PaymentRecord,
    Plan,
    ReadMarker,
    RefreshResult,
    SentimentResult,
    Subscription,
    utcnow,
)

__all__ = [
    "Deduplicator",
    "ContentFingerprinter",
    "fingerprint",
    "FeedHubError",
    "FetchError",
    "FeedParseError",
    "ExtractionFailed",
    "InvalidSubscriber",
    "NotFound",
    "UniqueConstraintViolation",
    "LimitExceeded",
    "FeatureNotAvailable",
    "UpstreamError",
    "UpstreamTimeout",
    "Article",
    "ArticleContent",
    "CandidateEntry",
    "ConsumeResult",
    "CreditCycle",
    "CreditStatus",
    "DedupStats",
    "EnrichmentResult",
    "Feed",
    "ParsedFeed",
    "PassReport",
    "PaymentRecord",
    "Plan",
    "ReadMarker",
    "RefreshResult",
    "SentimentResult",
    "Subscription",
    "utcnow",
]
