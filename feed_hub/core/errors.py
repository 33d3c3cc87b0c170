"""
Exception types raised by the ingestion and enrichment core.

Ingestion errors (FetchError, FeedParseError, ExtractionFailed) are isolated
per feed. Enrichment errors (LimitExceeded, FeatureNotAvailable,
UpstreamError, UpstreamTimeout) are returned synchronously to the caller.
Duplicate content and duplicate identities are never raised past the
Deduplicator.
"""

from __future__ import annotations


class FeedHubError(Exception):
    """Base class for every error raised by feed_hub."""


class FetchError(FeedHubError):
    """A feed source could not be turned into entries.

    Attributes:
        url: The source URL
        kind: "network", "parse_failed", or "scrape_failed"
    """

    NETWORK = "network"
    PARSE_FAILED = "parse_failed"
    SCRAPE_FAILED = "scrape_failed"

    def __init__(self, url: str, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.url = url
        self.kind = kind


class FeedParseError(FeedHubError):
    """The response body is not a usable RSS/Atom document."""


class ExtractionFailed(FeedHubError):
    """No main-content block could be extracted from a web page."""


class NotFound(FeedHubError):
    """A requested feed or article does not exist."""


class UniqueConstraintViolation(FeedHubError):
    """A repository write collided with an existing unique key.

    Attributes:
        constraint: Name of the violated key ("fingerprint", "feed_guid", "feed_url")
    """

    def __init__(self, constraint: str, message: str | None = None):
        super().__init__(message or f"unique constraint violated: {constraint}")
        self.constraint = constraint


class LimitExceeded(FeedHubError):
    """The subscriber reached the hard credit ceiling for the current cycle."""


class FeatureNotAvailable(FeedHubError):
    """The subscriber's plan does not include the requested feature."""


class UpstreamError(FeedHubError):
    """The generative-AI upstream failed or returned an unusable response."""


class UpstreamTimeout(UpstreamError):
    """The generative-AI upstream did not answer within the timeout."""


class InvalidSubscriber(FeedHubError):
    """A subscriber id is malformed, e.g. ``"team:"`` without a numeric id."""
