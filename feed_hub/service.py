"""
Invocation boundary for feed management and metered enrichment.

FeedService is what a web layer, worker or CLI calls. Identity resolution
happens before this layer: every operation receives an already resolved
``subscriber_id`` (a user id, or ``"team:<id>"`` for teams).
"""

from __future__ import annotations

import logging
from typing import Callable

from .core.errors import FeatureNotAvailable, InvalidSubscriber, LimitExceeded, NotFound, UpstreamError
from .core.types import (
    Article,
    ArticleContent,
    CreditStatus,
    EnrichmentResult,
    Feed,
    ReadMarker,
    RefreshResult,
    Subscription,
    utcnow,
)
from .credits import LIMIT_EXCEEDED_MESSAGE, CreditLedger
from .llm.gateway import EnrichmentGateway
from .llm.tracing import record_span_error, set_span_output, start_span
from .logging_utils import get_logger, log_event
from .pipeline import IngestionPipeline
from .storage.base import Repository


logger = get_logger("service")

TEAM_PREFIX = "team:"


class FeedService:
    """Feed and enrichment operations for resolved subscribers.

    Args:
        repository: Persistence boundary
        pipeline: Ingestion pipeline bound to the same repository
        ledger: Credit ledger gating enrichment
        gateway: Enrichment gateway; None disables AI features
        clock: Callable returning the current UTC time
    """

    def __init__(
        self,
        repository: Repository,
        pipeline: IngestionPipeline,
        ledger: CreditLedger,
        gateway: EnrichmentGateway | None = None,
        clock: Callable = utcnow,
    ):
        self.repository = repository
        self.pipeline = pipeline
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock

    def refresh_feed(self, feed_id: int) -> RefreshResult:
        """Refresh one feed now; fetch errors propagate to the caller."""
        return self.pipeline.refresh(feed_id)

    def get_or_create_feed(self, url: str) -> Feed:
        return self.pipeline.get_or_create_feed(url)

    def subscribe(self, url: str, subscriber_id: str, category: str | None = None) -> Subscription:
        """Subscribe ``subscriber_id`` to the feed at ``url``, creating the feed if needed.

        Raises:
            InvalidSubscriber: If a team id is not a positive integer
        """
        user_id, team_id = _split_subscriber(subscriber_id)
        feed = self.pipeline.get_or_create_feed(url)
        subscription = self.repository.create_subscription(
            feed.id, user_id=user_id, team_id=team_id, category=category
        )
        log_event(
            logger,
            "Subscribed",
            event="subscribed",
            feed_id=feed.id,
            subscriber_id=subscriber_id,
        )
        return subscription

    def get_credit_status(self, subscriber_id: str) -> CreditStatus:
        return self.ledger.current_cycle(subscriber_id)

    def mark_read(self, article_id: int, subscriber_id: str) -> ReadMarker:
        self._get_article(article_id)
        return self.repository.upsert_read_marker(article_id, subscriber_id, self.clock())

    def summarize_article(self, article_id: int, subscriber_id: str) -> EnrichmentResult:
        """Summarize an article, charging one credit on success.

        The credit check happens before the upstream call and the credit is
        committed after it, so a failed upstream call costs nothing.

        Raises:
            LimitExceeded: If the subscriber reached the hard ceiling
            NotFound: If the article does not exist
            UpstreamError: If the enrichment endpoint failed or timed out
        """
        if not self.ledger.can_use(subscriber_id):
            raise LimitExceeded(LIMIT_EXCEEDED_MESSAGE)
        article = self._get_article(article_id)
        gateway = self._require_gateway()

        with start_span(
            "feed_hub.summarize_article",
            kind="chain",
            input_value={"article_id": article_id},
            attributes={"subscriber_id": subscriber_id},
        ) as span:
            try:
                text = gateway.summarize(_article_content(article))
            except UpstreamError as exc:
                record_span_error(span, exc)
                log_event(
                    logger,
                    "Summarize failed",
                    level=logging.WARNING,
                    event="summarize_failed",
                    article_id=article_id,
                    error=str(exc),
                )
                raise

            result = self.ledger.consume(subscriber_id)
            if not result.ok:
                raise LimitExceeded(result.error or LIMIT_EXCEEDED_MESSAGE)
            self.repository.upsert_read_marker(article.id, subscriber_id, self.clock())
            set_span_output(span, {"credits_used": result.used, "warning": bool(result.warning)})

        return EnrichmentResult(text=text, warning=result.warning, credits_used=result.used)

    def generate_social_post(
        self,
        article_id: int,
        subscriber_id: str,
        platform: str,
        tone: str = "engaging",
    ) -> EnrichmentResult:
        """Draft a social post for an article. Paid plans only; not metered.

        Raises:
            FeatureNotAvailable: If the subscriber is on the free plan
            NotFound: If the article does not exist
            ValueError: If the platform or tone is not supported
            UpstreamError: If the enrichment endpoint failed or timed out
        """
        if not self.ledger.plan_for(subscriber_id).is_paid:
            raise FeatureNotAvailable("Social post generation requires a paid plan.")
        article = self._get_article(article_id)
        gateway = self._require_gateway()

        with start_span(
            "feed_hub.generate_social_post",
            kind="chain",
            input_value={"article_id": article_id, "platform": platform, "tone": tone},
        ) as span:
            try:
                text = gateway.generate_social_post(_article_content(article), platform, tone)
            except UpstreamError as exc:
                record_span_error(span, exc)
                raise
            set_span_output(span, text)

        status = self.ledger.current_cycle(subscriber_id)
        return EnrichmentResult(text=text, credits_used=status.used)

    def _get_article(self, article_id: int) -> Article:
        article = self.repository.get_article(article_id)
        if article is None:
            raise NotFound(f"Article {article_id} not found")
        return article

    def _require_gateway(self) -> EnrichmentGateway:
        if self.gateway is None:
            raise UpstreamError("AI enrichment is not configured")
        return self.gateway


def _article_content(article: Article) -> ArticleContent:
    return ArticleContent(
        title=article.title,
        content=article.content or article.summary,
        url=article.url,
    )


def _split_subscriber(subscriber_id: str) -> tuple[str | None, int | None]:
    if not subscriber_id:
        raise InvalidSubscriber("Subscriber id must not be empty")
    if subscriber_id.startswith(TEAM_PREFIX):
        raw = subscriber_id[len(TEAM_PREFIX):]
        if not raw.isdecimal() or int(raw) == 0:
            raise InvalidSubscriber(f"Invalid team id in subscriber {subscriber_id!r}")
        return None, int(raw)
    return subscriber_id, None
