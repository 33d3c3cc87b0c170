"""
AI enrichment of article content.

EnrichmentGateway turns article content into prompts, sends them through an
EnrichmentProvider and shapes the replies. It performs no metering or plan
checks of its own; FeedService gates calls with the CreditLedger.

Upstream failures propagate as UpstreamError/UpstreamTimeout without retry.
The one exception is sentiment analysis, where an unparseable reply yields a
neutral, zero-confidence result.
"""

from __future__ import annotations

import json
import logging

from ..core.types import ArticleContent, SentimentResult
from ..logging_utils import get_logger, log_event
from . import prompts
from .json_parser import parse_json_response
from .providers.base import EnrichmentProvider


logger = get_logger("enrichment")

SENTIMENTS = {"positive", "negative", "neutral"}


class EnrichmentGateway:
    """High-level enrichment operations over a provider.

    Args:
        provider: Upstream completion provider
        temperature: Optional override of the provider's default temperature
    """

    def __init__(self, provider: EnrichmentProvider, temperature: float | None = None):
        self.provider = provider
        self.temperature = temperature

    def summarize(self, article: ArticleContent) -> str:
        """Return a 2-3 sentence summary."""
        return self._complete(prompts.build_summary_prompt(article), 200).strip()

    def generate_social_post(self, article: ArticleContent, platform: str, tone: str = "engaging") -> str:
        """Draft a post for ``platform`` in ``tone``.

        Length constraints are expressed through the prompt rules and the
        completion token budget; the reply is not truncated afterwards.

        Raises:
            ValueError: If the platform or tone is not supported
        """
        if platform not in prompts.PLATFORMS:
            raise ValueError(f"Unsupported platform: {platform}. Supported: {', '.join(prompts.PLATFORMS)}")
        if tone not in prompts.TONES:
            raise ValueError(f"Unsupported tone: {tone}. Supported: {', '.join(prompts.TONES)}")
        target = prompts.PLATFORMS[platform]
        prompt = prompts.build_social_post_prompt(article, platform, tone)
        return self._complete(prompt, target.max_tokens).strip()

    def extract_keywords(self, article: ArticleContent) -> list[str]:
        result = self._complete(prompts.build_keywords_prompt(article), 100)
        return _split_list(result)

    def analyze_sentiment(self, article: ArticleContent) -> SentimentResult:
        """Classify sentiment; malformed replies degrade to neutral/0.0."""
        reply = self._complete(prompts.build_sentiment_prompt(article), 150)
        try:
            obj = parse_json_response(reply)
        except json.JSONDecodeError as exc:
            log_event(
                logger,
                "Failed to parse sentiment response",
                level=logging.WARNING,
                event="sentiment_parse_error",
                error=str(exc),
            )
            return SentimentResult()
        return _coerce_sentiment(obj)

    def categorize(self, article: ArticleContent) -> str:
        """Return one of ``prompts.CATEGORIES`` ("Other" when the reply matches none)."""
        reply = self._complete(prompts.build_category_prompt(article), 50).strip().strip(".")
        for category in prompts.CATEGORIES:
            if reply.lower() == category.lower():
                return category
        return "Other"

    def suggest_searches(self, query: str) -> list[str]:
        return _split_list(self._complete(prompts.build_search_prompt(query), 100))

    def health_check(self) -> bool:
        return self.provider.health_check()

    def _complete(self, prompt: str, max_tokens: int) -> str:
        return self.provider.complete(
            prompts.system_prompt(),
            prompt,
            max_tokens=max_tokens,
            temperature=self.temperature,
        )


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _coerce_sentiment(obj: dict) -> SentimentResult:
    """Normalize a parsed sentiment object, defaulting invalid fields."""
    sentiment = str(obj.get("sentiment") or "neutral").strip().lower()
    if sentiment not in SENTIMENTS:
        return SentimentResult()

    try:
        confidence = float(obj.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    confidence = min(1.0, max(0.0, confidence))

    emotions = obj.get("emotions") or []
    if not isinstance(emotions, list):
        emotions = []
    return SentimentResult(
        sentiment=sentiment,
        confidence=confidence,
        emotions=[str(e).strip() for e in emotions if str(e).strip()],
    )
