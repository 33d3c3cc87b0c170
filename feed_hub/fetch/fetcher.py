"""
Feed source retrieval with a scraping fallback.

A source URL is fetched once with httpx. The body is handed to the feed
parser; when it is not a feed, the same body is run through the
readability scraper and treated as a single-article pseudo-feed. Failures
surface as FetchError with a kind describing which stage gave up.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

import httpx

from ..config import FetchConfig, ScrapeConfig
from ..core.errors import ExtractionFailed, FeedParseError, FetchError
from ..core.types import ParsedFeed
from ..logging_utils import get_logger, log_event
from .parser import FeedParser
from .scraper import ContentScraper


logger = get_logger("fetcher")


@dataclass
class FetchResult:
    """Result of an HTTP fetch operation.

    Either content will be populated (success) or error will be populated
    (failure), but never both. status_code may be None for network-level
    failures.

    Attributes:
        url: The URL that was fetched
        status_code: HTTP status code, or None if request failed before getting response
        content: The raw response body, or None on error
        encoding: Response text encoding guessed by httpx
        error: Error message if fetch failed, None on success
    """
    url: str
    status_code: int | None
    content: bytes | None
    encoding: str | None = None
    error: str | None = None

    @property
    def text(self) -> str:
        if self.content is None:
            return ""
        return self.content.decode(self.encoding or "utf-8", errors="replace")


def fetch_url(url: str, cfg: FetchConfig, client: httpx.Client | None = None) -> FetchResult:
    """Fetch a URL with a bounded timeout and an identifying user agent.

    Any content type is accepted. Transport errors, timeouts and HTTP error
    statuses are reported in ``FetchResult.error`` instead of raised.

    Args:
        url: The URL to fetch
        cfg: Fetch settings (timeout, user agent, proxy handling)
        client: Optional shared client; a short-lived one is created otherwise

    Returns:
        FetchResult with content on success or error message on failure
    """
    headers = {"User-Agent": cfg.user_agent, "Accept": "*/*"}
    try:
        if client is not None:
            resp = client.get(url, headers=headers, timeout=cfg.timeout_seconds)
        else:
            with httpx.Client(
                timeout=cfg.timeout_seconds,
                follow_redirects=True,
                max_redirects=cfg.max_redirects,
                trust_env=cfg.trust_env,
            ) as owned:
                resp = owned.get(url, headers=headers)
    except httpx.HTTPError as exc:
        return FetchResult(url=url, status_code=None, content=None, error=f"{type(exc).__name__}: {exc}")

    if resp.status_code >= 400:
        return FetchResult(
            url=url,
            status_code=resp.status_code,
            content=None,
            error=f"HTTP {resp.status_code}",
        )
    return FetchResult(
        url=url,
        status_code=resp.status_code,
        content=resp.content,
        encoding=resp.encoding,
    )


class FeedFetcher:
    """Retrieve a source and normalize it into a ParsedFeed.

    Args:
        fetch_cfg: HTTP settings
        scrape_cfg: Scraping fallback settings
        parser: Feed parser; a fresh FeedParser by default
        scraper: Page scraper; built from the configs by default
        client: Optional shared httpx client (used by tests with MockTransport)
    """

    def __init__(
        self,
        fetch_cfg: FetchConfig | None = None,
        scrape_cfg: ScrapeConfig | None = None,
        parser: FeedParser | None = None,
        scraper: ContentScraper | None = None,
        client: httpx.Client | None = None,
    ):
        self.fetch_cfg = fetch_cfg or FetchConfig()
        self.scrape_cfg = scrape_cfg or ScrapeConfig()
        self.parser = parser or FeedParser()
        self.scraper = scraper or ContentScraper(self.fetch_cfg, self.scrape_cfg, client=client)
        self._client = client

    def fetch(self, url: str, now: datetime | None = None) -> ParsedFeed:
        """Fetch ``url`` and parse it, falling back to scraping.

        Raises:
            FetchError: kind "network" when the source cannot be downloaded,
                "parse_failed" when it is not a feed and scraping is disabled,
                "scrape_failed" when neither parsing nor scraping worked
        """
        result = fetch_url(url, self.fetch_cfg, client=self._client)
        if result.error is not None or result.content is None:
            log_event(
                logger,
                "Fetch failed",
                level=logging.WARNING,
                event="fetch_failed",
                url=url,
                status_code=result.status_code,
                error=result.error,
            )
            raise FetchError(url, FetchError.NETWORK, result.error or "empty response")

        try:
            return self.parser.parse(result.content, url, now=now)
        except FeedParseError as parse_exc:
            log_event(
                logger,
                "Feed parse failed, trying scraper",
                level=logging.INFO,
                event="parse_failed",
                url=url,
                error=str(parse_exc),
            )
            if not self.scrape_cfg.enabled:
                raise FetchError(url, FetchError.PARSE_FAILED, str(parse_exc)) from parse_exc

        try:
            return self.scraper.scrape(url, html=result.text, now=now)
        except ExtractionFailed as scrape_exc:
            log_event(
                logger,
                "Scrape failed",
                level=logging.WARNING,
                event="scrape_failed",
                url=url,
                error=str(scrape_exc),
            )
            raise FetchError(
                url,
                FetchError.SCRAPE_FAILED,
                f"Unable to parse feed or scrape website: {url}",
            ) from scrape_exc
