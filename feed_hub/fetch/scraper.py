"""
Website scraping fallback for sources that are not feeds.

The page's main content block is located with Mozilla's readability
algorithm (``readability-lxml``). Byline and description come from
``trafilatura``'s metadata extraction, and ``BeautifulSoup`` turns the
extracted block into plain text to decide whether anything was found.

The synthesized entry's identity hashes the URL together with the current
time, so repeated scrapes of an unchanged page never share an identity and
are deduplicated only through the content fingerprint.
"""

from __future__ import annotations

from datetime import datetime
import hashlib
import itertools
import logging
import time

from bs4 import BeautifulSoup
import httpx
from readability import Document
import trafilatura

from ..config import FetchConfig, ScrapeConfig
from ..core.errors import ExtractionFailed
from ..core.types import CandidateEntry, ParsedFeed, utcnow
from ..logging_utils import get_logger, log_event


logger = get_logger("scraper")
_SEQUENCE = itertools.count()


def scrape_identity(url: str, now_ns: int | None = None) -> str:
    """Return the synthetic guid for a scraped page.

    Args:
        url: The page URL
        now_ns: Epoch nanoseconds; defaults to the current time

    Returns:
        MD5 hex digest of the URL, the timestamp and a process-local sequence
        number (two scrapes within one clock tick still differ)
    """
    stamp = now_ns if now_ns is not None else time.time_ns()
    return hashlib.md5(f"{url}{stamp}:{next(_SEQUENCE)}".encode("utf-8")).hexdigest()


def html_to_text(html: str) -> str:
    """Extract plain text from HTML using BeautifulSoup.

    Removes script/style tags and keeps only non-empty lines.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    return "\n".join([line.strip() for line in text.splitlines() if line.strip()])


class ContentScraper:
    """Convert an arbitrary web page into a single-entry pseudo-feed."""

    def __init__(
        self,
        fetch_cfg: FetchConfig | None = None,
        scrape_cfg: ScrapeConfig | None = None,
        client: httpx.Client | None = None,
    ):
        self.fetch_cfg = fetch_cfg or FetchConfig()
        self.scrape_cfg = scrape_cfg or ScrapeConfig()
        self._client = client

    def scrape(self, url: str, html: str | None = None, now: datetime | None = None) -> ParsedFeed:
        """Extract the main content of ``url``.

        Args:
            url: Page URL, used as the entry URL and site URL
            html: Already-downloaded page body; fetched when omitted
            now: Time used for the publish date

        Returns:
            ParsedFeed holding exactly one synthesized entry

        Raises:
            ExtractionFailed: If the page cannot be downloaded or has no main content
        """
        if html is None:
            html = self._download(url)

        try:
            doc = Document(html)
            title = (doc.short_title() or doc.title() or "").strip()
            content_html = doc.summary(html_partial=True)
        except Exception as exc:  # noqa: BLE001
            # readability raises bare lxml/parser errors on degenerate markup.
            raise ExtractionFailed(f"Unable to extract content from {url}: {exc}") from exc

        text = html_to_text(content_html)
        if len(text) < max(1, self.scrape_cfg.min_text_chars):
            raise ExtractionFailed(f"Unable to extract content from {url}: no main content block")

        byline, excerpt = self._metadata(html, url)
        if not excerpt:
            excerpt = text[: self.scrape_cfg.excerpt_chars]

        entry = CandidateEntry(
            guid=scrape_identity(url),
            title=title or "Untitled",
            url=url,
            published_at=now or utcnow(),
            author=byline,
            summary=excerpt,
            content=content_html,
        )
        log_event(
            logger,
            "Page scraped",
            level=logging.DEBUG,
            event="scrape_ok",
            url=url,
            text_chars=len(text),
        )
        return ParsedFeed(title=title or "Scraped Content", site_url=url, entries=[entry], scraped=True)

    def _download(self, url: str) -> str:
        headers = {"User-Agent": self.fetch_cfg.user_agent}
        try:
            if self._client is not None:
                resp = self._client.get(url, headers=headers, timeout=self.fetch_cfg.timeout_seconds)
            else:
                with httpx.Client(
                    timeout=self.fetch_cfg.timeout_seconds,
                    follow_redirects=True,
                    max_redirects=self.fetch_cfg.max_redirects,
                    trust_env=self.fetch_cfg.trust_env,
                ) as client:
                    resp = client.get(url, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExtractionFailed(f"Unable to download {url}: {type(exc).__name__}: {exc}") from exc
        return resp.text

    @staticmethod
    def _metadata(html: str, url: str) -> tuple[str | None, str | None]:
        """Return (byline, excerpt) from the page's metadata, if present."""
        meta = trafilatura.extract_metadata(html, default_url=url)
        if meta is None:
            return None, None
        byline = (meta.author or "").strip() or None
        excerpt = (meta.description or "").strip() or None
        return byline, excerpt
