"""
Source fetching, feed parsing and page scraping.

This package turns a source URL into a normalized ParsedFeed.
"""

from .fetcher import FeedFetcher, FetchResult, fetch_url
from .parser import FeedParser, parse_feed
from .scraper import ContentScraper, html_to_text, scrape_identity

__all__ = [
    "FeedFetcher",
    "FetchResult",
    "fetch_url",
    "FeedParser",
    "parse_feed",
    "ContentScraper",
    "html_to_text",
    "scrape_identity",
]
