"""
feed_hub - feed ingestion with tiered refresh and metered AI enrichment.

This package fetches RSS/Atom feeds (falling back to scraping the page),
stores globally deduplicated articles, refreshes feeds on a cadence set by
the subscriber's plan, and meters AI summaries with a credit ledger.

Main entry point is the CLI via the `feed-hub` command.

Example:
    $ feed-hub add https://example.com/feed.xml --subscriber alice
    $ feed-hub run-due --plan pro
"""

__all__ = ["__version__", "FeedService", "build_app"]
__version__ = "0.1.0"

from .runner import build_app
from .service import FeedService
