"""
RSS/Atom parsing into normalized candidate entries.

This module wraps ``feedparser`` and maps its loosely-typed entries onto
CandidateEntry objects:
- guid falls back to the entry link, then to a fresh random token
- a missing publish date defaults to the ingestion time
- content prefers full ``content`` blocks over ``description``/``summary``

Every call parses independently; no parser state is shared between feeds.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
import uuid

import feedparser

from ..core.errors import FeedParseError
from ..core.types import CandidateEntry, ParsedFeed, utcnow


_HTML_PREFIXES = (b"<!doctype html", b"<html")


def parse_feed(data: bytes, source_url: str, now: datetime | None = None) -> ParsedFeed:
    """Parse raw feed bytes into a ParsedFeed.

    Args:
        data: The response body as bytes
        source_url: URL the bytes were fetched from; used as the site URL fallback
        now: Ingestion time used for entries without a publish date

    Returns:
        ParsedFeed with one CandidateEntry per feed item, in document order

    Raises:
        FeedParseError: If the body is HTML or not a recognizable feed
    """
    if _looks_like_html(data):
        raise FeedParseError(f"{source_url} returned an HTML page, not a feed")

    parsed = feedparser.parse(data)
    meta = parsed.get("feed", {}) or {}
    raw_entries = parsed.get("entries", []) or []

    if not raw_entries and not meta.get("title"):
        reason = parsed.get("bozo_exception") if parsed.get("bozo") else "no feed elements"
        raise FeedParseError(f"Unable to parse feed {source_url}: {reason}")

    ingested_at = now or utcnow()
    return ParsedFeed(
        title=(meta.get("title") or "").strip() or "Unknown Feed",
        site_url=meta.get("link") or source_url,
        entries=[_to_candidate(item, ingested_at) for item in raw_entries],
    )


def _to_candidate(item, ingested_at: datetime) -> CandidateEntry:
    link = item.get("link") or ""
    summary = item.get("summary") or item.get("description") or ""
    return CandidateEntry(
        guid=item.get("id") or link or uuid.uuid4().hex,
        title=(item.get("title") or "").strip() or "Untitled",
        url=link,
        published_at=_entry_datetime(item) or ingested_at,
        author=item.get("author") or None,
        summary=summary,
        content=_entry_content(item) or summary,
    )


def _entry_content(item) -> str:
    """Return the first non-empty full-content block of an entry."""
    for block in item.get("content") or []:
        value = block.get("value") if hasattr(block, "get") else None
        if value:
            return value
    return item.get("description") or ""


def _entry_datetime(item) -> datetime | None:
    """Convert feedparser's parsed time tuples into an aware UTC datetime.

    feedparser normalizes every recognized date to a UTC ``time.struct_time``,
    so ``calendar.timegm`` is the correct inverse.
    """
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        value = item.get(key)
        if value:
            return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    return None


def _looks_like_html(data: bytes) -> bool:
    head = data[:512].lstrip().lower()
    return head.startswith(_HTML_PREFIXES)


class FeedParser:
    """Stateless adapter exposing :func:`parse_feed` as an injectable component."""

    def parse(self, data: bytes, source_url: str, now: datetime | None = None) -> ParsedFeed:
        return parse_feed(data, source_url, now=now)
