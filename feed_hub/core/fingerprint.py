"""
Content fingerprinting for cross-feed deduplication.

A fingerprint is a SHA-256 digest over the normalized concatenation of an
entry's title, URL and full content. Two entries with the same fingerprint
are considered the same content regardless of which feed (or scrape) they
came from.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata

from .types import CandidateEntry


_WS_RE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Normalize text for fingerprinting.

    Applies NFC unicode normalization, collapses runs of whitespace and strips
    the ends. Case is preserved: a retitled entry is different content.

    Args:
        text: Raw text, may be None

    Returns:
        The normalized string ("" for None)
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    return _WS_RE.sub(" ", text).strip()


def fingerprint(title: str | None, url: str | None, content: str | None) -> str:
    """Compute the content fingerprint for a title/url/content triple."""
    # Unit separator keeps ("ab", "c") and ("a", "bc") distinct.
    payload = "\x1f".join([normalize(title), normalize(url), normalize(content)])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ContentFingerprinter:
    """Stateless fingerprinter for candidate entries."""

    def fingerprint_entry(self, entry: CandidateEntry) -> str:
        return fingerprint(entry.title, entry.url, entry.content)
